import inspect
import json
import logging
from functools import lru_cache
from typing import Any, Dict, List

import yaml
from kubernetes import client


class ManifestError(Exception):
    """Raised when a manifest cannot be loaded, patched or deployed."""


class _Payload:
    # older clients deserialize a response-like object with a .data attribute
    def __init__(self, data: str) -> None:
        self.data = data


@lru_cache(maxsize=1)
def _codec() -> client.ApiClient:
    return client.ApiClient()


def _deserialize(codec: Any, text: str, name: str) -> Any:
    # kubernetes >= 37 takes the response text and its content type instead
    if "content_type" in inspect.signature(codec.deserialize).parameters:
        return codec.deserialize(text, name, "application/json")
    return codec.deserialize(_Payload(text), name)


def model_name(api_version: str, kind: str) -> str:
    """
    Maps apiVersion and kind to the name of the kubernetes client model.

    Example:
        >>> model_name("storage.k8s.io/v1", "StorageClass")
        'V1StorageClass'
    """
    version = api_version.rsplit("/", 1)[-1]
    return f"{version[:1].upper()}{version[1:]}{kind}"


def load_manifest_file(path: str) -> List[Dict[str, Any]]:
    """
    Reads all YAML documents of a manifest file.

    Args:
        path (str): The path of the manifest file.

    Returns:
        List[Dict[str, Any]]: One dict per non-empty document, in file order.

    Raises:
        ManifestError: If the file cannot be read or is not valid YAML.
    """
    try:
        with open(path, 'r') as f:
            documents = [doc for doc in yaml.safe_load_all(f) if doc is not None]
    except OSError as exc:
        raise ManifestError(f"reading {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ManifestError(f"parsing {path}: {exc}") from exc
    logging.debug(f"manifest {path} loaded, {len(documents)} documents")
    return documents


def decode_item(doc: Dict[str, Any], source: str) -> Any:
    """
    Decodes one manifest document into its typed kubernetes client model.

    Args:
        doc (Dict[str, Any]): The manifest document.
        source (str): The manifest path, used in error messages.

    Returns:
        Any: An instance of the matching model, e.g. V1StorageClass.

    Raises:
        ManifestError: If the document has no apiVersion/kind or no model exists for it.
    """
    if not isinstance(doc, dict):
        raise ManifestError(f"{source}: expected a mapping, got {type(doc).__name__}")
    api_version = doc.get("apiVersion")
    kind = doc.get("kind")
    if not api_version or not kind:
        raise ManifestError(f"{source}: item without apiVersion or kind")

    name = model_name(api_version, kind)
    if getattr(client, name, None) is None:
        raise ManifestError(f"{source}: unsupported item {api_version}/{kind}")
    try:
        return _deserialize(_codec(), json.dumps(doc, default=str), name)
    except (ValueError, TypeError) as exc:
        raise ManifestError(f"{source}: decoding {kind}: {exc}") from exc


def encode_item(item: Any) -> Dict[str, Any]:
    """Converts a kubernetes client model back into a plain manifest dict."""
    return _codec().sanitize_for_serialization(item)


def describe_item(item: Any) -> str:
    name = item.metadata.name if item.metadata is not None else ""
    return f"{item.kind}/{name}"
