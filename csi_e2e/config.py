import logging
from functools import partial
from typing import Any, Callable, Dict, List

import yaml

from csi_e2e.csi_volumes import ManifestDriver
from csi_e2e.patch import PatchCSIOptions
from csi_e2e.testdriver import Capability, DriverInfo, TestDriver

REQUIRED_KEYS = ("name", "maxFileSize", "scManifest", "claimSize")

PATCH_OPTION_KEYS = {
    "oldDriverName": "old_driver_name",
    "newDriverName": "new_driver_name",
    "driverContainerName": "driver_container_name",
    "driverContainerArguments": "driver_container_arguments",
    "provisionerContainerName": "provisioner_container_name",
    "nodeName": "node_name",
    "canAttach": "can_attach",
}


def load_driver_factories(path: str) -> List[Callable[[], TestDriver]]:
    """
    Reads manifest driver declarations from a YAML file.

    Args:
        path (str): The path of the driver configuration file.

    Returns:
        List[Callable[[], TestDriver]]: One factory per declared driver, in file order.

    Raises:
        ValueError: If a declaration is incomplete or names an unknown capability.
    """
    with open(path, 'r') as f:
        content = yaml.safe_load(f) or {}

    declarations = content.get("drivers") or []
    if not declarations:
        raise ValueError(f"{path}: no drivers declared")

    factories = []
    for declaration in declarations:
        # validate early, the factories are only called during collection
        build_driver(declaration)
        factories.append(partial(build_driver, declaration))
    logging.info(f"loaded {len(factories)} driver declarations from {path}")
    return factories


def build_driver(declaration: Dict[str, Any]) -> ManifestDriver:
    missing = [key for key in REQUIRED_KEYS if key not in declaration]
    if missing:
        raise ValueError(f"driver declaration misses {', '.join(missing)}")

    name = declaration["name"]
    capabilities = {}
    for key, value in (declaration.get("capabilities") or {}).items():
        try:
            capabilities[Capability(key)] = bool(value)
        except ValueError:
            raise ValueError(f"driver {name}: unknown capability {key}") from None

    patch_options = {}
    for key, value in (declaration.get("patchOptions") or {}).items():
        if key not in PATCH_OPTION_KEYS:
            raise ValueError(f"driver {name}: unknown patch option {key}")
        if key == "driverContainerArguments":
            value = tuple(value)
        patch_options[PATCH_OPTION_KEYS[key]] = value

    return ManifestDriver(
        driver_info=DriverInfo(
            name=name,
            max_file_size=int(declaration["maxFileSize"]),
            supported_fs_types=frozenset(declaration.get("supportedFsTypes", [""])),
            capabilities=capabilities,
            feature_tag=declaration.get("featureTag", ""),
        ),
        sc_manifest=declaration["scManifest"],
        claim_size=str(declaration["claimSize"]),
        manifests=declaration.get("manifests") or (),
        patch_options=PatchCSIOptions(**patch_options),
        prefix=declaration.get("prefix", "csi"),
    )
