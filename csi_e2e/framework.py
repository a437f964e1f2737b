import logging
import os
import time
from typing import Any, Callable, List, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import NotFoundError, ResourceNotFoundError

import csi_e2e.const as const
from csi_e2e.manifest import (
    ManifestError,
    decode_item,
    describe_item,
    encode_item,
    load_manifest_file,
)


class CleanupError(Exception):
    """Raised when deployed objects could not be removed."""


# objects which only need to be moved into the test namespace
NAMESPACED_ITEMS = (
    client.V1ServiceAccount,
    client.V1Service,
    client.V1ConfigMap,
    client.V1Secret,
    client.V1Deployment,
    client.V1DaemonSet,
    client.V1StatefulSet,
    client.V1ReplicaSet,
)


class Framework:
    """
    Per-test view of the cluster used by drivers and test suites.

    Every test gets its own namespace, whose generated name doubles as the
    unique identifier of the test run.

    Args:
        base_name (str): Base for the generated namespace name.
        api_client (client.ApiClient): Configured kubernetes API client.
        repo_root (str): Directory relative manifest paths are resolved against.
        dynamic_client (Optional[DynamicClient]): Client used to create and delete
            arbitrary manifest objects. Created from api_client on first use.
    """

    def __init__(
        self,
        base_name: str,
        api_client: client.ApiClient,
        repo_root: str = ".",
        dynamic_client: Optional[DynamicClient] = None,
    ) -> None:
        self.base_name = base_name
        self.api_client = api_client
        self.repo_root = repo_root
        self.core_v1_api = client.CoreV1Api(api_client)
        self.storage_v1_api = client.StorageV1Api(api_client)
        self._dynamic_client = dynamic_client
        self.namespace: Optional[str] = None
        self.unique_name = ""

    @property
    def dynamic_client(self) -> DynamicClient:
        if self._dynamic_client is None:
            self._dynamic_client = DynamicClient(self.api_client)
        return self._dynamic_client

    def before_each(self) -> None:
        """Creates the test namespace and derives the unique name from it."""
        body = client.V1Namespace(
            metadata=client.V1ObjectMeta(
                generate_name=f"{const.NAMESPACE_PREFIX}{self.base_name}-"
            )
        )
        namespace = self.core_v1_api.create_namespace(body)
        self.namespace = namespace.metadata.name
        self.unique_name = self.namespace
        logging.info(f"namespace {self.namespace} created")

    def after_each(self, timeout: int = const.NAMESPACE_DELETE_TIMEOUT) -> None:
        """Deletes the test namespace and waits until it is gone."""
        if self.namespace is None:
            return
        namespace, self.namespace = self.namespace, None
        try:
            self.core_v1_api.delete_namespace(namespace)
        except ApiException as exc:
            if exc.status != 404:
                raise
        logging.info(f"namespace {namespace}: delete request sent")

        end_time = time.time() + timeout
        while time.time() < end_time:
            try:
                self.core_v1_api.read_namespace(namespace)
            except ApiException as exc:
                if exc.status == 404:
                    logging.info(f"namespace {namespace} deleted")
                    return
                raise
            time.sleep(const.POLL_INTERVAL)
        logging.warning(
            f"namespace {namespace} still exists after {timeout} seconds timeout"
        )

    def patch_name(self, name: Optional[str]) -> Optional[str]:
        if name:
            return f"{name}{const.UNIQUE_NAME_SEPARATOR}{self.unique_name}"
        return name

    def patch_namespace(self, namespace: Optional[str]) -> Optional[str]:
        if self.namespace is not None:
            return self.namespace
        return namespace

    def load_from_manifests(self, *paths: str) -> List[Any]:
        """
        Loads manifest files into typed kubernetes client objects.

        Args:
            *paths (str): Manifest paths, relative ones are resolved against repo_root.

        Returns:
            List[Any]: The decoded objects in file and document order.

        Raises:
            ManifestError: If a file cannot be read or contains an unsupported item.
        """
        items = []
        for path in paths:
            full_path = path if os.path.isabs(path) else os.path.join(self.repo_root, path)
            for doc in load_manifest_file(full_path):
                items.append(decode_item(doc, path))
        return items

    def patch_items(self, *items: Any) -> None:
        """
        Scopes objects to the current test: namespaced objects are moved into
        the test namespace, cluster-wide names get the unique name appended.

        Raises:
            ManifestError: If an item has a type which cannot be patched.
        """
        for item in items:
            self._patch_item(item)

    def _patch_item(self, item: Any) -> None:
        meta = item.metadata
        if isinstance(item, NAMESPACED_ITEMS):
            meta.namespace = self.patch_namespace(meta.namespace)
        elif isinstance(item, (client.V1ClusterRole, client.V1StorageClass)):
            meta.name = self.patch_name(meta.name)
        elif isinstance(item, client.V1Role):
            meta.namespace = self.patch_namespace(meta.namespace)
            # role refs are always renamed because they may point to a role or a cluster role
            meta.name = self.patch_name(meta.name)
        elif isinstance(item, client.V1ClusterRoleBinding):
            meta.name = self.patch_name(meta.name)
            self._patch_binding(item)
        elif isinstance(item, client.V1RoleBinding):
            meta.namespace = self.patch_namespace(meta.namespace)
            self._patch_binding(item)
        elif isinstance(item, client.V1CSIDriver):
            # named after the driver, renaming is up to the driver patch options
            pass
        else:
            raise ManifestError(
                f"missing support for patching item of type {type(item).__name__}"
            )

    def _patch_binding(self, binding: Any) -> None:
        for subject in binding.subjects or []:
            if subject.kind == "ServiceAccount":
                subject.namespace = self.patch_namespace(subject.namespace)
        role_ref = binding.role_ref
        if role_ref.name not in const.PREDEFINED_ROLES:
            role_ref.name = self.patch_name(role_ref.name)

    def create_items(self, *items: Any) -> Callable[[], None]:
        """
        Creates objects in the given order.

        If one of them fails, the objects created so far are removed again.

        Returns:
            Callable[[], None]: Removes all created objects in reverse order.

        Raises:
            ManifestError: If an object cannot be created.
        """
        created: List[Tuple[Any, Optional[str]]] = []

        def cleanup() -> None:
            errors = []
            while created:
                item, namespace = created.pop()
                logging.info(f"deleting {describe_item(item)}")
                try:
                    self._resource_for(item).delete(
                        name=item.metadata.name, namespace=namespace
                    )
                except NotFoundError:
                    logging.info(f"{describe_item(item)} already deleted")
                except (ApiException, ResourceNotFoundError) as exc:
                    logging.error(f"deleting {describe_item(item)} failed: {exc}")
                    errors.append(f"{describe_item(item)}: {exc}")
            if errors:
                raise CleanupError("; ".join(errors))

        for item in items:
            logging.info(f"creating {describe_item(item)}")
            try:
                resource = self._resource_for(item)
                namespace = None
                if resource.namespaced:
                    namespace = item.metadata.namespace or self.namespace
                resource.create(body=encode_item(item), namespace=namespace)
            except (ApiException, ResourceNotFoundError) as exc:
                try:
                    cleanup()
                except CleanupError as cleanup_exc:
                    logging.error(f"[cleanup] removing partial deployment failed: {cleanup_exc}")
                raise ManifestError(f"creating {describe_item(item)}: {exc}") from exc
            created.append((item, namespace))

        return cleanup

    def create_from_manifests(
        self, patch: Callable[[Any], None], *paths: str
    ) -> Callable[[], None]:
        """
        Loads, patches and creates all objects of the given manifests.

        Args:
            patch (Callable[[Any], None]): Called for every object before the
                framework scopes it to the test and creates it.
            *paths (str): Manifest paths.

        Returns:
            Callable[[], None]: Removes everything that was created.
        """
        items = self.load_from_manifests(*paths)
        for item in items:
            patch(item)
        self.patch_items(*items)
        return self.create_items(*items)

    def _resource_for(self, item: Any) -> Any:
        return self.dynamic_client.resources.get(
            api_version=item.api_version, kind=item.kind
        )

    def wait_for_pod_success(
        self, pod_name: str, timeout: int = const.POD_START_TIMEOUT
    ) -> bool:
        """
        Waits for a pod in the test namespace to terminate successfully.

        Returns:
            bool: True if the pod succeeded, False if it failed or timed out.
        """
        end_time = time.time() + timeout
        while time.time() < end_time:
            phase = self.core_v1_api.read_namespaced_pod(
                pod_name, self.namespace
            ).status.phase
            if phase == const.POD_SUCCEEDED:
                logging.info(f"pod {pod_name} succeeded")
                return True
            if phase == const.POD_FAILED:
                logging.error(f"pod {pod_name} failed")
                return False
            time.sleep(const.POLL_INTERVAL)
        logging.warning(f"pod {pod_name} not finished after {timeout} seconds timeout")
        return False

    def wait_for_claim_bound(
        self, claim_name: str, timeout: int = const.CLAIM_PROVISION_TIMEOUT
    ) -> bool:
        end_time = time.time() + timeout
        while time.time() < end_time:
            claim = self.core_v1_api.read_namespaced_persistent_volume_claim(
                claim_name, self.namespace
            )
            if claim.status is not None and claim.status.phase == const.PHASE_BOUND:
                logging.info(f"pvc {claim_name} bound to {claim.spec.volume_name}")
                return True
            time.sleep(const.POLL_INTERVAL)
        logging.warning(f"pvc {claim_name} not bound after {timeout} seconds timeout")
        return False

    def wait_for_pv_deleted(
        self, pv_name: str, timeout: int = const.PV_DELETE_TIMEOUT
    ) -> bool:
        end_time = time.time() + timeout
        while time.time() < end_time:
            try:
                self.core_v1_api.read_persistent_volume(pv_name)
            except ApiException as exc:
                if exc.status == 404:
                    logging.info(f"pv {pv_name} deleted")
                    return True
                raise
            time.sleep(const.POLL_INTERVAL)
        logging.warning(f"pv {pv_name} still exists after {timeout} seconds timeout")
        return False
