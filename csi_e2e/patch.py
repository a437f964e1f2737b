import logging
import posixpath
from dataclasses import dataclass, replace
from typing import Any, Optional, Tuple

from kubernetes import client

import csi_e2e.const as const

# objects whose pod template carries the driver containers
WORKLOAD_ITEMS = (
    client.V1Deployment,
    client.V1DaemonSet,
    client.V1StatefulSet,
    client.V1ReplicaSet,
)


@dataclass(frozen=True)
class PatchCSIOptions:
    """
    Describes how a deployed CSI driver gets rewritten for one test run.

    Args:
        old_driver_name (str): Driver name used in the manifests.
        new_driver_name (str): Driver name to deploy under. A trailing separator
            means the unique name of the test run gets appended, see finalize().
        driver_container_name (str): Container receiving driver_container_arguments.
        driver_container_arguments (Tuple[str, ...]): Extra arguments for the driver container.
        provisioner_container_name (str): Container of the external provisioner.
        node_name (str): Pins all driver pods to this node when set.
        can_attach (Optional[bool]): Overrides attachRequired of the CSIDriver object.
    """

    old_driver_name: str = ""
    new_driver_name: str = ""
    driver_container_name: str = ""
    driver_container_arguments: Tuple[str, ...] = ()
    provisioner_container_name: str = ""
    node_name: str = ""
    can_attach: Optional[bool] = None

    def finalize(self, unique_name: str) -> "PatchCSIOptions":
        """
        Resolves the new driver name once the unique name of the run is known.

        Example:
            >>> PatchCSIOptions(new_driver_name="csi-hostpath-").finalize("abc123").new_driver_name
            'csi-hostpath-abc123'
        """
        if self.new_driver_name.endswith(const.UNIQUE_NAME_SEPARATOR):
            return replace(self, new_driver_name=self.new_driver_name + unique_name)
        return self

    @property
    def rename(self) -> bool:
        return bool(
            self.old_driver_name
            and self.new_driver_name
            and self.old_driver_name != self.new_driver_name
        )


def patch_csi_deployment(options: PatchCSIOptions, item: Any) -> None:
    """
    Rewrites a driver object in place so that it matches the patch options.

    Workloads get their containers and volumes updated, a StorageClass its
    provisioner and a CSIDriver its name and attach mode. Everything else is
    left untouched.

    Args:
        options (PatchCSIOptions): Finalized patch options.
        item (Any): A kubernetes client object loaded from a manifest.
    """
    if isinstance(item, WORKLOAD_ITEMS):
        _patch_pod_spec(options, item.spec.template.spec)
    elif isinstance(item, client.V1StorageClass):
        if options.new_driver_name:
            # driver name is expected to be the same as the provisioner name
            item.provisioner = options.new_driver_name
    elif isinstance(item, client.V1CSIDriver):
        if options.new_driver_name:
            item.metadata.name = options.new_driver_name
        if options.can_attach is not None:
            item.spec.attach_required = options.can_attach
    else:
        return
    logging.debug(f"{item.kind}/{item.metadata.name} patched for driver {options.new_driver_name}")


def _patch_pod_spec(options: PatchCSIOptions, spec: client.V1PodSpec) -> None:
    for container in spec.containers or []:
        _patch_container(options, container)
    if options.rename:
        for volume in spec.volumes or []:
            # paths like /var/lib/kubelet/plugins/<driver name>
            if volume.host_path is None:
                continue
            directory, name = posixpath.split(volume.host_path.path)
            if name == options.old_driver_name:
                volume.host_path.path = posixpath.join(directory, options.new_driver_name)
    if options.node_name:
        spec.node_name = options.node_name


def _patch_container(options: PatchCSIOptions, container: client.V1Container) -> None:
    args = list(container.args or [])
    if options.rename:
        # e.g. --kubelet-registration-path=/var/lib/kubelet/plugins/<driver name>/csi.sock
        old = f"/{options.old_driver_name}/"
        new = f"/{options.new_driver_name}/"
        args = [arg.replace(old, new, 1) for arg in args]
    if options.driver_container_name and container.name == options.driver_container_name:
        args.extend(options.driver_container_arguments)
    elif options.provisioner_container_name and container.name == options.provisioner_container_name:
        args.append(f"--provisioner={options.new_driver_name}")
    if args or container.args is not None:
        container.args = args
