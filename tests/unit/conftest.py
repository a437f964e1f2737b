from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import NotFoundError

from csi_e2e.csi_volumes import ManifestDriver
from csi_e2e.framework import Framework
from csi_e2e.testdriver import Capability, DriverInfo

UNIQUE_NAME = "abc123"

NAMESPACED_KINDS = {"ServiceAccount", "Service", "ConfigMap", "Secret", "DaemonSet",
                    "StatefulSet", "Deployment", "ReplicaSet", "Role", "RoleBinding"}

SC_MANIFEST = """\
apiVersion: storage.k8s.io/v1
kind: StorageClass
metadata:
  name: example-sc
provisioner: pmem-csi
reclaimPolicy: Delete
parameters:
  csi.storage.k8s.io/fstype: ext4
"""

TWO_SC_MANIFEST = SC_MANIFEST + "---\n" + SC_MANIFEST.replace("example-sc", "other-sc")

SERVICE_ACCOUNT_MANIFEST = """\
apiVersion: v1
kind: ServiceAccount
metadata:
  name: pmem-csi-controller
  namespace: default
"""

DRIVER_MANIFEST = SERVICE_ACCOUNT_MANIFEST + """\
---
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRole
metadata:
  name: pmem-csi-external-provisioner-runner
rules:
- apiGroups: [""]
  resources: ["persistentvolumes"]
  verbs: ["get", "list", "create", "delete"]
---
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRoleBinding
metadata:
  name: pmem-csi-provisioner-role
subjects:
- kind: ServiceAccount
  name: pmem-csi-controller
  namespace: default
roleRef:
  kind: ClusterRole
  name: pmem-csi-external-provisioner-runner
  apiGroup: rbac.authorization.k8s.io
---
apiVersion: storage.k8s.io/v1
kind: CSIDriver
metadata:
  name: pmem-csi
spec:
  attachRequired: false
---
apiVersion: apps/v1
kind: DaemonSet
metadata:
  name: pmem-csi-node
  namespace: default
spec:
  selector:
    matchLabels:
      app: pmem-csi-node
  template:
    metadata:
      labels:
        app: pmem-csi-node
    spec:
      containers:
      - name: pmem-driver
        image: pmem-csi-driver:canary
        args: ["-mode=node"]
      - name: driver-registrar
        image: quay.io/k8scsi/driver-registrar:v1.0.1
        args: ["--kubelet-registration-path=/var/lib/kubelet/plugins/pmem-csi/csi.sock"]
      volumes:
      - name: registration-dir
        hostPath:
          path: /var/lib/kubelet/plugins/pmem-csi
          type: DirectoryOrCreate
"""


class FakeResource:
    def __init__(self, cluster: "FakeCluster", kind: str) -> None:
        self.cluster = cluster
        self.kind = kind
        self.namespaced = kind in NAMESPACED_KINDS

    def create(self, body: Dict[str, Any], namespace: Optional[str] = None) -> Dict[str, Any]:
        if self.kind in self.cluster.fail_create:
            raise ApiException(status=500, reason=f"creating {self.kind} refused")
        key = (self.kind, namespace, body["metadata"]["name"])
        if key in self.cluster.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        self.cluster.objects[key] = body
        self.cluster.log.append(("create", key))
        return body

    def delete(self, name: str, namespace: Optional[str] = None) -> None:
        if self.kind in self.cluster.fail_delete:
            raise ApiException(status=500, reason=f"deleting {self.kind} refused")
        key = (self.kind, namespace, name)
        if key not in self.cluster.objects:
            raise NotFoundError(ApiException(status=404, reason="Not Found"))
        del self.cluster.objects[key]
        self.cluster.log.append(("delete", key))


class FakeCluster:
    """Stands in for the dynamic client and records what gets deployed."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, Optional[str], str], Dict[str, Any]] = {}
        self.log: List[Tuple[str, Tuple[str, Optional[str], str]]] = []
        self.fail_create = set()
        self.fail_delete = set()
        self.resources = self

    def get(self, api_version: str, kind: str) -> FakeResource:
        return FakeResource(self, kind)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    (tmp_path / "sc.yaml").write_text(SC_MANIFEST)
    (tmp_path / "two-sc.yaml").write_text(TWO_SC_MANIFEST)
    (tmp_path / "empty.yaml").write_text("---\n")
    (tmp_path / "sa.yaml").write_text(SERVICE_ACCOUNT_MANIFEST)
    (tmp_path / "driver.yaml").write_text(DRIVER_MANIFEST)
    return tmp_path


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def framework(repo: Path, cluster: FakeCluster) -> Framework:
    framework = Framework(
        base_name="csi-volumes",
        api_client=MagicMock(),
        repo_root=str(repo),
        dynamic_client=cluster,
    )
    framework.namespace = UNIQUE_NAME
    framework.unique_name = UNIQUE_NAME
    return framework


@pytest.fixture
def driver_info() -> DriverInfo:
    return DriverInfo(
        name="pmem-csi",
        max_file_size=100 * 1024 * 1024,
        supported_fs_types=frozenset([""]),
        capabilities={Capability.PERSISTENCE: True},
    )


@pytest.fixture
def driver(driver_info: DriverInfo) -> ManifestDriver:
    return ManifestDriver(
        driver_info=driver_info,
        sc_manifest="sc.yaml",
        claim_size="1Mi",
        manifests=["driver.yaml"],
        prefix="pmem",
    )
