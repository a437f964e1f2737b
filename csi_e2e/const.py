# naming
UNIQUE_NAME_SEPARATOR = "-"
NAMESPACE_PREFIX = "e2e-tests-"
DEFAULT_NAMESPACE_BASE = "csi-volumes"
DEFAULT_FS_TYPE = ""

# roles defined cluster-wide before the test run, exempt from renaming
PREDEFINED_ROLES = frozenset(["e2e-test-privileged-psp"])

# file sizes
KI_B = 1024
MI_B = 1024 * KI_B
GI_B = 1024 * MI_B
FILE_SIZE_SMALL = 1 * MI_B
FILE_SIZE_MEDIUM = 100 * MI_B
FILE_SIZE_LARGE = 1 * GI_B

# pmem-csi
PMEM_DRIVER_NAME = "pmem-csi"
PMEM_PREFIX = "pmem"
PMEM_CLAIM_SIZE = "1Mi"
PMEM_SC_MANIFEST = "deploy/kubernetes-1.13/pmem-storageclass-ext4.yaml"

# provisioning
CLAIM_ACCESS_MODE = "ReadWriteOnce"
RECLAIM_POLICY_DELETE = "Delete"
POD_IMAGE = "busybox:1.36"
VOLUME_MOUNT_PATH = "/mnt/test"
VOLUME_DATA = "hello world"

# phases
PHASE_BOUND = "Bound"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"

# timeouts (seconds)
POD_START_TIMEOUT = 300
CLAIM_PROVISION_TIMEOUT = 300
PV_DELETE_TIMEOUT = 300
NAMESPACE_DELETE_TIMEOUT = 300
POLL_INTERVAL = 2
