from dataclasses import dataclass
from enum import Enum

import csi_e2e.const as const


class VolType(str, Enum):
    INLINE_VOLUME = "InlineVolume"
    PREPROVISIONED_PV = "PreprovisionedPV"
    DYNAMIC_PV = "DynamicPV"


@dataclass(frozen=True)
class TestPattern:
    """
    One volume provisioning shape a test suite can exercise.

    Args:
        name (str): Human readable pattern name, used in test ids.
        vol_type (VolType): How the volume reaches the pod.
        fs_type (str): Filesystem type, empty string for the driver default.
        feature_tag (str): Tag appended to test names, e.g. "[Slow]".
    """

    __test__ = False

    name: str
    vol_type: VolType
    fs_type: str = const.DEFAULT_FS_TYPE
    feature_tag: str = ""


# default fs
DEFAULT_FS_INLINE_VOLUME = TestPattern("Inline-volume (default fs)", VolType.INLINE_VOLUME)
DEFAULT_FS_PREPROVISIONED_PV = TestPattern("Pre-provisioned PV (default fs)", VolType.PREPROVISIONED_PV)
DEFAULT_FS_DYNAMIC_PV = TestPattern("Dynamic PV (default fs)", VolType.DYNAMIC_PV)

# ext3
EXT3_INLINE_VOLUME = TestPattern("Inline-volume (ext3)", VolType.INLINE_VOLUME, "ext3")
EXT3_PREPROVISIONED_PV = TestPattern("Pre-provisioned PV (ext3)", VolType.PREPROVISIONED_PV, "ext3")
EXT3_DYNAMIC_PV = TestPattern("Dynamic PV (ext3)", VolType.DYNAMIC_PV, "ext3")

# ext4
EXT4_INLINE_VOLUME = TestPattern("Inline-volume (ext4)", VolType.INLINE_VOLUME, "ext4")
EXT4_PREPROVISIONED_PV = TestPattern("Pre-provisioned PV (ext4)", VolType.PREPROVISIONED_PV, "ext4")
EXT4_DYNAMIC_PV = TestPattern("Dynamic PV (ext4)", VolType.DYNAMIC_PV, "ext4")

# xfs
XFS_INLINE_VOLUME = TestPattern("Inline-volume (xfs)", VolType.INLINE_VOLUME, "xfs", "[Slow]")
XFS_PREPROVISIONED_PV = TestPattern("Pre-provisioned PV (xfs)", VolType.PREPROVISIONED_PV, "xfs", "[Slow]")
XFS_DYNAMIC_PV = TestPattern("Dynamic PV (xfs)", VolType.DYNAMIC_PV, "xfs", "[Slow]")

ALL_PATTERNS = (
    DEFAULT_FS_INLINE_VOLUME,
    DEFAULT_FS_PREPROVISIONED_PV,
    DEFAULT_FS_DYNAMIC_PV,
    EXT3_INLINE_VOLUME,
    EXT3_PREPROVISIONED_PV,
    EXT3_DYNAMIC_PV,
    EXT4_INLINE_VOLUME,
    EXT4_PREPROVISIONED_PV,
    EXT4_DYNAMIC_PV,
    XFS_INLINE_VOLUME,
    XFS_PREPROVISIONED_PV,
    XFS_DYNAMIC_PV,
)
