import abc
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from kubernetes import client

from csi_e2e.framework import CleanupError, Framework
from csi_e2e.testpatterns import TestPattern


class Capability(str, Enum):
    PERSISTENCE = "persistence"  # data is persisted across pod restarts
    BLOCK = "block"  # raw block mode
    FS_GROUP = "fsGroup"  # volume ownership via fsGroup
    EXEC = "exec"  # exec a file in the volume
    DATA_SOURCE = "dataSource"  # provisioning from a data source


@dataclass(frozen=True)
class DriverInfo:
    """
    Static description of a driver family.

    Args:
        name (str): Driver name, unique within a test run.
        max_file_size (int): Largest file size in bytes the tests may write.
        supported_fs_types (FrozenSet[str]): Supported filesystem types,
            the empty string stands for the default fs type.
        capabilities (Mapping[Capability, bool]): Capabilities of the driver,
            missing keys count as unsupported.
        feature_tag (str): Tag appended to the driver name in test names.
    """

    name: str
    max_file_size: int
    supported_fs_types: FrozenSet[str] = frozenset([""])
    capabilities: Mapping[Capability, bool] = field(default_factory=dict)
    feature_tag: str = ""

    def has_capability(self, capability: Capability) -> bool:
        return self.capabilities.get(capability, False)


@dataclass
class PerTestConfig:
    """Scoped configuration of one test case, discarded when the test ends."""

    driver: "TestDriver"
    prefix: str
    framework: Framework
    client_node_name: str = ""
    client_node_selector: Dict[str, str] = field(default_factory=dict)


class CleanupHandle:
    """
    Undoes whatever TestDriver.prepare_test deployed.

    release() must be called exactly once, after the test body, on every
    exit path. Using the handle as a context manager does that.
    """

    def __init__(self, description: str, release: Callable[[], None]) -> None:
        self.description = description
        self._release = release
        self.released = False

    def release(self) -> None:
        if self.released:
            raise RuntimeError(f"{self.description}: already released")
        self.released = True
        logging.info(self.description)
        try:
            self._release()
        except CleanupError as exc:
            logging.error(f"[cleanup] {self.description} failed: {exc}")
            raise
        except Exception as exc:
            logging.error(f"[cleanup] {self.description} failed: {exc}")
            raise CleanupError(f"{self.description}: {exc}") from exc

    def __enter__(self) -> "CleanupHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.release()
            return False
        try:
            self.release()
        except CleanupError:
            # already logged, the failure of the test body takes precedence
            pass
        return False


class TestDriver(abc.ABC):
    __test__ = False

    @abc.abstractmethod
    def get_driver_info(self) -> DriverInfo:
        """Returns the static description of the driver."""

    @abc.abstractmethod
    def skip_unsupported_test(self, pattern: TestPattern) -> None:
        """Skips the current test if the driver cannot run the pattern."""

    @abc.abstractmethod
    def prepare_test(self, framework: Framework) -> Tuple[PerTestConfig, CleanupHandle]:
        """Deploys the driver for one test."""


class DynamicPVTestDriver(TestDriver):
    @abc.abstractmethod
    def get_dynamic_provision_storage_class(
        self, config: PerTestConfig, fs_type: str
    ) -> Optional[client.V1StorageClass]:
        """Returns a storage class which provisions volumes through the driver."""

    @abc.abstractmethod
    def get_claim_size(self) -> str:
        """Returns the size of claims created by the tests, e.g. "5Gi"."""


def get_driver_name_with_feature_tags(driver: Any) -> str:
    info = driver.get_driver_info()
    return f"[Driver: {info.name}]{info.feature_tag}"
