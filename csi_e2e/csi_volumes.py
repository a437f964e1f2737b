import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

import pytest
from kubernetes import client

import csi_e2e.const as const
from csi_e2e.framework import Framework
from csi_e2e.manifest import ManifestError
from csi_e2e.patch import PatchCSIOptions, patch_csi_deployment
from csi_e2e.provisioning import ProvisioningTestSuite
from csi_e2e.testdriver import (
    Capability,
    CleanupHandle,
    DriverInfo,
    DynamicPVTestDriver,
    PerTestConfig,
    TestDriver,
)
from csi_e2e.testpatterns import TestPattern, VolType
from csi_e2e.testsuite import TestCase, TestSuite, define_test_suite

# CSI drivers only provision volumes through a storage class
UNSUPPORTED_VOL_TYPES = (VolType.INLINE_VOLUME, VolType.PREPROVISIONED_PV)


def csi_tune_patterns(patterns: Sequence[TestPattern]) -> List[TestPattern]:
    """
    Drops inline volume and pre-provisioned PV patterns, the remaining ones
    keep their order.
    """
    return [p for p in patterns if p.vol_type not in UNSUPPORTED_VOL_TYPES]


class ManifestDriver(DynamicPVTestDriver):
    """
    CSI driver which gets deployed from manifest files for each test and
    provisions volumes through a storage class manifest.

    Args:
        driver_info (DriverInfo): Static description of the driver.
        sc_manifest (str): Manifest with exactly one StorageClass.
        claim_size (str): Size of the claims created by the tests.
        manifests (Sequence[str]): Manifests deploying the driver itself.
        patch_options (PatchCSIOptions): Rewrites applied to every deployed object.
        prefix (str): Name prefix for objects created by the tests.
    """

    def __init__(
        self,
        driver_info: DriverInfo,
        sc_manifest: str,
        claim_size: str,
        manifests: Sequence[str] = (),
        patch_options: PatchCSIOptions = PatchCSIOptions(),
        prefix: str = "csi",
    ) -> None:
        self.driver_info = driver_info
        self.sc_manifest = sc_manifest
        self.claim_size = claim_size
        self.manifests = tuple(manifests)
        self.patch_options = patch_options
        self.prefix = prefix
        self.cleanup: Optional[CleanupHandle] = None

    def get_driver_info(self) -> DriverInfo:
        return self.driver_info

    def skip_unsupported_test(self, pattern: TestPattern) -> None:
        pass

    def get_dynamic_provision_storage_class(
        self, config: PerTestConfig, fs_type: str
    ) -> client.V1StorageClass:
        # fs type is fixed by the storage class manifest
        framework = config.framework
        name = self.driver_info.name

        try:
            items = framework.load_from_manifests(self.sc_manifest)
        except ManifestError as exc:
            pytest.fail(f"driver {name}: loading storage class from {self.sc_manifest}: {exc}")
        assert len(items) == 1, \
            f"driver {name}: exactly one item from {self.sc_manifest}, got {len(items)}"

        try:
            framework.patch_items(*items)
            patch_csi_deployment(self.final_patch_options(framework), items[0])
        except ManifestError as exc:
            pytest.fail(f"driver {name}: patching storage class from {self.sc_manifest}: {exc}")

        storage_class = items[0]
        assert isinstance(storage_class, client.V1StorageClass), \
            f"driver {name}: storage class from {self.sc_manifest}, got {type(storage_class).__name__}"
        return storage_class

    def get_claim_size(self) -> str:
        return self.claim_size

    def prepare_test(self, framework: Framework) -> Tuple[PerTestConfig, CleanupHandle]:
        name = self.driver_info.name
        if self.cleanup is not None and not self.cleanup.released:
            pytest.fail(f"driver {name} is still deployed, its tests have to run sequentially")

        logging.info(f"deploying {name} driver")
        config = PerTestConfig(driver=self, prefix=self.prefix, framework=framework)
        patch_options = self.final_patch_options(framework)

        def patch(item: Any) -> None:
            patch_csi_deployment(patch_options, item)

        try:
            uninstall = framework.create_from_manifests(patch, *self.manifests)
        except ManifestError as exc:
            pytest.fail(f"deploying driver {name} from {', '.join(self.manifests)}: {exc}")

        self.cleanup = CleanupHandle(f"uninstalling {name} driver", uninstall)
        return config, self.cleanup

    def final_patch_options(self, framework: Framework) -> PatchCSIOptions:
        # the unique name is not known yet when the driver gets declared
        return self.patch_options.finalize(framework.unique_name)


def init_pmem_csi_driver() -> TestDriver:
    return ManifestDriver(
        driver_info=DriverInfo(
            name=const.PMEM_DRIVER_NAME,
            max_file_size=const.FILE_SIZE_MEDIUM,
            supported_fs_types=frozenset([
                const.DEFAULT_FS_TYPE,
            ]),
            capabilities={
                Capability.PERSISTENCE: True,
                Capability.FS_GROUP: True,
                Capability.EXEC: True,
            },
        ),
        sc_manifest=const.PMEM_SC_MANIFEST,
        # No manifests: the driver installed in the cluster gets used. It
        # assumes exclusive control of the PMEM on each node, so renaming is
        # not enabled and a second copy must not be deployed.
        claim_size=const.PMEM_CLAIM_SIZE,
        prefix=const.PMEM_PREFIX,
    )


CSI_TEST_DRIVERS: Tuple[Callable[[], TestDriver], ...] = (
    init_pmem_csi_driver,
)

CSI_TEST_SUITES: Tuple[Callable[[], TestSuite], ...] = (
    ProvisioningTestSuite,
)


def define_csi_volume_tests(
    driver_factories: Iterable[Callable[[], TestDriver]] = CSI_TEST_DRIVERS,
    suite_factories: Iterable[Callable[[], TestSuite]] = CSI_TEST_SUITES,
) -> List[TestCase]:
    """
    Builds the test cases for every driver and suite.

    Each factory is called once, so all cases of one driver share the
    driver instance.
    """
    suite_factories = tuple(suite_factories)
    cases = []
    for init_driver in driver_factories:
        driver = init_driver()
        cases.extend(define_test_suite(driver, suite_factories, tune_patterns=csi_tune_patterns))
    return cases
