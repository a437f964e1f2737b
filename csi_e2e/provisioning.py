import logging

import pytest
from kubernetes import client
from kubernetes.utils import parse_quantity

import csi_e2e.const as const
from csi_e2e.framework import Framework
from csi_e2e.testdriver import (
    Capability,
    DriverInfo,
    DynamicPVTestDriver,
    PerTestConfig,
    TestDriver,
)
from csi_e2e.testpatterns import DEFAULT_FS_DYNAMIC_PV, TestPattern
from csi_e2e.testsuite import TestSuite, TestSuiteInfo


class ProvisioningTestSuite(TestSuite):
    """Checks that the driver dynamically provisions usable volumes."""

    def __init__(self) -> None:
        self.info = TestSuiteInfo(
            name="provisioning",
            test_patterns=(DEFAULT_FS_DYNAMIC_PV,),
        )

    def get_test_suite_info(self) -> TestSuiteInfo:
        return self.info

    def skip_unsupported_test(self, driver: TestDriver, pattern: TestPattern) -> None:
        if not isinstance(driver, DynamicPVTestDriver):
            pytest.skip(f"Driver {driver.get_driver_info().name} doesn't support dynamic provisioning -- skipping")

    def execute(self, driver: DynamicPVTestDriver, pattern: TestPattern, framework: Framework) -> None:
        info = driver.get_driver_info()
        config, cleanup = driver.prepare_test(framework)
        with cleanup:
            storage_class = driver.get_dynamic_provision_storage_class(config, pattern.fs_type)
            if storage_class is None:
                pytest.skip(f"Driver {info.name} does not define a dynamic provision storage class -- skipping")
            assert isinstance(storage_class, client.V1StorageClass), \
                f"Driver {info.name} returned {type(storage_class).__name__} instead of a storage class"

            claim = build_claim(config.prefix, driver.get_claim_size())
            check_dynamic_provisioning(config, storage_class, claim, info)


def build_claim(prefix: str, claim_size: str) -> client.V1PersistentVolumeClaim:
    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=client.V1ObjectMeta(generate_name=f"{prefix}-"),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=[const.CLAIM_ACCESS_MODE],
            resources=client.V1VolumeResourceRequirements(
                requests={"storage": claim_size}
            ),
        ),
    )


def check_dynamic_provisioning(
    config: PerTestConfig,
    storage_class: client.V1StorageClass,
    claim: client.V1PersistentVolumeClaim,
    info: DriverInfo,
) -> None:
    """
    Creates the storage class and a claim for it, writes and reads data
    through a pod and verifies the provisioned PV.

    Args:
        config (PerTestConfig): The configuration of the running test.
        storage_class (client.V1StorageClass): Storage class to create.
        claim (client.V1PersistentVolumeClaim): Claim to create, its storage class gets set here.
        info (DriverInfo): The driver under test.
    """
    framework = config.framework
    core_v1_api = framework.core_v1_api
    namespace = framework.namespace

    logging.info(f"creating storage class {storage_class.metadata.name}")
    storage_class = framework.storage_v1_api.create_storage_class(storage_class)
    sc_name = storage_class.metadata.name
    try:
        claim.spec.storage_class_name = sc_name
        claim = core_v1_api.create_namespaced_persistent_volume_claim(namespace, claim)
        claim_name = claim.metadata.name
        logging.info(f"pvc {claim_name} created with storage class {sc_name}")

        pv = None
        try:
            logging.info("checking the created volume is writable")
            run_in_pod_with_volume(
                config, claim_name,
                f"echo '{const.VOLUME_DATA}' > {const.VOLUME_MOUNT_PATH}/data",
            )
            if info.has_capability(Capability.PERSISTENCE):
                logging.info("checking the created volume is readable and retains data")
                run_in_pod_with_volume(
                    config, claim_name,
                    f"grep '{const.VOLUME_DATA}' {const.VOLUME_MOUNT_PATH}/data",
                )

            assert framework.wait_for_claim_bound(claim_name), \
                f"pvc {claim_name} not bound"
            claim = core_v1_api.read_namespaced_persistent_volume_claim(claim_name, namespace)
            pv = core_v1_api.read_persistent_volume(claim.spec.volume_name)

            requested = parse_quantity(claim.spec.resources.requests["storage"])
            capacity = parse_quantity(pv.spec.capacity["storage"])
            assert capacity >= requested, \
                f"pv {pv.metadata.name} capacity {capacity} is smaller than the requested {requested}"
            assert pv.spec.storage_class_name == sc_name, \
                f"pv {pv.metadata.name} has storage class {pv.spec.storage_class_name}, expected {sc_name}"
            assert pv.spec.claim_ref.name == claim_name, \
                f"pv {pv.metadata.name} is bound to {pv.spec.claim_ref.name}, expected {claim_name}"
        finally:
            logging.info(f"deleting pvc {claim_name}")
            core_v1_api.delete_namespaced_persistent_volume_claim(claim_name, namespace)

        if pv.spec.persistent_volume_reclaim_policy == const.RECLAIM_POLICY_DELETE:
            assert framework.wait_for_pv_deleted(pv.metadata.name), \
                f"pv {pv.metadata.name} not deleted after its claim was removed"
    finally:
        logging.info(f"deleting storage class {sc_name}")
        framework.storage_v1_api.delete_storage_class(sc_name)


def run_in_pod_with_volume(config: PerTestConfig, claim_name: str, command: str) -> None:
    """Runs a shell command in a pod with the claim mounted and waits for it to succeed."""
    framework = config.framework
    core_v1_api = framework.core_v1_api
    pod = client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(generate_name=f"{config.prefix}-volume-tester-"),
        spec=client.V1PodSpec(
            restart_policy="Never",
            node_name=config.client_node_name or None,
            node_selector=config.client_node_selector or None,
            containers=[
                client.V1Container(
                    name="volume-tester",
                    image=const.POD_IMAGE,
                    image_pull_policy="IfNotPresent",
                    command=["/bin/sh", "-c", command],
                    volume_mounts=[
                        client.V1VolumeMount(
                            name="my-volume",
                            mount_path=const.VOLUME_MOUNT_PATH,
                        )
                    ],
                )
            ],
            volumes=[
                client.V1Volume(
                    name="my-volume",
                    persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                        claim_name=claim_name
                    ),
                )
            ],
        ),
    )
    pod = core_v1_api.create_namespaced_pod(framework.namespace, pod)
    pod_name = pod.metadata.name
    try:
        assert framework.wait_for_pod_success(pod_name), \
            f"pod {pod_name} running {command!r} did not succeed"
    finally:
        core_v1_api.delete_namespaced_pod(pod_name, framework.namespace, grace_period_seconds=0)
