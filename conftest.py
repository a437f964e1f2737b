import logging
import os
from datetime import datetime
from typing import Generator

import pytest
from kubernetes.config import ConfigException

import csi_e2e.const as const
from csi_e2e.config import load_driver_factories
from csi_e2e.csi_volumes import CSI_TEST_DRIVERS, CSI_TEST_SUITES, define_csi_volume_tests
from csi_e2e.framework import Framework
from csi_e2e.kubernetes_helper import KubernetesHelper
from csi_e2e.test_description_plugin import TestDescriptionPlugin


@pytest.hookimpl(trylast=True)
def pytest_configure(config):
    terminal_reporter = config.pluginmanager.getplugin('terminalreporter')
    if terminal_reporter is not None:
        config.pluginmanager.register(TestDescriptionPlugin(terminal_reporter), 'testdescription')

    # Configure log file logging
    os.makedirs('logs', exist_ok=True)
    log_file_suffix = '{:%Y_%m_%d_%H%M%S}.log'.format(datetime.now())
    log_file = f'logs/pytest_{log_file_suffix}'
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.INFO)
    file_formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    file_handler.setFormatter(file_formatter)
    logging.getLogger().addHandler(file_handler)


def pytest_addoption(parser):
    parser.addoption("--repo-root", action="store", default=".", help="Directory manifest paths are relative to")
    parser.addoption("--driver-config", action="store", default="", help="YAML file declaring the drivers under test")
    parser.addoption("--namespace-base", action="store", default=const.DEFAULT_NAMESPACE_BASE, help="Base name of the test namespaces")


def pytest_generate_tests(metafunc):
    if "csi_test_case" not in metafunc.fixturenames:
        return
    driver_config = metafunc.config.getoption("--driver-config")
    drivers = load_driver_factories(driver_config) if driver_config else CSI_TEST_DRIVERS
    cases = define_csi_volume_tests(drivers, CSI_TEST_SUITES)
    metafunc.parametrize("csi_test_case", cases, ids=[case.name for case in cases])


@pytest.fixture(scope="session")
def repo_root(request) -> str:
    return request.config.getoption("--repo-root")


@pytest.fixture(scope="session")
def namespace_base(request) -> str:
    return request.config.getoption("--namespace-base")


@pytest.fixture(scope="session")
def kube_api_client():
    try:
        api_client = KubernetesHelper.load_api_client()
    except ConfigException as exc:
        pytest.skip(f'No cluster configuration found: {exc}')
    yield api_client
    api_client.close()


@pytest.fixture
def framework(kube_api_client, repo_root: str, namespace_base: str) -> Generator[Framework, None, None]:
    framework = Framework(base_name=namespace_base, api_client=kube_api_client, repo_root=repo_root)
    framework.before_each()
    yield framework
    framework.after_each()
