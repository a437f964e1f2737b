import abc
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

import pytest

from csi_e2e.framework import Framework
from csi_e2e.testdriver import (
    DynamicPVTestDriver,
    TestDriver,
    get_driver_name_with_feature_tags,
)
from csi_e2e.testpatterns import TestPattern, VolType

PatternTuner = Callable[[Sequence[TestPattern]], List[TestPattern]]

# driver interface needed for each volume type
VOL_TYPE_DRIVERS = {
    VolType.DYNAMIC_PV: DynamicPVTestDriver,
}


@dataclass(frozen=True)
class TestSuiteInfo:
    __test__ = False

    name: str
    test_patterns: Sequence[TestPattern]
    feature_tag: str = ""


class TestSuite(abc.ABC):
    __test__ = False

    @abc.abstractmethod
    def get_test_suite_info(self) -> TestSuiteInfo:
        """Returns the name and the patterns of the suite."""

    def skip_unsupported_test(self, driver: TestDriver, pattern: TestPattern) -> None:
        """Suite specific skips, none by default."""

    @abc.abstractmethod
    def execute(self, driver: TestDriver, pattern: TestPattern, framework: Framework) -> None:
        """Runs the test body for one driver and pattern."""


@dataclass(frozen=True)
class TestCase:
    """One registered (driver, suite, pattern) combination."""

    __test__ = False

    driver: TestDriver
    suite: TestSuite
    pattern: TestPattern

    @property
    def name(self) -> str:
        info = self.suite.get_test_suite_info()
        return (
            f"{get_driver_name_with_feature_tags(self.driver)} "
            f"[Testpattern: {self.pattern.name}]{self.pattern.feature_tag}"
            f"{info.feature_tag} {info.name}"
        )

    def skip_if_unsupported(self) -> None:
        skip_unsupported_test(self.suite, self.driver, self.pattern)

    def run(self, framework: Framework) -> None:
        logging.info(f"running {self.name}")
        self.suite.execute(self.driver, self.pattern, framework)


def skip_unsupported_test(suite: TestSuite, driver: TestDriver, pattern: TestPattern) -> None:
    """
    Skips the current test unless driver and suite can run the pattern.

    Called before any cluster resource is created for the test.
    """
    info = driver.get_driver_info()

    required = VOL_TYPE_DRIVERS.get(pattern.vol_type)
    if required is None or not isinstance(driver, required):
        pytest.skip(f"Driver {info.name} doesn't support {pattern.vol_type.value} -- skipping")

    if pattern.fs_type not in info.supported_fs_types:
        pytest.skip(f"Driver {info.name} doesn't support fs type {pattern.fs_type!r} -- skipping")

    suite.skip_unsupported_test(driver, pattern)
    driver.skip_unsupported_test(pattern)


def define_test_suite(
    driver: TestDriver,
    suite_factories: Iterable[Callable[[], TestSuite]],
    tune_patterns: Optional[PatternTuner] = None,
) -> List[TestCase]:
    """
    Registers one test case per suite and pattern for a driver.

    Args:
        driver (TestDriver): The driver under test.
        suite_factories (Iterable[Callable[[], TestSuite]]): Suite constructors.
        tune_patterns (Optional[PatternTuner]): Narrows each suite's patterns
            to those the driver family can run.

    Returns:
        List[TestCase]: Test cases in suite and pattern order.
    """
    cases = []
    for init_suite in suite_factories:
        suite = init_suite()
        patterns = list(suite.get_test_suite_info().test_patterns)
        if tune_patterns is not None:
            patterns = tune_patterns(patterns)
        for pattern in patterns:
            cases.append(TestCase(driver=driver, suite=suite, pattern=pattern))
    return cases
