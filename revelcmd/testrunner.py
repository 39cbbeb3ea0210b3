"""Run an application's test suites over HTTP and record the results."""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import BuildError
from .files import render_template

log = logging.getLogger("revelcmd")

SUITE_RESULT_TEMPLATE = os.path.join("app", "views", "TestRunner", "SuiteResult.html")
_TIMEOUT_SECONDS = 60.0


def _field(data: Mapping[str, Any], name: str, default: Any = None) -> Any:
    """Look up a JSON key without regard to case."""
    if name in data:
        return data[name]
    lowered = name.lower()
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == lowered:
            return value
    return default


def _require_object(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected a JSON object for {what}, got {type(data).__name__}")
    return data


@dataclass
class TestDesc:
    """A single test method within a suite."""

    __test__ = False

    name: str = ""

    @classmethod
    def from_json(cls, data: Any) -> TestDesc:
        """Build from a decoded JSON object."""
        if data is None:
            return cls()
        obj = _require_object(data, "test")
        return cls(name=str(_field(obj, "Name", "") or ""))


@dataclass
class TestSuiteDesc:
    """A suite and the tests it holds."""

    __test__ = False

    name: str = ""
    tests: list[TestDesc] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> TestSuiteDesc:
        """Build from a decoded JSON object."""
        if data is None:
            return cls()
        obj = _require_object(data, "test suite")
        tests = _field(obj, "Tests") or []
        return cls(
            name=str(_field(obj, "Name", "") or ""),
            tests=[TestDesc.from_json(item) for item in tests],
        )


@dataclass
class TestResult:
    """The outcome of running one test."""

    __test__ = False

    name: str = ""
    passed: bool = False
    error_html: str = ""
    error_summary: str = ""

    @classmethod
    def from_json(cls, data: Any) -> TestResult:
        """Build from a decoded JSON object."""
        if data is None:
            return cls()
        obj = _require_object(data, "test result")
        return cls(
            name=str(_field(obj, "Name", "") or ""),
            passed=bool(_field(obj, "Passed", False)),
            error_html=str(_field(obj, "ErrorHTML", "") or ""),
            error_summary=str(_field(obj, "ErrorSummary", "") or ""),
        )


@dataclass
class TestSuiteResult:
    """The outcome of every test in one suite."""

    __test__ = False

    name: str = ""
    passed: bool = True
    results: list[TestResult] = field(default_factory=list)


def pluralize(num: int, singular: str, plural: str) -> str:
    """Pick the singular form for exactly one, the plural otherwise."""
    return singular if num == 1 else plural


def filter_test_suites(
    suites: list[TestSuiteDesc], suite_argument: str
) -> list[TestSuiteDesc]:
    """Keep only the suite, or the single test, named by ``Suite[.Test]``.

    Raises LookupError when the suite or the test cannot be found.
    """
    parts = suite_argument.split(".")
    suite_name = parts[0]
    if not suite_name:
        return suites
    test_name = parts[1] if len(parts) == 2 else ""

    for suite in suites:
        if suite.name != suite_name:
            continue
        if not test_name:
            return [suite]
        for test in suite.tests:
            if test.name == test_name:
                return [TestSuiteDesc(name=suite.name, tests=[test])]
        log.error("Couldn't find test %s in suite %s", test_name, suite_name)
    log.error("Couldn't find test suite %s", suite_name)
    if test_name:
        raise LookupError(f"Couldn't find test {test_name} in suite {suite_name}")
    raise LookupError(f"Couldn't find test suite {suite_name}")


def get_tests_list(
    base_url: str, attempts: int = 4, delay: float = 3.0
) -> list[TestSuiteDesc]:
    """Fetch the list of test suites from a running application.

    The server may still be starting, so the request is retried, sleeping
    ``delay`` seconds between attempts. Raises ConnectionError when every
    attempt fails and ValueError when the answer cannot be decoded.
    """
    url = base_url + "/@tests.list"
    problem: object = None
    for attempt in range(attempts):
        try:
            with urllib.request.urlopen(url, timeout=_TIMEOUT_SECONDS) as response:
                if response.status == 200:
                    body = response.read()
                    data = json.loads(body)
                    if not isinstance(data, list):
                        raise ValueError("expected a JSON list of test suites")
                    return [TestSuiteDesc.from_json(item) for item in data]
                problem = f"non-200 response {base_url}"
        except urllib.error.HTTPError as exc:
            exc.close()
            problem = f"non-200 response {base_url}"
        except OSError as exc:
            problem = exc
        if attempt < attempts - 1:
            time.sleep(delay)
    raise ConnectionError(f"Failed to request test list: {base_url} {problem}")


def _fetch(url: str) -> bytes:
    try:
        with urllib.request.urlopen(url, timeout=_TIMEOUT_SECONDS) as response:
            return response.read()
    except urllib.error.HTTPError as exc:
        with exc:
            return exc.read()
    except OSError as exc:
        log.error("Failed to fetch test result at url %s: %s", url, exc)
        raise


def run_test_suites(
    base_url: str,
    result_path: str | os.PathLike[str],
    test_suites: Iterable[TestSuiteDesc],
    template_path: str | os.PathLike[str] | None = None,
) -> tuple[list[TestSuiteResult], bool]:
    """Run every test, print progress and write one result page per suite.

    Returns the failed suite results and whether every suite passed.
    """
    overall_success = True
    failed_results: list[TestSuiteResult] = []
    for suite in test_suites:
        name = suite.name if len(suite.name) <= 22 else suite.name[:19] + "..."
        print(f"{name:<22}", end="")

        start = time.monotonic()
        suite_result = TestSuiteResult(name=suite.name, passed=True)
        for test in suite.tests:
            body = _fetch(f"{base_url}/@tests/{suite.name}/{test.name}")
            try:
                result = TestResult.from_json(json.loads(body))
                decoded = True
            except ValueError:
                result = TestResult()
                decoded = False
            if decoded and not result.passed:
                suite_result.passed = False
                log.error("Test Failed suite=%s test=%s", suite.name, test.name)
                print(f"   {suite.name}.{test.name} : FAILED")
            else:
                print(f"   {suite.name}.{test.name} : PASSED")
            suite_result.results.append(result)
        overall_success = overall_success and suite_result.passed

        status, alert = "PASSED", ""
        if not suite_result.passed:
            status, alert = "FAILED", "!"
            failed_results.append(suite_result)
        elapsed = int(time.monotonic() - start)
        print(f"{status:>8}{alert:>3}{elapsed:>6}s")

        if template_path is not None:
            page = os.path.join(result_path, f"{suite.name}.{status.lower()}.html")
            try:
                render_template(page, template_path, suite_result)
            except BuildError as exc:
                log.error("Failed to render template: %s", exc)

    return failed_results, overall_success


def write_result_file(result_path: str | os.PathLike[str], name: str, content: str) -> None:
    """Write a marker file into the results directory, logging any failure."""
    target = os.path.join(result_path, name)
    try:
        with open(target, "w", encoding="utf-8") as handle:
            handle.write(content)
    except OSError as exc:
        log.error("Failed to write result file %s: %s", target, exc)


def report_results(
    result_path: str | os.PathLike[str],
    failed_results: Iterable[TestSuiteResult],
    overall_success: bool,
) -> bool:
    """Print the summary, write the pass/fail marker file and return the outcome."""
    print()
    if overall_success:
        write_result_file(result_path, "result.passed", "passed")
        print("All Tests Passed.")
        return True
    for failed in failed_results:
        print("Failures:")
        for result in failed.results:
            if not result.passed:
                print(f"{failed.name}.{result.name}")
                print(f"{result.error_summary}\n")
    write_result_file(result_path, "result.failed", "failed")
    log.error("Some tests failed.  See file://%s for results.", result_path)
    return False