import pytest

from main import scratch_system
from smoke import SmokeTestRunner


@pytest.fixture
def runner():
    return SmokeTestRunner(scratch_system)


def test_all_smoke_tests_pass(runner):
    results = runner.run_all_tests()
    failed = [(r["testName"], r["actual"]) for r in results if not r["passed"]]
    assert failed == []
    assert {r["category"] for r in results} == set(SmokeTestRunner.CATEGORIES)


def test_summary_and_export(runner):
    runner.run_all_tests()
    summary = runner.get_test_summary()
    assert summary["Booking Tests"] == {"total": 5, "passed": 5, "failed": 0}

    exported = runner.export_test_results()
    assert exported["testRun"]["totalTests"] == len(runner.test_results)
    assert exported["testRun"]["failedTests"] == 0
    assert exported["summary"] == summary


def test_run_single_category(runner):
    results = runner.run_test_category("Authentication Tests")
    assert len(results) == 6
    assert all(r["category"] == "Authentication Tests" for r in results)
    with pytest.raises(ValueError):
        runner.run_test_category("Performance Tests")


def test_exception_is_recorded_as_failure(runner):
    def broken():
        raise RuntimeError("boom")

    runner.run_test("Analytics Tests", "Broken", "Raises", broken)
    result = runner.test_results[0]
    assert result["actual"] == "Error: boom"
    assert result["passed"] is False
    assert result["expected"] is True


def test_smoke_run_does_not_touch_live_store(system):
    before = system.storage.export_data()
    system.smoke_tests.run_all_tests()
    after = system.storage.export_data()
    assert before["users"] == after["users"]
    assert before["events"] == after["events"]


def test_clear_results(runner):
    runner.run_test("Analytics Tests", "Always", "Passes", lambda: True)
    runner.clear_test_results()
    assert runner.test_results == []
    assert runner.get_test_summary() == {}
