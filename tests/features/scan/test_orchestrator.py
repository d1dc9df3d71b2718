from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from axescan.features.scan.errors import (
    InvalidInput,
    NavigationError,
    RuleEngineUnavailable,
    ScanAlreadyTerminal,
    ScanNotFound,
    SchedulingError,
    SessionAcquisitionError,
    StoreError,
)
from axescan.features.scan.models.scan import Scan, ScanStatus
from axescan.features.scan.services.axe.runner import AxeResults
from axescan.features.scan.services.orchestrator import ScanOrchestrator

T0 = datetime(2026, 1, 1, 12, 0, 0)

VIOLATIONS = [{"id": "image-alt", "impact": "critical", "nodes": [{"target": ["img.a"]}, {"target": ["img.b"]}]}]
PASSES = [{"id": f"pass-{i}", "nodes": []} for i in range(10)]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _launcher():
    """Launcher whose session records close() calls."""
    session = MagicMock()
    session.new_page.return_value = MagicMock(name="page")
    launcher = MagicMock()
    launcher.acquire.return_value = session
    return launcher, session


def _runner(results=None, error=None):
    runner = MagicMock()
    if error is not None:
        runner.run.side_effect = error
    else:
        runner.run.return_value = results or AxeResults(violations=list(VIOLATIONS), passes=list(PASSES))
    return runner


def _navigator(error=None):
    navigator = MagicMock()
    navigator.navigate.return_value = "networkidle"
    if error is not None:
        navigator.navigate.side_effect = error
    return navigator


@pytest.fixture
def clock():
    return FakeClock(T0)


def _orchestrator(repository, dispatcher=None, clock=None, **kwargs):
    launcher, _ = _launcher()
    kwargs.setdefault("launcher", launcher)
    kwargs.setdefault("navigator", _navigator())
    kwargs.setdefault("runner", _runner())
    return ScanOrchestrator(
        repository=repository,
        dispatcher=dispatcher,
        clock=clock or FakeClock(T0),
        freshness_minutes=15,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# initiate
# ---------------------------------------------------------------------------

def test_initiate_creates_pending_scan_and_dispatches(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock)

    initiation = orchestrator.initiate("example.com")

    assert initiation.cached is False
    assert initiation.status == "pending"
    assert dispatcher.dispatched == [(initiation.scan_id, "https://example.com")]
    scan = repository.get(initiation.scan_id)
    assert scan.status == ScanStatus.pending
    assert scan.url == "https://example.com"
    assert scan.user_id is None
    assert scan.created_at == T0


def test_initiate_records_principal(repository, dispatcher, clock):
    initiation = _orchestrator(repository, dispatcher, clock).initiate("https://example.com", "user-1")
    assert repository.get(initiation.scan_id).user_id == "user-1"


def test_initiate_rejects_invalid_url_without_persisting(repository, dispatcher):
    orchestrator = _orchestrator(repository, dispatcher)

    with pytest.raises(InvalidInput):
        orchestrator.initiate("ftp://example.com")

    assert dispatcher.dispatched == []
    assert repository.find_recent_completed("ftp://example.com", 15, now=T0) is None


def test_freshness_window(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock)
    first = orchestrator.initiate("https://example.com")
    orchestrator.execute(first.scan_id, "https://example.com")

    clock.advance(minutes=10)
    cached = orchestrator.initiate("https://example.com")
    assert cached.cached is True
    assert cached.scan_id == first.scan_id
    assert cached.status == "completed"
    assert cached.last_scanned == T0

    clock.advance(minutes=10)
    fresh = orchestrator.initiate("https://example.com")
    assert fresh.cached is False
    assert fresh.scan_id != first.scan_id
    assert len(dispatcher.dispatched) == 2


def test_freshness_ignores_failed_scans(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock, navigator=_navigator(NavigationError("Failed to load page: timeout")))
    first = orchestrator.initiate("https://example.com")
    orchestrator.execute(first.scan_id, "https://example.com")

    clock.advance(minutes=1)
    again = orchestrator.initiate("https://example.com")

    assert again.cached is False


def test_freshness_does_not_leak_owned_scans(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock)
    owned = orchestrator.initiate("https://example.com", "owner")
    orchestrator.execute(owned.scan_id, "https://example.com")

    assert orchestrator.initiate("https://example.com").cached is False
    assert orchestrator.initiate("https://example.com", "owner").cached is True


def test_dispatch_failure_marks_scan_failed(repository, clock):
    dispatcher = MagicMock()
    dispatcher.dispatch.side_effect = ConnectionError("broker down")
    orchestrator = _orchestrator(repository, dispatcher, clock)

    with pytest.raises(SchedulingError):
        orchestrator.initiate("https://example.com")

    scan_id = dispatcher.dispatch.call_args[0][0]
    scan = repository.get(scan_id)
    assert scan.status == ScanStatus.failed
    assert "Failed to schedule scan" in scan.error
    assert scan.completed_at is not None


def test_initiate_without_dispatcher_persists_nothing(repository, session_factory):
    with pytest.raises(SchedulingError):
        _orchestrator(repository, None).initiate("https://example.com")

    with session_factory() as db:
        assert db.query(Scan).count() == 0


def test_initiate_propagates_store_errors(dispatcher):
    repository = MagicMock()
    repository.find_recent_completed.side_effect = StoreError("database unavailable")

    with pytest.raises(StoreError):
        ScanOrchestrator(repository=repository, dispatcher=dispatcher).initiate("https://example.com")
    assert dispatcher.dispatched == []


# ---------------------------------------------------------------------------
# execute
# ---------------------------------------------------------------------------

def test_execute_completes_with_score(repository, dispatcher, clock):
    launcher, session = _launcher()
    orchestrator = _orchestrator(repository, dispatcher, clock, launcher=launcher)
    initiation = orchestrator.initiate("https://example.com")

    scan = orchestrator.execute(initiation.scan_id, "https://example.com")

    assert scan.status == ScanStatus.completed
    assert scan.score == 82
    assert scan.error is None
    assert scan.completed_at is not None
    assert scan.violations == VIOLATIONS
    assert len(scan.passes) == 10
    session.close.assert_called_once()


@pytest.mark.parametrize(
    "component, error, message",
    [
        ("navigator", NavigationError("Failed to load page: net::ERR_NAME_NOT_RESOLVED"), "Failed to load page"),
        ("runner", RuleEngineUnavailable("Failed to load axe-core from any source"), "axe-core"),
        ("runner", RuntimeError("renderer crashed"), "Unexpected error: renderer crashed"),
    ],
)
def test_execute_failures_become_failed_records(repository, dispatcher, clock, component, error, message):
    launcher, session = _launcher()
    overrides = {"launcher": launcher}
    if component == "navigator":
        overrides["navigator"] = _navigator(error)
    else:
        overrides["runner"] = _runner(error=error)
    orchestrator = _orchestrator(repository, dispatcher, clock, **overrides)
    initiation = orchestrator.initiate("https://example.com")

    scan = orchestrator.execute(initiation.scan_id, "https://example.com")

    assert scan.status == ScanStatus.failed
    assert message in scan.error
    assert scan.score is None
    assert scan.completed_at is not None
    session.close.assert_called_once()


def test_execute_session_acquisition_failure(repository, dispatcher, clock):
    launcher = MagicMock()
    launcher.acquire.side_effect = SessionAcquisitionError("Failed to launch browser: chrome not found")
    orchestrator = _orchestrator(repository, dispatcher, clock, launcher=launcher)
    initiation = orchestrator.initiate("https://example.com")

    scan = orchestrator.execute(initiation.scan_id, "https://example.com")

    assert scan.status == ScanStatus.failed
    assert "Failed to launch browser" in scan.error


def test_execute_scoring_failure_still_closes_session(repository, dispatcher, clock):
    launcher, session = _launcher()
    orchestrator = _orchestrator(repository, dispatcher, clock, launcher=launcher)
    initiation = orchestrator.initiate("https://example.com")

    with patch(
        "axescan.features.scan.services.orchestrator.calculate_accessibility_score",
        side_effect=ZeroDivisionError("division by zero"),
    ):
        scan = orchestrator.execute(initiation.scan_id, "https://example.com")

    assert scan.status == ScanStatus.failed
    session.close.assert_called_once()


def test_execute_skips_terminal_scan(repository, dispatcher, clock):
    runner = _runner()
    orchestrator = _orchestrator(repository, dispatcher, clock, runner=runner)
    initiation = orchestrator.initiate("https://example.com")
    orchestrator.execute(initiation.scan_id, "https://example.com")

    again = orchestrator.execute(initiation.scan_id, "https://example.com")

    assert again.status == ScanStatus.completed
    assert runner.run.call_count == 1


def test_execute_unknown_scan(repository):
    assert _orchestrator(repository).execute("missing", "https://example.com") is None


def test_completion_does_not_overwrite_earlier_terminal_state(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock)
    initiation = orchestrator.initiate("https://example.com")

    # Another writer finishes the scan while the browser is still running
    def finish_elsewhere(page, scan_id):
        repository.finalize(scan_id, status=ScanStatus.failed, error="reported elsewhere", completed_at=T0)
        return AxeResults(violations=[], passes=[])

    orchestrator.runner.run.side_effect = finish_elsewhere
    scan = orchestrator.execute(initiation.scan_id, "https://example.com")

    assert scan.status == ScanStatus.failed
    assert scan.error == "reported elsewhere"


def test_execute_propagates_store_errors(dispatcher):
    repository = MagicMock()
    repository.get.side_effect = StoreError("database unavailable")

    with pytest.raises(StoreError):
        _orchestrator(repository, dispatcher).execute("scan-1", "https://example.com")


# ---------------------------------------------------------------------------
# externally reported results
# ---------------------------------------------------------------------------

def test_record_results_scores_with_shared_function(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock)
    initiation = orchestrator.initiate("https://example.com")

    scan = orchestrator.record_results(initiation.scan_id, VIOLATIONS, PASSES)

    assert scan.status == ScanStatus.completed
    assert scan.score == 82


def test_record_results_twice_conflicts(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock)
    initiation = orchestrator.initiate("https://example.com")
    orchestrator.record_results(initiation.scan_id, [], [])

    with pytest.raises(ScanAlreadyTerminal):
        orchestrator.record_failure(initiation.scan_id, "too late")


def test_record_unknown_scan(repository):
    with pytest.raises(ScanNotFound):
        _orchestrator(repository).record_results("missing", [], [])


def test_record_failure(repository, dispatcher, clock):
    orchestrator = _orchestrator(repository, dispatcher, clock)
    initiation = orchestrator.initiate("https://example.com")

    scan = orchestrator.record_failure(initiation.scan_id, "Scanner crashed")

    assert scan.status == ScanStatus.failed
    assert scan.error == "Scanner crashed"
    assert scan.score is None
