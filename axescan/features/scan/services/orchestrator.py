"""
Scan orchestration.

initiate() runs inside the API request: it validates the URL, answers from
the freshness cache when it can, and otherwise records a pending scan and
hands it to a dispatcher. execute() runs later in a worker and drives
browser -> navigation -> axe-core -> scoring, finishing with exactly one
terminal write.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from axescan.features.scan.errors import (
    InvalidInput,
    ScanAlreadyTerminal,
    ScanError,
    ScanNotFound,
    SchedulingError,
)
from axescan.features.scan.models.scan import Scan, ScanStatus
from axescan.features.scan.services.axe.runner import AxeResults, AxeRunner
from axescan.features.scan.services.browser.navigation import NavigationController
from axescan.features.scan.services.browser.session import BrowserLauncher, browser_session
from axescan.features.scan.services.repository import ScanRepository
from axescan.features.scan.services.scoring import calculate_accessibility_score
from axescan.platform.config import settings
from axescan.platform.db.base import utcnow
from axescan.platform.utils.url_validator import validate_url

logger = logging.getLogger(__name__)


class ScanDispatcher(Protocol):
    def dispatch(self, scan_id: str, url: str) -> None:
        """Hand the scan to a supervised background worker. Must not block on the scan."""
        ...


@dataclass
class ScanInitiation:
    scan_id: str
    status: str
    cached: bool
    last_scanned: Optional[datetime] = None


class ScanOrchestrator:
    def __init__(
        self,
        repository: ScanRepository,
        dispatcher: Optional[ScanDispatcher] = None,
        launcher: Optional[BrowserLauncher] = None,
        navigator: Optional[NavigationController] = None,
        runner: Optional[AxeRunner] = None,
        clock: Callable[[], datetime] = utcnow,
        freshness_minutes: Optional[int] = None,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.launcher = launcher
        self.navigator = navigator
        self.runner = runner
        self.clock = clock
        self.freshness_minutes = freshness_minutes if freshness_minutes is not None else settings.SCAN_FRESHNESS_MINUTES

    # ------------------------------------------------------------------
    # Request side
    # ------------------------------------------------------------------

    def initiate(self, url: str, principal_id: Optional[str] = None) -> ScanInitiation:
        """
        Start a scan of `url`, or reuse a recent one.

        Raises:
            InvalidInput: the URL is malformed; nothing is persisted
            StoreError: the scan store is unavailable
            SchedulingError: no dispatcher is configured, or the pending record
                was created but could not be queued (it is then marked failed)
        """
        is_valid, url_str, error_message = validate_url(url)
        if not is_valid:
            raise InvalidInput(f"Invalid URL: {error_message}")

        if self.dispatcher is None:
            raise SchedulingError("No scan dispatcher configured")

        now = self.clock()
        recent = self.repository.find_recent_completed(
            url_str,
            self.freshness_minutes,
            now=now,
            visible_to=principal_id,
        )
        if recent is not None:
            logger.info(f"[{recent.id}] Returning cached scan for {url_str} (completed {recent.completed_at})")
            return ScanInitiation(
                scan_id=recent.id,
                status=ScanStatus.completed.value,
                cached=True,
                last_scanned=recent.completed_at,
            )

        # The freshness check and this insert are not atomic; two concurrent
        # requests may both create a pending scan for the same URL.
        scan = self.repository.create(
            Scan(
                id=str(uuid.uuid4()),
                url=url_str,
                status=ScanStatus.pending,
                user_id=principal_id,
                created_at=now,
                updated_at=now,
            )
        )
        auth_status = "authenticated" if principal_id else "anonymous"
        logger.info(f"[{scan.id}] Created pending scan for {url_str} ({auth_status})")

        try:
            self.dispatcher.dispatch(scan.id, url_str)
        except Exception as e:
            logger.error(f"[{scan.id}] Failed to queue scan: {e}", exc_info=True)
            self.repository.finalize(
                scan.id,
                status=ScanStatus.failed,
                error=f"Failed to schedule scan: {e}",
                completed_at=self.clock(),
            )
            raise SchedulingError(f"Failed to schedule scan {scan.id}: {e}") from e

        return ScanInitiation(scan_id=scan.id, status=ScanStatus.pending.value, cached=False)

    def get_status(self, scan_id: str) -> Optional[Scan]:
        return self.repository.get(scan_id)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def execute(self, scan_id: str, url: str) -> Optional[Scan]:
        """
        Run the scan and persist its terminal state.

        Every failure of the browser, navigation, axe-core or scoring ends as
        a `failed` record. Only StoreError escapes.
        """
        scan = self.repository.get(scan_id)
        if scan is None:
            logger.warning(f"[{scan_id}] Execute requested for unknown scan, skipping")
            return None
        if scan.is_terminal:
            logger.info(f"[{scan_id}] Scan already {scan.status.value}, skipping")
            return scan

        started = time.monotonic()
        logger.info(f"[{scan_id}] Starting accessibility scan for {url}")

        try:
            results = self._scan_page(scan_id, url)
            score = calculate_accessibility_score(results.violations, results.passes)
        except Exception as e:
            if isinstance(e, ScanError):
                logger.error(f"[{scan_id}] Scan failed: {e}")
            else:
                logger.exception(f"[{scan_id}] Unexpected error during scan: {e}")
            return self._write_terminal(
                scan_id,
                status=ScanStatus.failed,
                error=_failure_message(e),
                completed_at=self.clock(),
            )

        elapsed = time.monotonic() - started
        logger.info(f"[{scan_id}] Scan completed in {elapsed:.1f}s with score {score}")
        return self._write_terminal(
            scan_id,
            status=ScanStatus.completed,
            score=score,
            result_json=results.as_payload(),
            completed_at=self.clock(),
        )

    def _scan_page(self, scan_id: str, url: str) -> AxeResults:
        launcher = self.launcher or BrowserLauncher()
        navigator = self.navigator or NavigationController()
        runner = self.runner or AxeRunner()

        with browser_session(launcher) as session:
            page = session.new_page()
            tier = navigator.navigate(page, url)
            logger.info(f"[{scan_id}] Page loaded via {tier}")
            return runner.run(page, scan_id)

    def _write_terminal(self, scan_id: str, **fields) -> Optional[Scan]:
        if not self.repository.finalize(scan_id, **fields):
            logger.warning(f"[{scan_id}] Scan left pending before this run finished, result discarded")
        return self.repository.get(scan_id)

    # ------------------------------------------------------------------
    # Results reported by an out-of-process scanner
    # ------------------------------------------------------------------

    def record_results(
        self,
        scan_id: str,
        violations: List[Dict[str, Any]],
        passes: List[Dict[str, Any]],
    ) -> Scan:
        self._require_pending(scan_id)
        score = calculate_accessibility_score(violations, passes)
        written = self.repository.finalize(
            scan_id,
            status=ScanStatus.completed,
            score=score,
            result_json={"violations": violations, "passes": passes},
            completed_at=self.clock(),
        )
        return self._after_external_write(scan_id, written)

    def record_failure(self, scan_id: str, message: str) -> Scan:
        self._require_pending(scan_id)
        written = self.repository.finalize(
            scan_id,
            status=ScanStatus.failed,
            error=message,
            completed_at=self.clock(),
        )
        return self._after_external_write(scan_id, written)

    def _require_pending(self, scan_id: str) -> Scan:
        scan = self.repository.get(scan_id)
        if scan is None:
            raise ScanNotFound(scan_id)
        if scan.is_terminal:
            raise ScanAlreadyTerminal(scan_id, scan.status.value)
        return scan

    def _after_external_write(self, scan_id: str, written: bool) -> Scan:
        scan = self.repository.get(scan_id)
        if scan is None:
            raise ScanNotFound(scan_id)
        if not written:
            raise ScanAlreadyTerminal(scan_id, scan.status.value)
        logger.info(f"[{scan_id}] Recorded externally reported {scan.status.value} result")
        return scan


def _failure_message(error: Exception) -> str:
    if isinstance(error, ScanError):
        return str(error) or error.__class__.__name__
    return f"Unexpected error: {error}" if str(error) else f"Unexpected error: {error.__class__.__name__}"
