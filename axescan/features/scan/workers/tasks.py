import logging
from typing import Any, Dict, Optional

from celery import Task

from axescan.features.scan.errors import StoreError
from axescan.features.scan.services.axe.evidence import build_evidence_sink
from axescan.features.scan.services.axe.runner import AxeRunner
from axescan.features.scan.services.axe.script_source import AxeScriptSource
from axescan.features.scan.services.browser.navigation import NavigationController
from axescan.features.scan.services.browser.session import BrowserLauncher, resolve_launch_profile
from axescan.features.scan.services.orchestrator import ScanOrchestrator
from axescan.features.scan.services.repository import ScanRepository
from axescan.platform.celery_app import celery_app
from axescan.platform.config import settings

logger = logging.getLogger(__name__)

# Built on first use inside the worker process
_worker_orchestrator: Optional[ScanOrchestrator] = None


def build_worker_orchestrator() -> ScanOrchestrator:
    """Orchestrator wired for the worker: real browser, shared axe script cache."""
    global _worker_orchestrator

    if _worker_orchestrator is None:
        from axescan.platform.db.session import SessionLocal

        evidence_sink = build_evidence_sink() if settings.ENABLE_SCREENSHOTS else None
        _worker_orchestrator = ScanOrchestrator(
            repository=ScanRepository(SessionLocal),
            launcher=BrowserLauncher(resolve_launch_profile()),
            navigator=NavigationController(),
            runner=AxeRunner(script_source=AxeScriptSource(), evidence_sink=evidence_sink),
        )
    return _worker_orchestrator


class ScanTask(Task):
    """Error boundary for scan execution."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        scan_id = kwargs.get("scan_id") or (args[0] if args else None)
        if isinstance(exc, StoreError):
            # Nothing could record the failure; the scan stays pending until readers time it out
            logger.critical(f"[{scan_id}] Scan store unavailable, scan result lost (task {task_id}): {exc}")
        else:
            logger.error(f"[{scan_id}] Scan task {task_id} crashed: {exc}", exc_info=einfo.exc_info if einfo else None)


@celery_app.task(
    bind=True,
    base=ScanTask,
    name="axescan.features.scan.workers.tasks.execute_scan",
    max_retries=0,
)
def execute_scan(self, scan_id: str, url: str) -> Dict[str, Any]:
    """
    Execute one accessibility scan.

    Args:
        scan_id: The pending scan's ID
        url: Normalized URL to scan

    Returns:
        Dict with the terminal status and score
    """
    logger.info(f"[{scan_id}] Worker picked up scan for {url}")

    orchestrator = build_worker_orchestrator()
    scan = orchestrator.execute(scan_id, url)

    if scan is None:
        return {"scan_id": scan_id, "status": "missing"}
    return {
        "scan_id": scan_id,
        "status": scan.status.value,
        "score": scan.score,
    }


class CeleryScanDispatcher:
    """Queues scans on the scan.execution queue."""

    def dispatch(self, scan_id: str, url: str) -> None:
        result = execute_scan.apply_async(kwargs={"scan_id": scan_id, "url": url})
        logger.info(f"[{scan_id}] Queued scan task {result.id}")
