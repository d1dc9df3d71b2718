import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from axescan.features.scan.models.scan import Scan, ScanStatus
from axescan.features.scan.schemas.scan import DashboardStats, ScanHistoryItem, ScanResponse
from axescan.features.scan.services.repository import ScanRepository
from axescan.features.scan.services.scoring import average_score

logger = logging.getLogger(__name__)


def get_user_scan_history(repository: ScanRepository, user_id: str, limit: int = 50) -> List[ScanHistoryItem]:
    scans = repository.list_for_owner(user_id, limit=limit)
    logger.info(f"Found {len(scans)} scans for user {user_id}")

    return [
        ScanHistoryItem(
            id=scan.id,
            url=scan.url,
            status=scan.status.value,
            score=scan.score,
            created_at=scan.created_at,
            completed_at=scan.completed_at,
        )
        for scan in scans
    ]


def calculate_dashboard_stats(scans: Sequence[Scan]) -> DashboardStats:
    completed = [scan for scan in scans if scan.status == ScanStatus.completed]
    return DashboardStats(
        total_scans=len(scans),
        completed_scans=len(completed),
        average_score=average_score(scan.score for scan in completed),
        pending_scans=sum(1 for scan in scans if scan.status == ScanStatus.pending),
    )


def is_visible_to(scan: Scan, principal_id: Optional[str]) -> bool:
    """Anonymous scans are public; owned scans are readable only by their owner."""
    return scan.user_id is None or scan.user_id == principal_id


def is_timed_out(scan: Scan, now: datetime, stale_after_seconds: int) -> bool:
    """
    A scan still pending long after creation is treated as stuck by readers.
    Nothing is written; the orchestrator never emits this state.
    """
    if scan.status != ScanStatus.pending or scan.created_at is None:
        return False
    return now - scan.created_at > timedelta(seconds=stale_after_seconds)


def to_scan_response(scan: Scan, now: datetime, stale_after_seconds: int) -> ScanResponse:
    has_findings = scan.result_json is not None
    return ScanResponse(
        id=scan.id,
        url=scan.url,
        status=scan.status.value,
        score=scan.score,
        violations=scan.violations if has_findings else None,
        passes=scan.passes if has_findings else None,
        error=scan.error,
        user_id=scan.user_id,
        created_at=scan.created_at,
        completed_at=scan.completed_at,
        timed_out=is_timed_out(scan, now, stale_after_seconds),
    )
