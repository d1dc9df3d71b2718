from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from axescan.features.scan.dependencies.scan import (
    get_orchestrator,
    get_scan_rate_limiter,
    get_scan_repository,
)
from axescan.features.scan.errors import ScanNotFound
from axescan.features.scan.schemas.scan import (
    ReportFailureRequest,
    SaveResultsRequest,
    SaveResultsResponse,
    ScanStartRequest,
    ScanStartResponse,
)
from axescan.features.scan.services.history import (
    calculate_dashboard_stats,
    get_user_scan_history,
    is_visible_to,
    to_scan_response,
)
from axescan.features.scan.services.orchestrator import ScanOrchestrator
from axescan.features.scan.services.repository import ScanRepository
from axescan.platform.auth import get_current_principal, get_optional_principal, require_scanner_key
from axescan.platform.config import settings
from axescan.platform.db.base import utcnow
from axescan.platform.logger import get_logger
from axescan.platform.response import api_response
from axescan.platform.utils.rate_limit import RateLimiter, get_client_ip

logger = get_logger(__name__)

router = APIRouter(prefix="/scans", tags=["scans"])


def enforce_scan_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_scan_rate_limiter),
) -> None:
    client_ip = get_client_ip(request)
    if client_ip in settings.WHITELIST_IPS:
        return

    result = limiter.check(f"scan:{client_ip}")
    if not result.allowed:
        logger.warning(f"Scan rate limit exceeded for {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many scan requests. Please try again later.",
            headers={"Retry-After": str(result.retry_after)},
        )


@router.post("", dependencies=[Depends(enforce_scan_rate_limit)])
def start_scan(
    payload: ScanStartRequest,
    principal_id: Optional[str] = Depends(get_optional_principal),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    """
    Start an accessibility scan.

    Returns the completed scan immediately when the same URL was scanned within
    the freshness window; otherwise a pending scan is queued and the client
    polls GET /scans/{scan_id}.
    """
    initiation = orchestrator.initiate(payload.url, principal_id)

    if initiation.cached:
        message = "Recent scan found, returning cached results"
        status_code = status.HTTP_200_OK
    else:
        message = "Scan queued"
        status_code = status.HTTP_202_ACCEPTED

    return api_response(
        data=ScanStartResponse(
            scan_id=initiation.scan_id,
            status=initiation.status,
            cached=initiation.cached,
            last_scanned=initiation.last_scanned,
            message=message,
        ),
        message=message,
        status_code=status_code,
    )


@router.get("/history")
def get_scan_history(
    limit: int = Query(50, ge=1, le=200),
    principal_id: str = Depends(get_current_principal),
    repository: ScanRepository = Depends(get_scan_repository),
):
    history = get_user_scan_history(repository, principal_id, limit=limit)
    return api_response(
        data=history,
        message="Scan history retrieved successfully",
    )


@router.get("/stats")
def get_dashboard_stats(
    principal_id: str = Depends(get_current_principal),
    repository: ScanRepository = Depends(get_scan_repository),
):
    scans = repository.list_for_owner(principal_id, limit=None)
    return api_response(
        data=calculate_dashboard_stats(scans),
        message="Dashboard stats retrieved successfully",
    )


@router.post("/save-results", dependencies=[Depends(require_scanner_key)])
def save_scan_results(
    payload: SaveResultsRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    """Record findings produced by a scanner running outside this service."""
    violations = [v.model_dump(exclude_none=True) for v in payload.violations]
    passes = [p.model_dump(exclude_none=True) for p in payload.passes]
    scan = orchestrator.record_results(str(payload.scan_id), violations, passes)
    return api_response(
        data=SaveResultsResponse(scan_id=scan.id, status=scan.status.value, score=scan.score),
        message="Scan results saved",
    )


@router.post("/report-failure", dependencies=[Depends(require_scanner_key)])
def report_scan_failure(
    payload: ReportFailureRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    scan = orchestrator.record_failure(str(payload.scan_id), payload.error)
    return api_response(
        data={"scan_id": scan.id, "status": scan.status.value, "error": scan.error},
        message="Scan failure recorded",
    )


@router.get("/{scan_id}")
def get_scan(
    scan_id: str,
    principal_id: Optional[str] = Depends(get_optional_principal),
    repository: ScanRepository = Depends(get_scan_repository),
):
    scan = repository.get(scan_id)
    # Scans owned by someone else are reported as missing
    if scan is None or not is_visible_to(scan, principal_id):
        raise ScanNotFound(scan_id)

    return api_response(
        data=to_scan_response(scan, utcnow(), settings.SCAN_STALE_AFTER_SECONDS),
        message="Scan retrieved successfully",
    )
