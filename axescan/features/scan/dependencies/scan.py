from functools import lru_cache

from fastapi import Depends

from axescan.features.scan.services.orchestrator import ScanDispatcher, ScanOrchestrator
from axescan.features.scan.services.repository import ScanRepository
from axescan.platform.config import settings
from axescan.platform.db.session import SessionLocal
from axescan.platform.utils.rate_limit import RateLimiter, build_rate_limit_store


def get_scan_repository() -> ScanRepository:
    return ScanRepository(SessionLocal)


def get_scan_dispatcher() -> ScanDispatcher:
    # Imported here so the API can start without loading the worker task module eagerly
    from axescan.features.scan.workers.tasks import CeleryScanDispatcher

    return CeleryScanDispatcher()


def get_orchestrator(
    repository: ScanRepository = Depends(get_scan_repository),
    dispatcher: ScanDispatcher = Depends(get_scan_dispatcher),
) -> ScanOrchestrator:
    """Request-side orchestrator: validates, consults the cache, records and queues."""
    return ScanOrchestrator(repository=repository, dispatcher=dispatcher)


@lru_cache()
def get_scan_rate_limiter() -> RateLimiter:
    store = build_rate_limit_store(settings.FORCE_IN_MEMORY_RATE_LIMITER, settings.REDIS_URL)
    return RateLimiter(
        store=store,
        max_requests=settings.SCAN_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.SCAN_RATE_LIMIT_WINDOW_SECONDS,
    )
