import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import desc, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from axescan.features.scan.errors import StoreError
from axescan.features.scan.models.scan import Scan, ScanStatus
from axescan.platform.db.base import utcnow

logger = logging.getLogger(__name__)


class ScanRepository:
    """
    Durable scan records.

    Every call opens its own short-lived session, so the same repository can
    be shared by API threads and Celery workers. Database failures surface as
    StoreError.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create(self, scan: Scan) -> Scan:
        try:
            with self.session_factory() as db:
                db.add(scan)
                db.commit()
                db.refresh(scan)
                db.expunge(scan)
                return scan
        except SQLAlchemyError as e:
            logger.error(f"Failed to create scan for {scan.url}: {e}")
            raise StoreError(f"Failed to create scan: {e}") from e

    def get(self, scan_id: str) -> Optional[Scan]:
        try:
            with self.session_factory() as db:
                return db.get(Scan, scan_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch scan {scan_id}: {e}")
            raise StoreError(f"Failed to fetch scan: {e}") from e

    def update(self, scan_id: str, **fields) -> Optional[Scan]:
        """Unconditional partial update. Returns the refreshed record, or None if missing."""
        try:
            with self.session_factory() as db:
                scan = db.get(Scan, scan_id)
                if scan is None:
                    return None
                for key, value in fields.items():
                    if not hasattr(scan, key):
                        raise ValueError(f"Scan has no field {key!r}")
                    setattr(scan, key, value)
                db.commit()
                db.refresh(scan)
                return scan
        except SQLAlchemyError as e:
            logger.error(f"Failed to update scan {scan_id}: {e}")
            raise StoreError(f"Failed to update scan: {e}") from e

    def finalize(self, scan_id: str, **fields) -> bool:
        """
        Write terminal fields, but only while the scan is still pending.

        Returns False when the scan is missing or already terminal, so a
        second completion can never overwrite the first.
        """
        fields.setdefault("updated_at", utcnow())
        try:
            with self.session_factory() as db:
                result = db.execute(
                    update(Scan)
                    .where(Scan.id == scan_id, Scan.status == ScanStatus.pending)
                    .values(**fields)
                )
                db.commit()
                return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error(f"Failed to finalize scan {scan_id}: {e}")
            raise StoreError(f"Failed to finalize scan: {e}") from e

    def find_recent_completed(
        self,
        url: str,
        window_minutes: int,
        now: Optional[datetime] = None,
        visible_to: Optional[str] = None,
    ) -> Optional[Scan]:
        """
        Most recent completed scan of exactly `url` inside the trailing window.

        Only scans the caller may read are candidates: anonymous scans, plus
        the caller's own when `visible_to` is a principal id.
        """
        cutoff = (now or utcnow()) - timedelta(minutes=window_minutes)
        owner_filter = Scan.user_id.is_(None)
        if visible_to:
            owner_filter = or_(owner_filter, Scan.user_id == visible_to)
        query = (
            select(Scan)
            .where(
                Scan.url == url,
                Scan.status == ScanStatus.completed,
                Scan.completed_at >= cutoff,
                owner_filter,
            )
            .order_by(desc(Scan.completed_at))
            .limit(1)
        )
        try:
            with self.session_factory() as db:
                return db.execute(query).scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to look up recent scans for {url}: {e}")
            raise StoreError(f"Failed to look up recent scans: {e}") from e

    def list_for_owner(self, user_id: str, limit: Optional[int] = 50) -> List[Scan]:
        query = (
            select(Scan)
            .where(Scan.user_id == user_id)
            .order_by(desc(Scan.created_at))
            .limit(limit)
        )
        try:
            with self.session_factory() as db:
                return list(db.execute(query).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch history for user {user_id}: {e}")
            raise StoreError(f"Failed to fetch scan history: {e}") from e
