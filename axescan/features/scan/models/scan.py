from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, Index, CheckConstraint, Enum
import enum

from axescan.platform.db.base import BaseModel


class ScanStatus(enum.Enum):
    """Scan status state machine: pending -> completed | failed"""
    pending = "pending"
    completed = "completed"
    failed = "failed"


TERMINAL_STATUSES = frozenset({ScanStatus.completed, ScanStatus.failed})


class Scan(BaseModel):

    __tablename__ = "scans"

    # Owning principal; anonymous scans leave this empty
    user_id = Column(String(36), nullable=True, index=True)

    url = Column(Text, nullable=False, index=True)

    status = Column(Enum(ScanStatus, name="scan_status"), default=ScanStatus.pending, nullable=False, index=True)

    score = Column(Integer, nullable=True)  # 0-100

    # {"violations": [...], "passes": [...]} as produced by axe-core
    result_json = Column(JSON, nullable=True)

    error = Column(Text, nullable=True)

    # created_at and updated_at inherited from BaseModel
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint('score IS NULL OR (score >= 0 AND score <= 100)', name='check_score_range'),
        CheckConstraint(
            "(status = 'completed' AND score IS NOT NULL) OR (status != 'completed' AND score IS NULL)",
            name='check_score_iff_completed'
        ),
        CheckConstraint(
            "(status = 'pending' AND completed_at IS NULL) OR (status != 'pending' AND completed_at IS NOT NULL)",
            name='check_completed_at_iff_terminal'
        ),
        CheckConstraint("error IS NULL OR status = 'failed'", name='check_error_only_when_failed'),
        Index('idx_scans_url_status_completed', 'url', 'status', 'completed_at'),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def violations(self) -> list:
        return (self.result_json or {}).get("violations") or []

    @property
    def passes(self) -> list:
        return (self.result_json or {}).get("passes") or []
