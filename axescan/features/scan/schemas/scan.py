"""
Scan Schemas

Request and response models for the scan API endpoints.
"""
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


# ============================================================================
# Findings
# ============================================================================

class FindingNode(BaseModel):
    """A DOM node an axe rule was evaluated against."""
    target: List[Any] = Field(default_factory=list)
    html: Optional[str] = None
    failureSummary: Optional[str] = None
    screenshot: Optional[str] = None

    class Config:
        extra = "allow"


class Violation(BaseModel):
    id: str
    impact: Optional[str] = None
    description: str = ""
    help: Optional[str] = None
    helpUrl: Optional[str] = None
    nodes: List[FindingNode] = Field(default_factory=list)

    class Config:
        extra = "allow"


class Pass(BaseModel):
    id: str
    description: str = ""
    nodes: List[FindingNode] = Field(default_factory=list)

    class Config:
        extra = "allow"


# ============================================================================
# Scan lifecycle
# ============================================================================

class ScanStartRequest(BaseModel):
    """Request to start an accessibility scan."""
    url: str = Field(..., min_length=1, max_length=2048)

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com"
            }
        }


class ScanStartResponse(BaseModel):
    """Response after starting a scan."""
    scan_id: str
    status: str
    cached: bool
    last_scanned: Optional[datetime] = None
    message: str


class ScanResponse(BaseModel):
    """A scan record as seen by pollers."""
    id: str
    url: str
    status: str
    score: Optional[int] = None
    violations: Optional[List[Violation]] = None
    passes: Optional[List[Pass]] = None
    error: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    # Still pending long after creation; the worker probably died
    timed_out: bool = False


class SaveResultsRequest(BaseModel):
    """Findings reported by an out-of-process scanner, in axe-core's shape."""
    scan_id: UUID
    violations: List[Violation]
    passes: List[Pass]


class SaveResultsResponse(BaseModel):
    scan_id: str
    status: str
    score: int


class ReportFailureRequest(BaseModel):
    scan_id: UUID
    error: str = Field(..., min_length=1)


# ============================================================================
# History / dashboard
# ============================================================================

class ScanHistoryItem(BaseModel):
    id: str
    url: str
    status: str
    score: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DashboardStats(BaseModel):
    total_scans: int
    completed_scans: int
    average_score: int
    pending_scans: int
