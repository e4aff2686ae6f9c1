"""Reconciliation findings and the structured result of processing a document."""

from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from aportes.schemas.extraction import DocumentKind


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Finding(BaseModel):
    """One reconciliation result. Errors block persistence, warnings do not."""

    severity: Severity
    message: str
    field: Optional[str] = None
    value: Optional[Any] = None

    def __str__(self) -> str:
        prefix = "ERROR" if self.severity == Severity.ERROR else "WARNING"
        return f"[{prefix}] {self.message}"


class ProcessingStatus(str, Enum):
    ACCEPTED = "accepted"  # stored, parsing continues in the background
    COMMITTED = "committed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class ProcessingOutcome(BaseModel):
    """Result returned to callers of the pipeline; never an exception."""

    status: ProcessingStatus
    file_name: Optional[str] = None
    content_hash: Optional[str] = None
    document_id: Optional[UUID] = None
    kind: Optional[DocumentKind] = None
    source: Optional[str] = None
    duplicate_of: Optional[str] = Field(
        default=None, description="Stored path or document id of the first upload"
    )
    period_id: Optional[UUID] = None
    lines_written: int = 0
    lines_skipped: int = 0
    transfer_id: Optional[UUID] = None
    warnings: List[Finding] = Field(default_factory=list)
    errors: List[Finding] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (ProcessingStatus.ACCEPTED, ProcessingStatus.COMMITTED)
