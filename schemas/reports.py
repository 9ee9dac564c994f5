"""
Pydantic schemas for stage outcomes and load reports.

These are the values stages hand back to the runner: the runner decides
how to complete the execution log and what to notify from them, instead
of catching exceptions for control flow.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict
from datetime import datetime
import enum


class FailurePolicy(str, enum.Enum):
    """How per-location failures affect the extract stage"""
    STRICT = "strict"
    BEST_EFFORT = "best_effort"


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    ALL_FAILED = "all_failed"


class StageStatus(str, enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"


class EntityFailure(BaseModel):
    """One location that could not be fetched"""

    location: str
    error_type: str
    reason: str


class ExtractionOutcome(BaseModel):
    """
    Aggregate result of one extract run.

    kind is derived from the counts only; whether a PARTIAL_FAILURE is
    acceptable depends on the policy and is answered by `succeeded`.
    """

    policy: FailurePolicy
    total: int
    success_count: int = 0
    failures: List[EntityFailure] = Field(default_factory=list)
    file_path: Optional[str] = None
    execution_id: Optional[str] = None

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def kind(self) -> OutcomeKind:
        if self.failure_count == 0 and self.success_count > 0:
            return OutcomeKind.SUCCESS
        if self.success_count == 0:
            return OutcomeKind.ALL_FAILED
        return OutcomeKind.PARTIAL_FAILURE

    @property
    def succeeded(self) -> bool:
        if self.kind == OutcomeKind.SUCCESS:
            return True
        if self.kind == OutcomeKind.PARTIAL_FAILURE:
            return self.policy == FailurePolicy.BEST_EFFORT
        return False


class StagingLoadReport(BaseModel):
    file_path: str
    batch_ids: List[str] = Field(default_factory=list)
    rows_read: int = 0
    rows_skipped: int = 0
    records_inserted: Dict[str, int] = Field(default_factory=dict)

    @property
    def rows_loaded(self) -> int:
        return self.rows_read - self.rows_skipped


class TransformReport(BaseModel):
    """Per staging table: rows written, rows rejected for a missing key"""

    records_written: Dict[str, int] = Field(default_factory=dict)
    records_rejected: Dict[str, int] = Field(default_factory=dict)
    duplicates_dropped: Dict[str, int] = Field(default_factory=dict)

    @property
    def total_written(self) -> int:
        return sum(self.records_written.values())

    @property
    def total_rejected(self) -> int:
        return sum(self.records_rejected.values())


class WarehouseLoadReport(BaseModel):
    """Rows affected per warehouse table"""

    partition_key: int
    rows_affected: Dict[str, int] = Field(default_factory=dict)
    rows_skipped: Dict[str, int] = Field(default_factory=dict)

    @property
    def total_affected(self) -> int:
        return sum(self.rows_affected.values())

    @property
    def total_skipped(self) -> int:
        return sum(self.rows_skipped.values())


class StageResult(BaseModel):
    """What a stage run returns to the orchestrator and CLI"""

    stage: str
    status: StageStatus
    execution_id: Optional[str] = None
    attempts: int = 1
    records_inserted: int = 0
    records_failed: int = 0
    finished_at: datetime = Field(default_factory=datetime.now)
    message: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.status == StageStatus.SKIPPED
