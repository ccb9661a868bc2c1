from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leave_tracker.models.leave_request import (
    Decision,
    LeaveCategory,
    LeaveStatus,
    RequestKind,
    StageStatus,
)
from leave_tracker.models.user import UserRole


# (stage1, stage2) -> overall status. Pairs missing here cannot exist.
_STATUS_BY_STAGES: Dict[tuple, LeaveStatus] = {
    (StageStatus.PENDING, StageStatus.PENDING): LeaveStatus.PENDING,
    (StageStatus.APPROVED, StageStatus.PENDING): LeaveStatus.HR_APPROVED,
    (StageStatus.APPROVED, StageStatus.APPROVED): LeaveStatus.APPROVED,
    (StageStatus.REJECTED, StageStatus.PENDING): LeaveStatus.REJECTED,
    (StageStatus.APPROVED, StageStatus.REJECTED): LeaveStatus.REJECTED,
}


def derive_status(stage1: StageStatus, stage2: StageStatus) -> LeaveStatus:
    """Overall status as a pure function of the two stage decisions."""
    try:
        return _STATUS_BY_STAGES[(StageStatus(stage1), StageStatus(stage2))]
    except KeyError:
        raise ValueError(f"Invalid approval stage combination: stage1={stage1}, stage2={stage2}")


def inclusive_days(start: date, end: date) -> int:
    return (end - start).days + 1


class ApprovalRecord(BaseModel):
    """One approver's decision. Written once, never edited."""
    model_config = ConfigDict(frozen=True)

    status: StageStatus = StageStatus.PENDING
    by: Optional[int] = None
    by_label: Optional[str] = None
    role: Optional[UserRole] = None
    remarks: Optional[str] = None
    at: Optional[datetime] = None

    @model_validator(mode="after")
    def _decided_records_are_complete(self):
        if self.status == StageStatus.PENDING:
            if self.by is not None or self.role is not None or self.at is not None:
                raise ValueError("A pending approval record cannot carry a decision")
        elif self.by is None or self.role is None or self.at is None:
            raise ValueError("A decided approval record needs an actor, a role and a timestamp")
        return self

    @property
    def is_decided(self) -> bool:
        return self.status != StageStatus.PENDING


class StagePatch(BaseModel):
    """The single stage record a decision writes, plus the status it derives."""
    model_config = ConfigDict(frozen=True)

    stage: int = Field(ge=1, le=2)
    record: ApprovalRecord
    status: LeaveStatus


class NewLeaveRequest(BaseModel):
    """Requester-owned fields of a request about to be persisted."""
    model_config = ConfigDict(frozen=True)

    requester_id: int
    requester_label: str
    kind: RequestKind
    category: LeaveCategory
    start_date: date
    end_date: date
    duration: int = Field(ge=1)
    reason: str
    description: Optional[str] = None
    assigned_to: Optional[int] = None


class LeaveRequestSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    requester_id: int
    requester_label: str
    kind: RequestKind
    category: LeaveCategory
    start_date: date
    end_date: date
    duration: int
    reason: str
    description: Optional[str] = None
    assigned_to: Optional[int] = None
    status: LeaveStatus
    stage1: ApprovalRecord = Field(default_factory=ApprovalRecord)
    stage2: ApprovalRecord = Field(default_factory=ApprovalRecord)
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_invariants(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.duration != inclusive_days(self.start_date, self.end_date):
            raise ValueError("duration must equal the inclusive day count of the range")
        if self.status != derive_status(self.stage1.status, self.stage2.status):
            raise ValueError("status must be derived from the approval stages")
        return self

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


# --- API payloads ---

class LeaveRequestCreate(BaseModel):
    kind: RequestKind = RequestKind.LEAVE
    category: LeaveCategory = LeaveCategory.CASUAL
    start_date: date
    end_date: date
    reason: str = Field(min_length=1)
    description: Optional[str] = None

class LeaveDecisionRequest(BaseModel):
    decision: Decision
    remarks: Optional[str] = None

class MonthlyLeaveCount(BaseModel):
    month: str  # YYYY-MM of submission
    approved: int = 0
    rejected: int = 0
    pending: int = 0  # includes hr_approved

class LeaveStats(BaseModel):
    total: int = 0
    pending: int = 0
    hr_approved: int = 0
    approved: int = 0
    rejected: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    team_size: int = 0
    monthly: List[MonthlyLeaveCount] = Field(default_factory=list)

class TeamMember(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    full_name: Optional[str] = None
    role: UserRole
