from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Text
from leave_tracker.database import Base
import enum

class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    HR_APPROVED = "hr_approved"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (LeaveStatus.APPROVED, LeaveStatus.REJECTED)

class StageStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class Decision(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"

class RequestKind(str, enum.Enum):
    LEAVE = "leave"
    PERMISSION = "permission"

class LeaveCategory(str, enum.Enum):
    CASUAL = "casual"
    SICK = "sick"
    EARNED = "earned"
    MATERNITY = "maternity"
    PATERNITY = "paternity"
    UNPAID = "unpaid"

class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    requester_label = Column(String, nullable=False)
    kind = Column(String, nullable=False, default=RequestKind.LEAVE.value)
    category = Column(String, nullable=False, default=LeaveCategory.CASUAL.value)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    duration = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Derived from the two stage slots; stored for querying and compare-and-swap
    status = Column(String, index=True, nullable=False, default=LeaveStatus.PENDING.value)

    # Stage 1 (HR gate)
    stage1_status = Column(String, nullable=False, default=StageStatus.PENDING.value)
    stage1_by = Column(Integer, nullable=True)
    stage1_by_label = Column(String, nullable=True)
    stage1_role = Column(String, nullable=True)
    stage1_remarks = Column(Text, nullable=True)
    stage1_at = Column(DateTime(timezone=True), nullable=True)

    # Stage 2 (GM/AE gate)
    stage2_status = Column(String, nullable=False, default=StageStatus.PENDING.value)
    stage2_by = Column(Integer, nullable=True)
    stage2_by_label = Column(String, nullable=True)
    stage2_role = Column(String, nullable=True)
    stage2_remarks = Column(Text, nullable=True)
    stage2_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
