"""
Two-stage approval state machine.

    pending --HR approve--> hr_approved --GM/AE approve--> approved
       |                         |
       +--HR reject--> rejected <+--GM/AE reject

Planning and applying a transition are pure; persisting it is the store's job.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple

from leave_tracker.core.exceptions import IllegalTransition
from leave_tracker.models.leave_request import Decision, LeaveStatus, StageStatus
from leave_tracker.models.user import UserRole
from leave_tracker.schemas.leave import (
    ApprovalRecord,
    LeaveRequestSnapshot,
    StagePatch,
    derive_status,
)

# Which stage is open for a decision in each non-terminal status
STAGE_BY_STATUS: Dict[LeaveStatus, int] = {
    LeaveStatus.PENDING: 1,
    LeaveStatus.HR_APPROVED: 2,
}

ROLES_BY_STAGE: Dict[int, FrozenSet[UserRole]] = {
    1: frozenset({UserRole.HR}),
    2: frozenset({UserRole.GM, UserRole.AE}),
}

_STAGE_OUTCOME: Dict[Decision, StageStatus] = {
    Decision.APPROVE: StageStatus.APPROVED,
    Decision.REJECT: StageStatus.REJECTED,
}


@dataclass(frozen=True)
class Transition:
    precondition: LeaveStatus
    patch: StagePatch

    @property
    def status(self) -> LeaveStatus:
        return self.patch.status


def _normalize_remarks(remarks: Optional[str]) -> Optional[str]:
    return (remarks or "").strip() or None


class ApprovalStateMachine:
    def open_stage(self, status: LeaveStatus) -> Optional[int]:
        return STAGE_BY_STATUS.get(LeaveStatus(status))

    def eligible_roles(self, status: LeaveStatus) -> FrozenSet[UserRole]:
        stage = self.open_stage(status)
        return ROLES_BY_STAGE[stage] if stage else frozenset()

    def can_decide(self, request: LeaveRequestSnapshot, role: UserRole) -> bool:
        return UserRole(role) in self.eligible_roles(request.status)

    def plan(
        self,
        request: LeaveRequestSnapshot,
        *,
        actor_id: int,
        actor_role: UserRole,
        decision: Decision,
        now: datetime,
        actor_label: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> Transition:
        role = UserRole(actor_role)
        decision = Decision(decision)
        status = request.status

        if status.is_terminal:
            raise IllegalTransition(status.value, role.value, decision.value, "request is already final")

        stage = STAGE_BY_STATUS[status]
        if role not in ROLES_BY_STAGE[stage]:
            raise IllegalTransition(status.value, role.value, decision.value, f"stage {stage} is not open to this role")

        current_record = request.stage1 if stage == 1 else request.stage2
        if current_record.is_decided:
            raise IllegalTransition(status.value, role.value, decision.value, f"stage {stage} was already decided")

        record = ApprovalRecord(
            status=_STAGE_OUTCOME[decision],
            by=actor_id,
            by_label=actor_label,
            role=role,
            remarks=_normalize_remarks(remarks),
            at=now,
        )
        stages: Tuple[StageStatus, StageStatus] = (
            (record.status, request.stage2.status) if stage == 1 else (request.stage1.status, record.status)
        )
        return Transition(
            precondition=status,
            patch=StagePatch(stage=stage, record=record, status=derive_status(*stages)),
        )

    def apply(self, request: LeaveRequestSnapshot, transition: Transition) -> LeaveRequestSnapshot:
        """In-memory result of a transition, validated against the snapshot invariants."""
        if request.status != transition.precondition:
            raise IllegalTransition(request.status.value, "-", "apply", "transition was planned for another status")
        slot = "stage1" if transition.patch.stage == 1 else "stage2"
        data = request.model_dump()
        data[slot] = transition.patch.record.model_dump()
        data["status"] = transition.patch.status
        data["updated_at"] = transition.patch.record.at
        return LeaveRequestSnapshot.model_validate(data)
