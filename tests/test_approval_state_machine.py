import pytest
from datetime import date, datetime, timezone
from pydantic import ValidationError

from leave_tracker.core.exceptions import IllegalTransition
from leave_tracker.models.leave_request import Decision, LeaveStatus, StageStatus
from leave_tracker.models.user import UserRole
from leave_tracker.schemas.leave import ApprovalRecord, LeaveRequestSnapshot, derive_status
from leave_tracker.services.approval import ApprovalStateMachine

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _decided(status, role, by=99):
    return ApprovalRecord(status=status, by=by, role=role, at=NOW)


def _request(stage1=None, stage2=None):
    stage1 = stage1 or ApprovalRecord()
    stage2 = stage2 or ApprovalRecord()
    return LeaveRequestSnapshot(
        id=1,
        requester_id=10,
        requester_label="Eve",
        kind="leave",
        category="casual",
        start_date=date(2025, 3, 10),
        end_date=date(2025, 3, 12),
        duration=3,
        reason="trip",
        status=derive_status(stage1.status, stage2.status),
        stage1=stage1,
        stage2=stage2,
        created_at=NOW,
        updated_at=NOW,
    )


PENDING = _request()
HR_APPROVED = _request(stage1=_decided(StageStatus.APPROVED, UserRole.HR))
APPROVED = _request(
    stage1=_decided(StageStatus.APPROVED, UserRole.HR),
    stage2=_decided(StageStatus.APPROVED, UserRole.GM),
)
REJECTED_BY_HR = _request(stage1=_decided(StageStatus.REJECTED, UserRole.HR))
REJECTED_BY_GM = _request(
    stage1=_decided(StageStatus.APPROVED, UserRole.HR),
    stage2=_decided(StageStatus.REJECTED, UserRole.AE),
)


@pytest.fixture
def machine():
    return ApprovalStateMachine()


def _plan(machine, request, role, decision, remarks=None):
    return machine.plan(
        request,
        actor_id=7,
        actor_role=role,
        actor_label="Actor",
        decision=decision,
        remarks=remarks,
        now=NOW,
    )


@pytest.mark.parametrize("request_, role, decision, stage, stage_status, new_status", [
    (PENDING, UserRole.HR, Decision.APPROVE, 1, StageStatus.APPROVED, LeaveStatus.HR_APPROVED),
    (PENDING, UserRole.HR, Decision.REJECT, 1, StageStatus.REJECTED, LeaveStatus.REJECTED),
    (HR_APPROVED, UserRole.GM, Decision.APPROVE, 2, StageStatus.APPROVED, LeaveStatus.APPROVED),
    (HR_APPROVED, UserRole.AE, Decision.APPROVE, 2, StageStatus.APPROVED, LeaveStatus.APPROVED),
    (HR_APPROVED, UserRole.GM, Decision.REJECT, 2, StageStatus.REJECTED, LeaveStatus.REJECTED),
    (HR_APPROVED, UserRole.AE, Decision.REJECT, 2, StageStatus.REJECTED, LeaveStatus.REJECTED),
])
def test_transition_table(machine, request_, role, decision, stage, stage_status, new_status):
    transition = _plan(machine, request_, role, decision)
    assert transition.precondition == request_.status
    assert transition.patch.stage == stage
    assert transition.patch.record.status == stage_status
    assert transition.patch.record.by == 7
    assert transition.patch.record.role == role
    assert transition.patch.record.at == NOW
    assert transition.status == new_status

    applied = machine.apply(request_, transition)
    assert applied.status == new_status
    # The non-acting stage is left untouched
    untouched = "stage2" if stage == 1 else "stage1"
    assert getattr(applied, untouched) == getattr(request_, untouched)


@pytest.mark.parametrize("role", [UserRole.GM, UserRole.AE, UserRole.EMPLOYEE])
@pytest.mark.parametrize("decision", list(Decision))
def test_only_hr_may_decide_pending(machine, role, decision):
    with pytest.raises(IllegalTransition) as exc_info:
        _plan(machine, PENDING, role, decision)
    assert exc_info.value.error_code == "ILLEGAL_TRANSITION"
    assert exc_info.value.status == "pending"


@pytest.mark.parametrize("role", [UserRole.HR, UserRole.EMPLOYEE])
def test_only_gm_or_ae_may_decide_hr_approved(machine, role):
    with pytest.raises(IllegalTransition):
        _plan(machine, HR_APPROVED, role, Decision.APPROVE)


@pytest.mark.parametrize("request_", [APPROVED, REJECTED_BY_HR, REJECTED_BY_GM])
@pytest.mark.parametrize("role", list(UserRole))
def test_terminal_states_are_absorbing(machine, request_, role):
    for decision in Decision:
        with pytest.raises(IllegalTransition):
            _plan(machine, request_, role, decision)
    assert machine.eligible_roles(request_.status) == frozenset()


def test_eligible_roles(machine):
    assert machine.eligible_roles(LeaveStatus.PENDING) == {UserRole.HR}
    assert machine.eligible_roles(LeaveStatus.HR_APPROVED) == {UserRole.GM, UserRole.AE}
    assert machine.can_decide(HR_APPROVED, UserRole.AE)
    assert not machine.can_decide(PENDING, UserRole.GM)


def test_remarks_are_optional_and_trimmed(machine):
    assert _plan(machine, PENDING, UserRole.HR, Decision.APPROVE).patch.record.remarks is None
    assert _plan(machine, PENDING, UserRole.HR, Decision.APPROVE, "   ").patch.record.remarks is None
    assert _plan(machine, PENDING, UserRole.HR, Decision.REJECT, " conflict ").patch.record.remarks == "conflict"


def test_apply_refuses_a_transition_planned_for_another_status(machine):
    transition = _plan(machine, PENDING, UserRole.HR, Decision.APPROVE)
    with pytest.raises(IllegalTransition):
        machine.apply(HR_APPROVED, transition)


def test_approval_records_are_immutable():
    record = _decided(StageStatus.APPROVED, UserRole.HR)
    with pytest.raises(ValidationError):
        record.status = StageStatus.REJECTED


def test_decided_record_requires_actor_and_timestamp():
    with pytest.raises(ValidationError):
        ApprovalRecord(status=StageStatus.APPROVED, role=UserRole.HR)
    with pytest.raises(ValidationError):
        ApprovalRecord(status=StageStatus.PENDING, by=3)


@pytest.mark.parametrize("stage1, stage2", [
    (StageStatus.PENDING, StageStatus.APPROVED),
    (StageStatus.PENDING, StageStatus.REJECTED),
    (StageStatus.REJECTED, StageStatus.APPROVED),
    (StageStatus.REJECTED, StageStatus.REJECTED),
])
def test_unreachable_stage_combinations_are_rejected(stage1, stage2):
    with pytest.raises(ValueError):
        derive_status(stage1, stage2)


def test_snapshot_status_must_match_stages():
    with pytest.raises(ValidationError):
        LeaveRequestSnapshot(**{**PENDING.model_dump(), "status": LeaveStatus.APPROVED})


def test_snapshot_duration_must_match_range():
    with pytest.raises(ValidationError):
        LeaveRequestSnapshot(**{**PENDING.model_dump(), "duration": 2})
