import pytest
from datetime import date, timedelta

from leave_tracker.core.exceptions import InvalidRange
from leave_tracker.models.leave_request import Decision, LeaveCategory, RequestKind
from leave_tracker.models.user import UserRole
from leave_tracker.services.overlap import ranges_overlap

A = date(2025, 3, 10)
B = date(2025, 3, 12)


@pytest.mark.parametrize("start, end, expected", [
    (date(2025, 3, 1), date(2025, 3, 9), False),    # strictly before
    (date(2025, 3, 13), date(2025, 3, 20), False),  # strictly after
    (date(2025, 3, 1), A, True),                    # touches the first day
    (B, date(2025, 3, 20), True),                   # touches the last day
    (date(2025, 3, 11), date(2025, 3, 11), True),   # inside
    (date(2025, 3, 1), date(2025, 3, 31), True),    # contains
    (date(2025, 3, 11), date(2025, 3, 13), True),   # partial
])
def test_ranges_overlap_is_closed_interval(start, end, expected):
    assert ranges_overlap(start, end, A, B) is expected
    assert ranges_overlap(A, B, start, end) is expected


def _approved(workflow, users, start=A, end=B):
    request = workflow.submit(users.employee, RequestKind.LEAVE, LeaveCategory.CASUAL, start, end, "trip")
    workflow.decide(request.id, users.hr, UserRole.HR, Decision.APPROVE)
    return workflow.decide(request.id, users.gm, UserRole.GM, Decision.APPROVE)


def test_no_requests_means_no_overlap(workflow, users):
    assert workflow.overlap.has_overlap(users.employee, A, B) is False


def test_approved_request_blocks_every_intersecting_range(workflow, users):
    approved = _approved(workflow, users)
    for offset in range(-2, 3):
        start = A + timedelta(days=offset)
        assert workflow.overlap.has_overlap(users.employee, start, start + timedelta(days=2))
    conflict = workflow.overlap.find_conflict(users.employee, B, B)
    assert conflict.id == approved.id


def test_ranges_outside_the_approval_pass(workflow, users):
    _approved(workflow, users)
    assert not workflow.overlap.has_overlap(users.employee, A - timedelta(days=5), A - timedelta(days=1))
    assert not workflow.overlap.has_overlap(users.employee, B + timedelta(days=1), B + timedelta(days=4))


def test_pending_and_rejected_requests_never_block(workflow, users):
    workflow.submit(users.employee, RequestKind.LEAVE, LeaveCategory.SICK, A, B, "flu")
    rejected = workflow.submit(users.employee, RequestKind.LEAVE, LeaveCategory.SICK, A, B, "flu again")
    workflow.decide(rejected.id, users.hr, UserRole.HR, Decision.REJECT)
    hr_approved = workflow.submit(users.employee, RequestKind.PERMISSION, LeaveCategory.CASUAL, A, A, "errand")
    workflow.decide(hr_approved.id, users.hr, UserRole.HR, Decision.APPROVE)

    assert workflow.overlap.has_overlap(users.employee, A, B) is False


def test_other_users_approvals_do_not_block(workflow, users):
    _approved(workflow, users)
    assert workflow.overlap.has_overlap(users.other, A, B) is False


def test_inverted_candidate_range_is_invalid(workflow, users):
    with pytest.raises(InvalidRange):
        workflow.overlap.has_overlap(users.employee, B, A)
