import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, List, Optional

from leave_tracker.core.exceptions import ConcurrentModification, InvalidRange, OverlappingApproval, RequestNotFound
from leave_tracker.models.leave_request import (
    Decision,
    LeaveCategory,
    LeaveStatus,
    RequestKind,
    StageStatus,
)
from leave_tracker.models.user import UserRole
from leave_tracker.schemas.leave import (
    LeaveRequestSnapshot,
    LeaveStats,
    MonthlyLeaveCount,
    NewLeaveRequest,
    inclusive_days,
)
from leave_tracker.services.approval import ApprovalStateMachine
from leave_tracker.services.audit import AuditService
from leave_tracker.services.overlap import OverlapValidator
from leave_tracker.services.request_store import Listener, RequestFilter, RequestStore, Subscription, utcnow
from leave_tracker.services.routing import Actor, RoutingResolver, UserDirectory

logger = logging.getLogger(__name__)

# Months covered by the monthly breakdown in stats, current month included
STATS_MONTHS = 6


def visibility_filter(viewer_id: int, viewer_role: UserRole) -> RequestFilter:
    """
    Employees see their own requests, HR sees everything, and GM/AE see
    only what passed the HR gate (hr_approved, approved, or rejected at stage 2).
    """
    role = UserRole(viewer_role)
    if role == UserRole.HR:
        return RequestFilter()
    if role in (UserRole.GM, UserRole.AE):
        return RequestFilter(stage1_status=StageStatus.APPROVED)
    return RequestFilter(requester_id=viewer_id)


def _recent_months(today: date, count: int) -> List[str]:
    """`count` YYYY-MM keys ending with the month of `today`, oldest first."""
    months = []
    year, month = today.year, today.month
    for _ in range(count):
        months.append(f"{year:04d}-{month:02d}")
        year, month = (year, month - 1) if month > 1 else (year - 1, 12)
    return list(reversed(months))


class LeaveWorkflowService:
    """Entry point for submitting, deciding and listing leave requests."""

    def __init__(
        self,
        store: RequestStore,
        directory: UserDirectory,
        audit: Optional[AuditService] = None,
        state_machine: Optional[ApprovalStateMachine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._directory = directory
        self._routing = RoutingResolver(directory)
        self._overlap = OverlapValidator(store)
        self._machine = state_machine or ApprovalStateMachine()
        self._audit = audit
        self._clock = clock

    @property
    def routing(self) -> RoutingResolver:
        return self._routing

    @property
    def overlap(self) -> OverlapValidator:
        return self._overlap

    def get(self, request_id: int) -> LeaveRequestSnapshot:
        request = self._store.get(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        return request

    def get_for(self, viewer_id: int, viewer_role: UserRole, request_id: int) -> LeaveRequestSnapshot:
        """Point read under the same visibility rules as `list_for`; hidden requests look missing."""
        request = self.get(request_id)
        if not visibility_filter(viewer_id, viewer_role).matches(request):
            logger.info(
                f"User {viewer_id} asked for leave request {request_id} outside their view",
                extra={"viewer_id": viewer_id, "leave_request_id": request_id},
            )
            raise RequestNotFound(request_id)
        return request

    def submit(
        self,
        requester_id: int,
        kind: RequestKind,
        category: LeaveCategory,
        start: date,
        end: date,
        reason: str,
        description: Optional[str] = None,
    ) -> LeaveRequestSnapshot:
        if start > end:
            raise InvalidRange(start, end)
        duration = inclusive_days(start, end)
        if duration <= 0:
            raise InvalidRange(start, end)

        conflict = self._overlap.find_conflict(requester_id, start, end)
        if conflict is not None:
            logger.info(
                f"Rejected submission by user {requester_id}: overlaps approved request {conflict.id}",
                extra={"requester_id": requester_id, "conflicting_request_id": conflict.id},
            )
            raise OverlappingApproval(conflict.id, conflict.start_date, conflict.end_date)

        request_id = self._store.create(
            NewLeaveRequest(
                requester_id=requester_id,
                requester_label=self._directory.label_of(requester_id),
                kind=RequestKind(kind),
                category=LeaveCategory(category),
                start_date=start,
                end_date=end,
                duration=duration,
                reason=reason,
                description=(description or "").strip() or None,
                assigned_to=self._routing.resolve_approver(requester_id),
            )
        )
        logger.info(
            f"Leave request {request_id} submitted by user {requester_id} ({duration} day(s))",
            extra={"leave_request_id": request_id, "requester_id": requester_id},
        )
        return self.get(request_id)

    def decide(
        self,
        request_id: int,
        actor_id: int,
        actor_role: UserRole,
        decision: Decision,
        remarks: Optional[str] = None,
    ) -> LeaveRequestSnapshot:
        current = self.get(request_id)
        transition = self._machine.plan(
            current,
            actor_id=actor_id,
            actor_role=actor_role,
            actor_label=self._directory.label_of(actor_id),
            decision=decision,
            remarks=remarks,
            now=self._clock(),
        )
        try:
            updated = self._store.update(request_id, precondition=transition.precondition, patch=transition.patch)
        except ConcurrentModification as e:
            logger.warning(
                f"Decision on leave request {request_id} lost a race: expected {e.expected}, found {e.actual}",
                extra={"actor_id": actor_id},
            )
            raise

        logger.info(
            f"Leave request {request_id}: {current.status.value} -> {updated.status.value} by user {actor_id}",
            extra={"actor_id": actor_id, "actor_role": UserRole(actor_role).value},
        )
        if self._audit is not None:
            self._audit.record_decision(
                current, updated, actor_id, UserRole(actor_role).value, transition.patch.record.remarks
            )
        return updated

    def list_for(
        self,
        viewer_id: int,
        viewer_role: UserRole,
        status: Optional[LeaveStatus] = None,
        category: Optional[LeaveCategory] = None,
        kind: Optional[RequestKind] = None,
    ) -> List[LeaveRequestSnapshot]:
        """Visible requests, newest first, optionally narrowed by status, category and kind."""
        request_filter = replace(
            visibility_filter(viewer_id, viewer_role),
            statuses=frozenset({LeaveStatus(status)}) if status is not None else None,
            category=LeaveCategory(category) if category is not None else None,
            kind=RequestKind(kind) if kind is not None else None,
        )
        return self._store.query(request_filter)

    def watch_for(self, viewer_id: int, viewer_role: UserRole, listener: Listener) -> Subscription:
        """Live variant of list_for; the caller must cancel the returned subscription."""
        return self._store.subscribe(visibility_filter(viewer_id, viewer_role), listener)

    def calendar_for(self, viewer_id: int, viewer_role: UserRole, day: date) -> List[LeaveRequestSnapshot]:
        """Approved requests covering `day`; employees only see their own."""
        requester_id = viewer_id if UserRole(viewer_role) == UserRole.EMPLOYEE else None
        return self._store.query(
            RequestFilter(
                requester_id=requester_id,
                statuses=frozenset({LeaveStatus.APPROVED}),
                covering=day,
            )
        )

    def stats_for(self, viewer_id: int, viewer_role: UserRole) -> LeaveStats:
        requests = self.list_for(viewer_id, viewer_role)
        counts = {status: 0 for status in LeaveStatus}
        by_category = {}
        months = _recent_months(self._clock().date(), STATS_MONTHS)
        monthly = {key: MonthlyLeaveCount(month=key) for key in months}
        for request in requests:
            counts[request.status] += 1
            by_category[request.category.value] = by_category.get(request.category.value, 0) + 1
            key = request.created_at.strftime("%Y-%m")
            if key in monthly:
                bucket = monthly[key]
                field = request.status.value if request.status.is_terminal else "pending"
                setattr(bucket, field, getattr(bucket, field) + 1)

        # Employees have no team; approvers count the users routed to them
        team_size = 0 if UserRole(viewer_role) == UserRole.EMPLOYEE else len(self._directory.team_of(viewer_id))
        return LeaveStats(
            total=len(requests),
            pending=counts[LeaveStatus.PENDING],
            hr_approved=counts[LeaveStatus.HR_APPROVED],
            approved=counts[LeaveStatus.APPROVED],
            rejected=counts[LeaveStatus.REJECTED],
            by_category=by_category,
            team_size=team_size,
            monthly=[monthly[key] for key in months],
        )

    def team_of(self, manager_id: int) -> List[Actor]:
        return self._directory.team_of(manager_id)
