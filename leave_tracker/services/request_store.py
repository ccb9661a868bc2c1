"""
Persistence for leave requests.

The store holds no business rules. It offers create, point reads, filtered
queries, a compare-and-swap update on `status`, and live subscriptions that
push the full matching result set after every committed change.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, FrozenSet, List, Optional, Protocol, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from leave_tracker.core.exceptions import ConcurrentModification, RequestNotFound, StoreUnavailable
from leave_tracker.database import session_scope
from leave_tracker.models.leave_request import LeaveCategory, LeaveRequest, LeaveStatus, RequestKind, StageStatus
from leave_tracker.schemas.leave import (
    ApprovalRecord,
    LeaveRequestSnapshot,
    NewLeaveRequest,
    StagePatch,
)

logger = logging.getLogger(__name__)

Listener = Callable[[List[LeaveRequestSnapshot]], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RequestFilter:
    """Conjunction of optional conditions; an empty filter matches every request."""
    requester_id: Optional[int] = None
    statuses: Optional[FrozenSet[LeaveStatus]] = None
    stage1_status: Optional[StageStatus] = None
    covering: Optional[date] = None
    category: Optional[LeaveCategory] = None
    kind: Optional[RequestKind] = None

    def matches(self, request: LeaveRequestSnapshot) -> bool:
        if self.requester_id is not None and request.requester_id != self.requester_id:
            return False
        if self.statuses is not None and request.status not in self.statuses:
            return False
        if self.stage1_status is not None and request.stage1.status != self.stage1_status:
            return False
        if self.category is not None and request.category != self.category:
            return False
        if self.kind is not None and request.kind != self.kind:
            return False
        if self.covering is not None and not request.covers(self.covering):
            return False
        return True

    def where_clauses(self) -> list:
        clauses = []
        if self.requester_id is not None:
            clauses.append(LeaveRequest.requester_id == self.requester_id)
        if self.statuses is not None:
            clauses.append(LeaveRequest.status.in_([s.value for s in self.statuses]))
        if self.stage1_status is not None:
            clauses.append(LeaveRequest.stage1_status == self.stage1_status.value)
        if self.covering is not None:
            clauses.append(LeaveRequest.start_date <= self.covering)
            clauses.append(LeaveRequest.end_date >= self.covering)
        if self.category is not None:
            clauses.append(LeaveRequest.category == LeaveCategory(self.category).value)
        if self.kind is not None:
            clauses.append(LeaveRequest.kind == RequestKind(self.kind).value)
        return clauses


class Subscription:
    """
    Handle for a live query. `cancel()` is idempotent and, once it returns,
    the listener is never invoked again.
    """

    def __init__(self, store: "SqlAlchemyRequestStore", request_filter: RequestFilter, listener: Listener):
        self.filter = request_filter
        self._store = store
        self._listener = listener
        # Reentrant so a listener may cancel its own subscription
        self._lock = threading.RLock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def refresh(self) -> None:
        """Re-run the query and push the result. Serialized per subscription."""
        with self._lock:
            if not self._active:
                return
            try:
                snapshots = self._store.query(self.filter)
            except StoreUnavailable as e:
                logger.warning(f"Live query refresh skipped: {e.message}")
                return
            try:
                self._listener(snapshots)
            except Exception as e:
                # Don't fail the writer if a consumer's callback fails
                logger.warning(f"Subscription listener failed: {e}", exc_info=True)

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        self._store._detach(self)


class RequestStore(Protocol):
    def create(self, record: NewLeaveRequest) -> int:
        raise NotImplementedError

    def get(self, request_id: int) -> Optional[LeaveRequestSnapshot]:
        raise NotImplementedError

    def query(self, request_filter: RequestFilter) -> List[LeaveRequestSnapshot]:
        raise NotImplementedError

    def update(self, request_id: int, *, precondition: LeaveStatus, patch: StagePatch) -> LeaveRequestSnapshot:
        """Apply `patch` only if the stored status still equals `precondition`."""
        raise NotImplementedError

    def subscribe(self, request_filter: RequestFilter, listener: Listener) -> Subscription:
        raise NotImplementedError


def _record_from_row(row: LeaveRequest, stage: int) -> ApprovalRecord:
    prefix = f"stage{stage}_"
    return ApprovalRecord(
        status=StageStatus(getattr(row, prefix + "status")),
        by=getattr(row, prefix + "by"),
        by_label=getattr(row, prefix + "by_label"),
        role=getattr(row, prefix + "role"),
        remarks=getattr(row, prefix + "remarks"),
        at=getattr(row, prefix + "at"),
    )


def to_snapshot(row: LeaveRequest) -> LeaveRequestSnapshot:
    return LeaveRequestSnapshot(
        id=row.id,
        requester_id=row.requester_id,
        requester_label=row.requester_label,
        kind=row.kind,
        category=row.category,
        start_date=row.start_date,
        end_date=row.end_date,
        duration=row.duration,
        reason=row.reason,
        description=row.description,
        assigned_to=row.assigned_to,
        status=row.status,
        stage1=_record_from_row(row, 1),
        stage2=_record_from_row(row, 2),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlAlchemyRequestStore(RequestStore):
    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock
        self._subscriptions: List[Subscription] = []
        self._subscriptions_lock = threading.Lock()

    def create(self, record: NewLeaveRequest) -> int:
        now = self._clock()
        with session_scope(self._session_factory, "create") as session:
            fields = record.model_dump()
            fields["kind"] = record.kind.value
            fields["category"] = record.category.value
            row = LeaveRequest(
                **fields,
                status=LeaveStatus.PENDING.value,
                stage1_status=StageStatus.PENDING.value,
                stage2_status=StageStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            snapshot = to_snapshot(row)
        self._publish([snapshot])
        return snapshot.id

    def get(self, request_id: int) -> Optional[LeaveRequestSnapshot]:
        with session_scope(self._session_factory, "get") as session:
            row = session.get(LeaveRequest, request_id)
            return to_snapshot(row) if row else None

    def query(self, request_filter: RequestFilter) -> List[LeaveRequestSnapshot]:
        stmt = (
            select(LeaveRequest)
            .where(*request_filter.where_clauses())
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
        )
        with session_scope(self._session_factory, "query") as session:
            return [to_snapshot(row) for row in session.scalars(stmt)]

    def update(self, request_id: int, *, precondition: LeaveStatus, patch: StagePatch) -> LeaveRequestSnapshot:
        prefix = f"stage{patch.stage}_"
        record = patch.record
        values = {
            "status": patch.status.value,
            prefix + "status": record.status.value,
            prefix + "by": record.by,
            prefix + "by_label": record.by_label,
            prefix + "role": record.role.value if record.role else None,
            prefix + "remarks": record.remarks,
            prefix + "at": record.at,
            "updated_at": self._clock(),
        }
        stage_status_column = getattr(LeaveRequest, prefix + "status")

        with session_scope(self._session_factory, "update") as session:
            before_row = session.get(LeaveRequest, request_id)
            if before_row is None:
                raise RequestNotFound(request_id)
            before = to_snapshot(before_row)

            # Compare-and-swap: the precondition is re-checked by the write itself
            result = session.execute(
                update(LeaveRequest)
                .where(
                    LeaveRequest.id == request_id,
                    LeaveRequest.status == precondition.value,
                    stage_status_column == StageStatus.PENDING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                actual = session.execute(
                    select(LeaveRequest.status).where(LeaveRequest.id == request_id)
                ).scalar_one_or_none()
                raise ConcurrentModification(request_id, precondition.value, actual)

            after_row = session.get(LeaveRequest, request_id, populate_existing=True)
            after = to_snapshot(after_row)

        self._publish([before, after])
        return after

    def subscribe(self, request_filter: RequestFilter, listener: Listener) -> Subscription:
        subscription = Subscription(self, request_filter, listener)
        with self._subscriptions_lock:
            self._subscriptions.append(subscription)
        # Initial result set; later changes are pushed by _publish
        subscription.refresh()
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        with self._subscriptions_lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _publish(self, changed: Sequence[LeaveRequestSnapshot]) -> None:
        with self._subscriptions_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            if any(subscription.filter.matches(s) for s in changed):
                subscription.refresh()
