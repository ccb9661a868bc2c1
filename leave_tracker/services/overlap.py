from datetime import date
from typing import Optional

from leave_tracker.core.exceptions import InvalidRange
from leave_tracker.models.leave_request import LeaveStatus
from leave_tracker.schemas.leave import LeaveRequestSnapshot
from leave_tracker.services.request_store import RequestFilter, RequestStore


def ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Closed intervals share at least one day: StartA <= EndB and EndA >= StartB."""
    return start_a <= end_b and end_a >= start_b


class OverlapValidator:
    """
    Blocks a new submission only against requests that are already approved.
    Pending and rejected requests never conflict.
    """

    def __init__(self, store: RequestStore):
        self._store = store

    def find_conflict(self, user_id: int, candidate_start: date, candidate_end: date) -> Optional[LeaveRequestSnapshot]:
        if candidate_start > candidate_end:
            raise InvalidRange(candidate_start, candidate_end)
        approved = self._store.query(
            RequestFilter(requester_id=user_id, statuses=frozenset({LeaveStatus.APPROVED}))
        )
        for existing in approved:
            if ranges_overlap(candidate_start, candidate_end, existing.start_date, existing.end_date):
                return existing
        return None

    def has_overlap(self, user_id: int, candidate_start: date, candidate_end: date) -> bool:
        return self.find_conflict(user_id, candidate_start, candidate_end) is not None
