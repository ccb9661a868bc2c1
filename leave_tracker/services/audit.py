import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from leave_tracker.models.audit_log import AuditLog
from leave_tracker.schemas.leave import LeaveRequestSnapshot

logger = logging.getLogger(__name__)


def _state(request: LeaveRequestSnapshot) -> dict:
    return {
        "status": request.status.value,
        "stage1": request.stage1.status.value,
        "stage2": request.stage2.status.value,
    }


class AuditService:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record_decision(
        self,
        before: LeaveRequestSnapshot,
        after: LeaveRequestSnapshot,
        actor_id: int,
        actor_role: str,
        remarks: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Append one audit entry for a committed decision.
        Strictly append-only; never breaks the decision flow it records.
        """
        stage = 2 if after.stage2.is_decided else 1
        record = after.stage2 if stage == 2 else after.stage1
        action = f"leave_stage{stage}_{record.status.value}"
        db = self._session_factory()
        try:
            entry = AuditLog(
                action=action,
                entity_type="leave_request",
                entity_id=after.id,
                user_id=actor_id,
                user_role=actor_role,
                details={
                    "requester_id": after.requester_id,
                    "category": after.category.value,
                    "remarks": remarks,
                },
                before_state=_state(before),
                after_state=_state(after),
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return entry
        except Exception as e:
            db.rollback()
            logger.error(f"FAILED TO AUDIT LOG: {e}", exc_info=True)
            return None
        finally:
            db.close()
