import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from leave_tracker.core.exceptions import StoreUnavailable
from leave_tracker.database import session_scope
from leave_tracker.models.user import User, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: int
    email: str
    label: str
    role: UserRole
    assigned_to: Optional[int] = None

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(
            id=user.id,
            email=user.email,
            label=user.display_label,
            role=UserRole(user.role),
            assigned_to=user.assigned_to,
        )


class UserDirectory:
    """Read-only view over the identity collaborator's users."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, user_id: int) -> Optional[Actor]:
        with session_scope(self._session_factory, "get_user") as session:
            user = session.get(User, user_id)
            if user is None or not user.is_active:
                return None
            return Actor.from_user(user)

    def role_of(self, user_id: int) -> Optional[UserRole]:
        actor = self.get(user_id)
        return actor.role if actor else None

    def label_of(self, user_id: int) -> str:
        actor = self.get(user_id)
        return actor.label if actor else str(user_id)

    def team_of(self, manager_id: int) -> List[Actor]:
        stmt = (
            select(User)
            .where(User.assigned_to == manager_id, User.is_active.is_(True))
            .order_by(User.full_name, User.email)
        )
        with session_scope(self._session_factory, "team_of") as session:
            return [Actor.from_user(u) for u in session.scalars(stmt)]


class RoutingResolver:
    """
    Resolves the manager an employee's requests are routed to.
    Routing is informational: it never decides who may approve.
    """

    def __init__(self, directory: UserDirectory):
        self._directory = directory

    def resolve_approver(self, user_id: int) -> Optional[int]:
        try:
            actor = self._directory.get(user_id)
        except StoreUnavailable as e:
            # Continue without manager assignment
            logger.warning(f"Could not fetch manager assignment for user {user_id}: {e.message}")
            return None
        return actor.assigned_to if actor else None
