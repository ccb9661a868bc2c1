"""
User Model.
Identity and role are owned by the authentication collaborator; the leave
workflow only reads `role` and the static `assigned_to` routing reference.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
import enum
from leave_tracker.database import Base


class UserRole(str, enum.Enum):
    """
    Fixed role hierarchy.

    - EMPLOYEE: submits requests, sees only their own
    - HR: first approval level, sees every request
    - GM / AE: second and final approval level, sees what passed HR
    """
    EMPLOYEE = "employee"
    HR = "HR"
    GM = "GM"
    AE = "AE"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)  # display label

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)

    # Routed manager, used for grouping and display only
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def display_label(self) -> str:
        return self.full_name or self.email
