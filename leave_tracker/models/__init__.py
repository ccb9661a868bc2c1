# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import user, leave_request, audit_log

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .leave_request import (
    LeaveRequest,
    LeaveStatus,
    StageStatus,
    Decision,
    RequestKind,
    LeaveCategory,
)
from .audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "LeaveRequest",
    "LeaveStatus",
    "StageStatus",
    "Decision",
    "RequestKind",
    "LeaveCategory",
    "AuditLog",
]
