"""
Service wiring.

One workflow instance is shared by the whole process so that live
subscriptions registered by one request see writes made by another.
"""
import threading
from typing import Optional

from sqlalchemy.orm import sessionmaker

from leave_tracker.database import SessionLocal
from leave_tracker.services.audit import AuditService
from leave_tracker.services.leave_workflow import LeaveWorkflowService
from leave_tracker.services.request_store import SqlAlchemyRequestStore
from leave_tracker.services.routing import UserDirectory

_lock = threading.Lock()
_workflow: Optional[LeaveWorkflowService] = None
_directory: Optional[UserDirectory] = None


def build_workflow(session_factory: sessionmaker, directory: Optional[UserDirectory] = None) -> LeaveWorkflowService:
    return LeaveWorkflowService(
        store=SqlAlchemyRequestStore(session_factory),
        directory=directory or UserDirectory(session_factory),
        audit=AuditService(session_factory),
    )


def get_directory() -> UserDirectory:
    global _directory
    with _lock:
        if _directory is None:
            _directory = UserDirectory(SessionLocal)
        return _directory


def get_workflow() -> LeaveWorkflowService:
    global _workflow
    directory = get_directory()
    with _lock:
        if _workflow is None:
            _workflow = build_workflow(SessionLocal, directory)
        return _workflow
