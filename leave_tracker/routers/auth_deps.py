"""
RBAC Dependencies.
Resolve the current actor from a bearer token and gate endpoints by role.
"""
import logging
from typing import Callable, List, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from leave_tracker.core.exceptions import AppException, AuthenticationError
from leave_tracker.dependencies import get_directory
from leave_tracker.models.user import UserRole
from leave_tracker.services import auth as auth_service
from leave_tracker.services.routing import Actor, UserDirectory

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def actor_from_token(token: Optional[str], directory: UserDirectory) -> Actor:
    """
    Validate a bearer token and load the actor it names.
    Raises AuthenticationError on any failure.
    """
    if not token:
        raise AuthenticationError("Missing bearer token")

    payload = auth_service.decode_access_token(token)
    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise AuthenticationError()

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise AuthenticationError("TOKEN_EXPIRED")

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise AuthenticationError("Invalid token type")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        logger.warning("Authentication failed: Missing or malformed subject in token")
        raise AuthenticationError("Missing subject in token")

    actor = directory.get(user_id)
    if actor is None:
        logger.warning(f"Authentication failed: User {user_id} not found or inactive")
        raise AuthenticationError("User not found")
    return actor


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    directory: UserDirectory = Depends(get_directory),
) -> Actor:
    return actor_from_token(credentials.credentials if credentials else None, directory)


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the actor has one of the allowed roles.

    Usage:
        @router.get("/team")
        def team(actor: Actor = Depends(require_role([UserRole.HR, UserRole.GM]))):
            ...
    """
    def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise AppException(
                message=f"Access denied. Required roles: {[r.value for r in allowed_roles]}",
                status_code=403,
                error_code="PERMISSION_DENIED",
            )
        return actor
    return role_checker


def require_approver():
    """Shorthand for any role that takes part in approvals."""
    return require_role([UserRole.HR, UserRole.GM, UserRole.AE])
