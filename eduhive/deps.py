"""Request dependencies: session cookie to User, and the admin gate."""

from typing import Any

from fastapi import Depends, Request

from eduhive.core.exceptions import ForbiddenError, UnauthorizedError
from eduhive.core.logging import bind_user_id, get_logger
from eduhive.core.security import load_session_cookie
from eduhive.models.user import User

SESSION_COOKIE_NAME = "eduhive_session"

log = get_logger(__name__)


def _session_payload(request: Request) -> dict[str, Any]:
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload or not payload.get("user_id"):
        raise UnauthorizedError("Invalid or expired session")
    return payload


async def get_current_user(request: Request) -> User:
    """
    Resolve the signed session cookie to its User. Bumping the user's
    session_version invalidates every cookie issued before it.
    """
    payload = _session_payload(request)
    try:
        user = await User.get(payload["user_id"])
    except ValueError:
        raise UnauthorizedError("Invalid session")
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    bind_user_id(str(user.id))
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Top-up review and catalog management are admin only."""
    if user.role != "admin":
        log.warning("admin_access_denied", role=user.role)
        raise ForbiddenError("Admin only")
    return user
