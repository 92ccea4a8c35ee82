"""HS256 session tokens and project-scoped authentication for FastAPI."""

import uuid
from datetime import UTC, datetime, timedelta

import jwt as pyjwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from buildtrack.core.config import get_settings
from buildtrack.core.exceptions import UnauthorizedError
from buildtrack.domain.roles import Principal

_bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: uuid.UUID, expires_in: timedelta | None = None) -> str:
    """Issue a signed session token whose ``sub`` is the user id."""
    settings = get_settings()
    now = datetime.now(UTC)
    expires_at = now + (expires_in or timedelta(hours=settings.session_expiry_hours))
    payload = {"sub": str(user_id), "iat": now, "exp": expires_at}
    return pyjwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID:
    """Verify a session token and return its user id.

    Raises ``UnauthorizedError`` on any validation failure.
    """
    settings = get_settings()
    try:
        payload = pyjwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise UnauthorizedError("Session expired")
    except pyjwt.InvalidTokenError as exc:
        raise UnauthorizedError(f"Invalid token: {exc}")

    try:
        return uuid.UUID(payload["sub"])
    except (TypeError, ValueError):
        raise UnauthorizedError("Token sub is not a user id")


async def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> uuid.UUID:
    """FastAPI dependency returning the authenticated user id."""
    if credentials is None:
        raise UnauthorizedError("Missing authorization header")

    user_id = decode_access_token(credentials.credentials)
    # Error handlers and logs read this
    request.state.user_id = str(user_id)
    return user_id


async def require_project_auth(
    project_id: uuid.UUID,
    user_id: uuid.UUID = Depends(require_user),
) -> Principal:
    """FastAPI dependency resolving the caller's role in the project from the path.

    A valid token without a role in the project is treated as unauthenticated
    for that project.

    Usage::

        @router.get("/projects/{project_id}/thing")
        async def handler(principal: Principal = Depends(require_project_auth)):
            ...
    """
    from buildtrack.db.base import get_session_factory
    from buildtrack.services.project_service import ProjectService

    role = await ProjectService(get_session_factory()).get_role(project_id, user_id)
    if role is None:
        raise UnauthorizedError("No access to this project", project_id=str(project_id))
    return Principal(user_id=user_id, role=role, project_id=project_id)
