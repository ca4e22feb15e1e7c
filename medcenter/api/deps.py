from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.core.db import get_session
from medcenter.core.security import decode_access_token
from medcenter.models.user import User, UserRole
from medcenter.services.auth_service import get_user
from medcenter.services.booking_service import AuthenticatedRequester, GuestRequester, Requester

bearer = HTTPBearer(auto_error=False)


def refresh_header(x_refresh_token: str | None = Header(default=None, alias="X-Refresh-Token")) -> str | None:
    """Extract X-Refresh-Token header for logout/refresh endpoints."""
    return x_refresh_token


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _user_from_credentials(
    session: AsyncSession, credentials: HTTPAuthorizationCredentials | None
) -> User | None:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        return None
    try:
        uid = int(user_id)
    except ValueError:
        return None
    return await get_user(session, uid)


async def get_current_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing or invalid authorization header")
    user = await _user_from_credentials(session, credentials)
    if not user:
        raise _unauthorized("Invalid or expired token")
    return user


async def get_optional_user(
    session: AsyncSession = Depends(get_session),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> User | None:
    return await _user_from_credentials(session, credentials)


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def requester_for(user: User) -> AuthenticatedRequester:
    return AuthenticatedRequester(
        user_id=user.id, role=user.role, name=user.full_name, email=user.email
    )


async def get_requester(
    user: User | None = Depends(get_optional_user),
    x_guest_identifier: str | None = Header(default=None, alias="X-Guest-Identifier"),
) -> Requester:
    """Signed-in user, or a guest known only by the identifier from their reservation."""
    if user:
        return requester_for(user)
    return GuestRequester(guest_identifier=x_guest_identifier)
