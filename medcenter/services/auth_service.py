"""Identity provider for the booking core: patients, staff and their tokens.

Every successful sign-in returns IssuedTokens. Roles are read from the users table
on each request, so a role change applies without waiting for tokens to expire.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.core.clock import utc_naive_now
from medcenter.core.config import settings
from medcenter.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password,
    verify_password,
)
from medcenter.models.refresh_token import RefreshToken
from medcenter.models.user import User, UserCreate, UserPublic, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedTokens:
    user: User
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime, seconds


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def create_user(
    session: AsyncSession, data: UserCreate, role: UserRole = UserRole.PATIENT
) -> User:
    user = User(
        email=data.email.lower(),
        full_name=data.full_name,
        phone=data.phone,
        role=role,
        hashed_password=hash_password(data.password),
    )
    session.add(user)
    await session.flush()
    await session.refresh(user)
    logger.info("Created %s account %s", role.value.lower(), user.id)
    return user


def user_to_public(user: User) -> UserPublic:
    return UserPublic.model_validate(user, from_attributes=True)


async def _issue(session: AsyncSession, user: User) -> IssuedTokens:
    """Mint an access/refresh pair and record the refresh token's jti."""
    refresh = create_refresh_token(user.id)
    _, jti = decode_refresh_token(refresh)
    session.add(
        RefreshToken(
            user_id=user.id,
            jti=jti,
            expires_at=utc_naive_now() + timedelta(days=settings.refresh_token_expire_days),
        )
    )
    await session.flush()
    return IssuedTokens(
        user=user,
        access_token=create_access_token(user.id),
        refresh_token=refresh,
        expires_in=settings.access_token_expire_minutes * 60,
    )


async def login_user(session: AsyncSession, email: str, password: str) -> IssuedTokens | None:
    user = await get_user_by_email(session, email)
    if not user or not verify_password(password, user.hashed_password):
        logger.info("Failed login for %s", email.lower())
        return None
    return await _issue(session, user)


async def signup_user(session: AsyncSession, data: UserCreate) -> IssuedTokens | None:
    """None when the email is already registered."""
    if await get_user_by_email(session, data.email):
        return None
    user = await create_user(session, data)
    return await _issue(session, user)


async def revoke_refresh_token(session: AsyncSession, jti: str) -> None:
    result = await session.execute(select(RefreshToken).where(RefreshToken.jti == jti))
    row = result.scalar_one_or_none()
    if row:
        row.revoked = True
        session.add(row)


async def refresh_tokens(session: AsyncSession, refresh_token: str) -> IssuedTokens | None:
    """Rotate a refresh token: the presented one is revoked, a new pair is issued."""
    user_id_str, jti = decode_refresh_token(refresh_token)
    if not user_id_str or not jti:
        return None
    result = await session.execute(
        select(RefreshToken).where(
            RefreshToken.jti == jti,
            RefreshToken.revoked == False,  # noqa: E712
            RefreshToken.expires_at > utc_naive_now(),
        )
    )
    token_row = result.scalar_one_or_none()
    if not token_row:
        return None
    user = await get_user(session, int(user_id_str))
    if not user:
        return None
    token_row.revoked = True
    session.add(token_row)
    return await _issue(session, user)
