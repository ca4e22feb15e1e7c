import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from medcenter.api.deps import get_current_user, refresh_header, requester_for
from medcenter.api.errors import raise_for_result
from medcenter.api.schemas.auth import LoginRequest, RefreshRequest, SignupRequest, TokenPair
from medcenter.core.db import get_session
from medcenter.core.security import decode_refresh_token
from medcenter.models.user import User, UserCreate, UserPublic
from medcenter.services.auth_service import (
    IssuedTokens,
    login_user,
    refresh_tokens,
    revoke_refresh_token,
    signup_user,
    user_to_public,
)
from medcenter.services.booking_service import claim_guest_reservation
from medcenter.services.results import ErrorType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


async def _signed_in(
    session: AsyncSession, issued: IssuedTokens, guest_identifier: str | None
) -> TokenPair:
    """Token response; a guest hold in progress moves to the account when still live."""
    appointment_id = None
    if guest_identifier:
        linked = await claim_guest_reservation(session, guest_identifier, requester_for(issued.user))
        if linked.success:
            appointment_id = linked.data.appointment_id
        elif linked.error_type == ErrorType.UNEXPECTED:
            # the session was rolled back, so the sign-in itself did not persist
            raise_for_result(linked)
        else:
            logger.info("Guest hold not linked for user %s: %s", issued.user.id, linked.message)
    return TokenPair(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_in=issued.expires_in,
        appointment_id=appointment_id,
    )


@router.post("/login", response_model=TokenPair)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
    x_guest_identifier: str | None = Header(default=None, alias="X-Guest-Identifier"),
) -> TokenPair:
    issued = await login_user(session, body.email, body.password)
    if not issued:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return await _signed_in(session, issued, body.guest_identifier or x_guest_identifier)


@router.post("/signup", response_model=TokenPair, status_code=status.HTTP_201_CREATED)
async def signup(
    body: SignupRequest,
    session: AsyncSession = Depends(get_session),
    x_guest_identifier: str | None = Header(default=None, alias="X-Guest-Identifier"),
) -> TokenPair:
    data = UserCreate(
        email=body.email,
        password=body.password,
        full_name=body.full_name or body.name,
        phone=body.phone,
    )
    issued = await signup_user(session, data)
    if not issued:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )
    return await _signed_in(session, issued, body.guest_identifier or x_guest_identifier)


def _presented_refresh_token(header_token: str | None, body: RefreshRequest | None) -> str | None:
    return header_token or (body.refresh_token if body else None)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> TokenPair:
    token = _presented_refresh_token(x_refresh_token, body)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token required (header X-Refresh-Token or body refresh_token)",
        )
    issued = await refresh_tokens(session, token)
    if not issued:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )
    return TokenPair(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_in=issued.expires_in,
    )


@router.post("/logout")
async def logout(
    session: AsyncSession = Depends(get_session),
    x_refresh_token: str | None = Depends(refresh_header),
    body: RefreshRequest | None = None,
) -> dict:
    token = _presented_refresh_token(x_refresh_token, body)
    if token:
        _, jti = decode_refresh_token(token)
        if jti:
            await revoke_refresh_token(session, jti)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserPublic)
async def me(current_user: User = Depends(get_current_user)) -> UserPublic:
    return user_to_public(current_user)
