"""
Authentication endpoints.

Public endpoints:
    POST /api/auth/login/local        — username/password login, sets the auth cookie

Protected endpoints:
    GET  /api/auth/me                 — current user info
    POST /api/auth/logout             — clears the auth cookie
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import bcrypt as _bcrypt

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models import SiteMembership, User
from auth.jwt_service import create_access_token
from auth.dependencies import get_current_user
from utils.audit import audit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return _bcrypt.hashpw(password.encode("utf-8"), _bcrypt.gensalt()).decode("utf-8")


def _verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return _bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


# ── Schemas ────────────────────────────────────────────────────────────


class LocalLoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user_id: int
    username: str
    email: str
    is_super_admin: bool


class MembershipInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    site_id: int
    role: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    display_name: Optional[str] = None
    is_super_admin: bool
    primary_site_id: Optional[int] = None
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None
    memberships: list[MembershipInfo] = []


# ── Public endpoints ───────────────────────────────────────────────────


@router.post("/login/local", response_model=TokenResponse)
async def local_login(
    request: LocalLoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Authenticate with username/password and start a browser session."""
    result = await db.execute(
        select(User).where(
            User.username == request.username,
            User.local_password_hash.isnot(None),
        )
    )
    user = result.scalar_one_or_none()

    if not user or not _verify_password(request.password, user.local_password_hash):
        audit.log_login(request.username, 0, status="failure")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    if not user.is_active:
        audit.log_login(user.username, user.id, status="denied")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    jwt_token = create_access_token(user_id=user.id)
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        jwt_token,
        max_age=settings.JWT_EXPIRATION_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.SITE_SCHEME == "https",
    )

    audit.log_login(user.username, user.id, status="success")

    return TokenResponse(
        access_token=jwt_token,
        expires_in=settings.JWT_EXPIRATION_MINUTES * 60,
        user_id=user.id,
        username=user.username,
        email=user.email,
        is_super_admin=user.is_super_admin,
    )


# ── Protected endpoints ────────────────────────────────────────────────


@router.get("/me", response_model=UserResponse)
async def get_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's profile and site memberships."""
    result = await db.execute(
        select(SiteMembership)
        .where(SiteMembership.user_id == user.id)
        .order_by(SiteMembership.site_id)
    )
    profile = UserResponse.model_validate(user)
    profile.memberships = [MembershipInfo.model_validate(m) for m in result.scalars().all()]
    return profile


@router.post("/logout")
async def logout(response: Response, user: User = Depends(get_current_user)):
    """
    Logout endpoint — clears the auth cookie and records the event.

    Note: JWTs are stateless; API clients holding a bearer token should
    discard it themselves.
    """
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    audit.log_logout(user.id)
    return {"status": "ok", "message": "Logged out"}
