"""
FastAPI dependencies for authentication and settings authorization.

API clients send ``Authorization: Bearer <token>``; browsers viewing pages
carry the same token in the auth cookie.

Usage in routers::

    from auth.dependencies import require_super_admin, get_optional_user

    @router.put("/network/settings")
    async def update(user: User = Depends(require_super_admin)):
        ...
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from access.identity import DatabaseIdentity
from models import User

from .jwt_service import verify_access_token

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def _identity(db: AsyncSession, user: Optional[User]) -> DatabaseIdentity:
    return DatabaseIdentity(
        db,
        current_user=user,
        multisite=settings.MULTISITE,
        main_site_id=settings.MAIN_SITE_ID,
        scheme=settings.SITE_SCHEME,
    )


def _token_from_request(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials:
        return credentials.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


async def _load_user(token: str, db: AsyncSession) -> Optional[User]:
    try:
        payload = verify_access_token(token)
    except JWTError as exc:
        logger.debug(f"Rejected token: {exc}")
        return None

    user_id = str(payload.get("sub", ""))
    if not user_id.isdigit():
        return None

    result = await db.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        return None
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Return the authenticated :class:`User`.

    Raises:
        HTTPException 401 if the token is missing, invalid, or the user is inactive.
    """
    token = _token_from_request(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await _load_user(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Like :func:`get_current_user` but returns ``None`` instead of raising
    when authentication is missing or invalid. Page views use this: an
    anonymous visitor is a valid input to the access guard.
    """
    token = _token_from_request(request, credentials)
    if not token:
        return None
    return await _load_user(token, db)


async def is_site_administrator(db: AsyncSession, user: User, site_id: int) -> bool:
    """Super admins or ``administrator`` members of the site."""
    identity = _identity(db, user)
    if await identity.is_super_admin(user.id):
        return True
    return await identity.is_site_admin(user.id, site_id)


async def require_super_admin(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Network settings are only editable by super admins."""
    if not await _identity(db, user).is_super_admin(user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Super admin access required.",
        )
    return user


async def require_site_admin(
    site_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Site settings are editable by the site's administrators and super admins."""
    if not await is_site_administrator(db, user, site_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Insufficient permissions. Administrator access to site {site_id} required.",
        )
    return user


async def require_any_site_admin(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Allow-list pickers are only offered to super admins and administrators of some site."""
    identity = _identity(db, user)
    if await identity.is_super_admin(user.id):
        return user
    for site in await identity.sites_of_user(user.id, include_hidden=True):
        if await identity.is_site_admin(user.id, site.site_id):
            return user
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions. Site administrator access required.",
    )
