"""
FastAPI wiring for the access-control core.

Usage in routers::

    router = APIRouter(dependencies=[Depends(protect_request)])

Attaching :func:`protect_request` at router level means only requests that
resolved to one of that router's pages are guarded; unknown paths fall
through to the framework's 404 untouched.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import get_optional_user
from config import settings
from database import get_db
from models import Site, User

from .control import AccessControl
from .enforcement import HttpEnforcementSink
from .guard import GuardOutcome, RequestContext
from .hooks import HookRegistry
from .identity import DatabaseIdentity
from .store import DatabaseConfigStore

logger = logging.getLogger(__name__)


def is_feed_request(request: Request) -> bool:
    """RSS/Atom requests: ``/feed``, ``/feed/atom``, ``/comments/feed`` or ``?feed=rss2``."""
    if request.query_params.get("feed"):
        return True
    segments = [segment for segment in request.url.path.split("/") if segment]
    return "feed" in segments


def get_hooks(request: Request) -> HookRegistry:
    """The application-wide hook registry built at startup."""
    hooks = getattr(request.app.state, "hooks", None)
    if hooks is None:
        hooks = HookRegistry()
        request.app.state.hooks = hooks
    return hooks


async def resolve_current_site(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Site:
    """
    Site addressed by the request.

    Single-site installs always use ``MAIN_SITE_ID``. Networks match the
    request host against site domains and fall back to the main site.
    """
    site: Optional[Site] = None
    if settings.MULTISITE:
        host = (request.url.hostname or "").lower()
        port = request.url.port
        candidates = {host, f"{host}:{port}"} if port else {host}
        result = await db.execute(select(Site).where(Site.domain.in_(candidates)))
        site = result.scalars().first()

    if site is None:
        site = await db.get(Site, settings.MAIN_SITE_ID)

    if site is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found")
    return site


async def get_access_control(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> AccessControl:
    """Access components bound to this request's session and user."""
    identity = DatabaseIdentity(
        db,
        current_user=user,
        multisite=settings.MULTISITE,
        main_site_id=settings.MAIN_SITE_ID,
        scheme=settings.SITE_SCHEME,
    )
    return AccessControl.build(
        store=DatabaseConfigStore(db),
        identity=identity,
        hooks=get_hooks(request),
        multisite=settings.MULTISITE,
        main_site_id=settings.MAIN_SITE_ID,
        network_home_url=settings.NETWORK_HOME_URL,
        my_sites_threshold=settings.MY_SITES_THRESHOLD,
    )


def login_url_for(site: Site) -> str:
    return site.url(settings.SITE_SCHEME).rstrip("/") + settings.LOGIN_PATH


async def protect_request(
    request: Request,
    site: Site = Depends(resolve_current_site),
    access: AccessControl = Depends(get_access_control),
) -> GuardOutcome:
    """
    Guard a page view.

    Blocked requests never return from here: the enforcement sink raises
    :class:`RequestTerminated` with the redirect or 404 response.
    """
    ctx = RequestContext(
        site_id=site.id,
        user_id=await access.identity.current_user_id(),
        url=str(request.url),
        is_feed=is_feed_request(request),
    )
    sink = HttpEnforcementSink(
        login_url=login_url_for(site),
        requested_url=ctx.url,
        cookie_name=settings.AUTH_COOKIE_NAME,
    )
    return await access.guard.protect(ctx, sink)
