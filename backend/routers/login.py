"""
Login screen data.

Not guarded: this is where blocked visitors are sent. The messages shown
come from the network (when network protection is on) and from the
current site (when its protection is on).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from access.control import AccessControl
from access.dependencies import get_access_control, resolve_current_site
from models import Site
from schemas import LoginScreenResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["login"])


@router.get("/login", response_model=LoginScreenResponse)
async def login_screen(
    redirect_to: Optional[str] = Query(None, max_length=2048),
    reauth: bool = Query(False),
    site: Site = Depends(resolve_current_site),
    access: AccessControl = Depends(get_access_control),
):
    """Messages for the login form of the current site."""
    messages = await access.engine.login_messages(site.id)
    return LoginScreenResponse(
        site_id=site.id,
        messages=messages,
        redirect_to=redirect_to,
        reauth=reauth,
    )
