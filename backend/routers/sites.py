"""
"My Sites" listing and network user lookup.

Only sites the user could actually open are listed; ``hide_my_sites`` is a
presentation hint for clients that render a "My Sites" menu.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query

from access.control import AccessControl
from access.dependencies import get_access_control
from auth.dependencies import get_current_user, require_any_site_admin
from models import User
from schemas import MySitesResponse, NetworkUser, SiteSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sites"])


@router.get("/my-sites", response_model=MySitesResponse)
async def my_sites(
    include_hidden: bool = Query(False, description="Include archived sites"),
    user: User = Depends(get_current_user),
    access: AccessControl = Depends(get_access_control),
):
    """Sites of the current user that are not closed to them."""
    sites = await access.site_list.visible_sites_of_user(user.id, include_hidden=include_hidden)
    return MySitesResponse(
        sites=[SiteSummary.model_validate(site) for site in sites],
        hide_my_sites=await access.site_list.hide_my_sites(user.id),
    )


@router.get("/network/users", response_model=List[NetworkUser])
async def network_users(
    user: User = Depends(require_any_site_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Members of every site the current user belongs to, for allow-list pickers."""
    users = await access.site_list.network_users(user.id)
    return [
        NetworkUser(user_id=record.user_id, username=record.username, email=record.email)
        for _, record in sorted(users.items())
    ]
