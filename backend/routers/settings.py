"""
Site and network protection settings.

Site settings are editable by the site's administrators (and super
admins); network settings by super admins, and only when the installation
runs as a network.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from access.control import AccessControl
from access.decisions import DEFAULT_ACCESS_LEVELS, is_known_access_level
from access.dependencies import get_access_control, get_hooks
from access.exceptions import ConfigurationUnavailable, TenantContextError
from auth.dependencies import require_site_admin, require_super_admin
from config import settings
from models import User
from schemas import (
    NetworkSettingsResponse,
    NetworkSettingsUpdate,
    SiteSettingsResponse,
    SiteSettingsUpdate,
)
from utils.audit import audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["settings"])


def _require_multisite() -> None:
    if not settings.MULTISITE:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Network settings are only available in multisite mode",
        )


async def _site_settings_response(site_id: int, access: AccessControl) -> SiteSettingsResponse:
    try:
        values = await access.store.get_site_settings(site_id)
    except TenantContextError:
        raise HTTPException(status_code=404, detail=f"Site {site_id} not found")
    except ConfigurationUnavailable as exc:
        logger.error(f"Site {site_id} settings unreadable: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Stored setting '{exc.key}' is unreadable",
        )

    return SiteSettingsResponse(
        site_id=site_id,
        protection_details=await access.engine.protection_details(site_id),
        **values,
    )


async def _network_settings_response(access: AccessControl) -> NetworkSettingsResponse:
    try:
        values = await access.store.get_network_settings()
    except ConfigurationUnavailable as exc:
        logger.error(f"Network settings unreadable: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Stored setting '{exc.key}' is unreadable",
        )

    return NetworkSettingsResponse(default_access_levels=DEFAULT_ACCESS_LEVELS, **values)


# ── Site ───────────────────────────────────────────────────────────────


@router.get("/sites/{site_id}/settings", response_model=SiteSettingsResponse)
async def get_site_settings(
    site_id: int,
    user: User = Depends(require_site_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Protection settings of one site."""
    return await _site_settings_response(site_id, access)


@router.put("/sites/{site_id}/settings", response_model=SiteSettingsResponse)
async def update_site_settings(
    site_id: int,
    body: SiteSettingsUpdate,
    user: User = Depends(require_site_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Partially update a site's protection settings."""
    values = body.model_dump(exclude_unset=True)
    if values:
        try:
            await access.store.save_site_settings(site_id, values)
        except TenantContextError:
            raise HTTPException(status_code=404, detail=f"Site {site_id} not found")
        audit.log_settings_change("Site", str(site_id), list(values))
        logger.info(f"Site {site_id} settings updated by {user.username}: {sorted(values)}")

    return await _site_settings_response(site_id, access)


# ── Network ────────────────────────────────────────────────────────────


@router.get(
    "/network/settings",
    response_model=NetworkSettingsResponse,
    dependencies=[Depends(_require_multisite)],
)
async def get_network_settings(
    user: User = Depends(require_super_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Network-wide protection settings."""
    return await _network_settings_response(access)


@router.put(
    "/network/settings",
    response_model=NetworkSettingsResponse,
    dependencies=[Depends(_require_multisite)],
)
async def update_network_settings(
    request: Request,
    body: NetworkSettingsUpdate,
    user: User = Depends(require_super_admin),
    access: AccessControl = Depends(get_access_control),
):
    """Partially update the network settings."""
    values = body.model_dump(exclude_unset=True)

    level = values.get("network_default_access")
    if level and not is_known_access_level(level, get_hooks(request)):
        logger.warning(f"Unknown default access level '{level}', storing none")
        values["network_default_access"] = ""

    if values:
        await access.store.save_network_settings(values)
        audit.log_settings_change("Network", "network", list(values))
        logger.info(f"Network settings updated by {user.username}: {sorted(values)}")

    return await _network_settings_response(access)
