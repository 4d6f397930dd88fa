"""
Configuration store: typed per-site and per-network settings.

The access core only ever reads through :class:`ConfigStore`; the write half
exists for the settings API. Values are stored as JSON and coerced to the
kind declared for their key on the way out, so a corrupted row surfaces as
:class:`ConfigurationUnavailable` instead of a surprising truthy value.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import NetworkOption, Site, SiteOption

from .exceptions import ConfigurationUnavailable, TenantContextError

logger = logging.getLogger(__name__)

BOOL = "bool"
ID_LIST = "id_list"
TEXT = "text"

SITE_SETTINGS: Dict[str, str] = {
    "site_protect": BOOL,
    "allowed_users": ID_LIST,
    "login_message": TEXT,
}

NETWORK_SETTINGS: Dict[str, str] = {
    "network_protect": BOOL,
    "network_only": BOOL,
    "network_redirect": BOOL,
    "network_hide_my_sites": BOOL,
    "network_allow_main_site": BOOL,
    "network_allowed_users": ID_LIST,
    "network_login_message": TEXT,
    "network_default_access": TEXT,
}


def coerce_setting(key: str, kind: str, raw: Any) -> Any:
    """
    Convert a stored value to the kind declared for ``key``.

    Missing values become ``False``, ``[]`` or ``""``.

    Raises:
        ConfigurationUnavailable: if the stored value has an unexpected type.
    """
    if kind == BOOL:
        if raw is None:
            return False
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, int):
            return raw != 0
        if isinstance(raw, str) and raw.strip() in ("", "0", "1"):
            return raw.strip() == "1"
        raise ConfigurationUnavailable(key, "expected a boolean", raw)

    if kind == ID_LIST:
        if raw is None:
            return []
        if not isinstance(raw, (list, tuple, set)):
            raise ConfigurationUnavailable(key, "expected a list of ids", raw)
        ids: List[int] = []
        for item in raw:
            if isinstance(item, bool):
                raise ConfigurationUnavailable(key, "expected a list of ids", raw)
            try:
                ids.append(int(item))
            except (TypeError, ValueError):
                raise ConfigurationUnavailable(key, "expected a list of ids", raw)
        return ids

    if kind == TEXT:
        if raw is None:
            return ""
        if isinstance(raw, (str, int)) and not isinstance(raw, bool):
            return str(raw)
        raise ConfigurationUnavailable(key, "expected a string", raw)

    raise ConfigurationUnavailable(key, f"unknown kind '{kind}'", raw)


def setting_kind(table: Mapping[str, str], key: str) -> str:
    try:
        return table[key]
    except KeyError:
        raise ConfigurationUnavailable(key, "unknown setting")


class ConfigStore(ABC):
    """Read/write interface to site and network settings."""

    @abstractmethod
    async def get_site_setting(self, site_id: int, key: str) -> Any:
        """Return the typed value of a site setting; raises TenantContextError for unknown sites."""

    @abstractmethod
    async def get_network_setting(self, key: str) -> Any:
        """Return the typed value of a network setting."""

    @abstractmethod
    async def save_site_settings(self, site_id: int, values: Mapping[str, Any]) -> None:
        """Persist several site settings at once."""

    @abstractmethod
    async def save_network_settings(self, values: Mapping[str, Any]) -> None:
        """Persist several network settings at once."""

    async def get_site_settings(self, site_id: int) -> Dict[str, Any]:
        return {key: await self.get_site_setting(site_id, key) for key in SITE_SETTINGS}

    async def get_network_settings(self) -> Dict[str, Any]:
        return {key: await self.get_network_setting(key) for key in NETWORK_SETTINGS}


def validate_values(table: Mapping[str, str], values: Mapping[str, Any]) -> Dict[str, Any]:
    """Coerce a batch of values before writing; unknown keys are rejected."""
    clean = {}
    for key, value in values.items():
        if key not in table:
            raise ValueError(f"Unknown setting '{key}'")
        clean[key] = coerce_setting(key, table[key], value)
    return clean


class DatabaseConfigStore(ConfigStore):
    """Settings stored in the ``site_options`` and ``network_options`` tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _require_site(self, site_id: int) -> None:
        site = await self.session.get(Site, site_id)
        if site is None:
            raise TenantContextError(site_id)

    async def get_site_setting(self, site_id: int, key: str) -> Any:
        kind = setting_kind(SITE_SETTINGS, key)
        try:
            await self._require_site(site_id)
            result = await self.session.execute(
                select(SiteOption.value).where(
                    SiteOption.site_id == site_id,
                    SiteOption.key == key,
                )
            )
            raw = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise ConfigurationUnavailable(key, str(exc)) from exc
        return coerce_setting(key, kind, raw)

    async def get_network_setting(self, key: str) -> Any:
        kind = setting_kind(NETWORK_SETTINGS, key)
        try:
            result = await self.session.execute(
                select(NetworkOption.value).where(NetworkOption.key == key)
            )
            raw = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise ConfigurationUnavailable(key, str(exc)) from exc
        return coerce_setting(key, kind, raw)

    async def save_site_settings(self, site_id: int, values: Mapping[str, Any]) -> None:
        clean = validate_values(SITE_SETTINGS, values)
        await self._require_site(site_id)

        result = await self.session.execute(
            select(SiteOption).where(
                SiteOption.site_id == site_id,
                SiteOption.key.in_(list(clean)),
            )
        )
        existing = {row.key: row for row in result.scalars().all()}
        for key, value in clean.items():
            if key in existing:
                existing[key].value = value
            else:
                self.session.add(SiteOption(site_id=site_id, key=key, value=value))
        await self.session.commit()
        logger.debug(f"Saved site {site_id} settings: {sorted(clean)}")

    async def save_network_settings(self, values: Mapping[str, Any]) -> None:
        clean = validate_values(NETWORK_SETTINGS, values)

        result = await self.session.execute(
            select(NetworkOption).where(NetworkOption.key.in_(list(clean)))
        )
        existing = {row.key: row for row in result.scalars().all()}
        for key, value in clean.items():
            if key in existing:
                existing[key].value = value
            else:
                self.session.add(NetworkOption(key=key, value=value))
        await self.session.commit()
        logger.debug(f"Saved network settings: {sorted(clean)}")
