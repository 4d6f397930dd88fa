"""In-process store and identity, for tests and embedding without a database."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .exceptions import TenantContextError
from .identity import ADMINISTRATOR_ROLE, IdentityProvider, SiteRecord, UserRecord
from .store import (
    NETWORK_SETTINGS,
    SITE_SETTINGS,
    ConfigStore,
    setting_kind,
    coerce_setting,
    validate_values,
)


class InMemoryConfigStore(ConfigStore):
    """
    Settings kept in plain dicts.

    Raw values are stored as given so that corrupted data can be simulated;
    they are coerced on read exactly like the database store does.
    """

    def __init__(
        self,
        sites: Optional[Mapping[int, Mapping[str, Any]]] = None,
        network: Optional[Mapping[str, Any]] = None,
    ):
        self.sites: Dict[int, Dict[str, Any]] = {
            site_id: dict(values) for site_id, values in (sites or {}).items()
        }
        self.network: Dict[str, Any] = dict(network or {})

    def add_site(self, site_id: int, **values: Any) -> None:
        self.sites.setdefault(site_id, {}).update(values)

    async def get_site_setting(self, site_id: int, key: str) -> Any:
        kind = setting_kind(SITE_SETTINGS, key)
        if site_id not in self.sites:
            raise TenantContextError(site_id)
        return coerce_setting(key, kind, self.sites[site_id].get(key))

    async def get_network_setting(self, key: str) -> Any:
        kind = setting_kind(NETWORK_SETTINGS, key)
        return coerce_setting(key, kind, self.network.get(key))

    async def save_site_settings(self, site_id: int, values: Mapping[str, Any]) -> None:
        clean = validate_values(SITE_SETTINGS, values)
        if site_id not in self.sites:
            raise TenantContextError(site_id)
        self.sites[site_id].update(clean)

    async def save_network_settings(self, values: Mapping[str, Any]) -> None:
        self.network.update(validate_values(NETWORK_SETTINGS, values))


class InMemoryIdentity(IdentityProvider):
    """
    Users, sites and memberships kept in plain collections.

    ``memberships`` maps ``(user_id, site_id)`` to a role name.
    """

    def __init__(
        self,
        current_user_id: int = 0,
        sites: Iterable[SiteRecord] = (),
        users: Iterable[UserRecord] = (),
        memberships: Optional[Mapping[Tuple[int, int], str]] = None,
        super_admins: Iterable[int] = (),
        primary_sites: Optional[Mapping[int, int]] = None,
    ):
        self._current_user_id = current_user_id
        self.sites: Dict[int, SiteRecord] = {site.site_id: site for site in sites}
        self.users: Dict[int, UserRecord] = {user.user_id: user for user in users}
        self.memberships: Dict[Tuple[int, int], str] = dict(memberships or {})
        self.super_admins: Set[int] = set(super_admins)
        self.primary_sites: Dict[int, int] = dict(primary_sites or {})

    def login(self, user_id: int) -> None:
        self._current_user_id = user_id

    async def current_user_id(self) -> int:
        return self._current_user_id

    async def is_site_admin(self, user_id: int, site_id: int) -> bool:
        return self.memberships.get((user_id, site_id)) == ADMINISTRATOR_ROLE

    async def is_super_admin(self, user_id: int) -> bool:
        return user_id in self.super_admins

    async def user_exists(self, user_id: int) -> bool:
        return user_id in self.users

    async def is_site_member(self, user_id: int, site_id: int) -> bool:
        return (user_id, site_id) in self.memberships

    async def get_site(self, site_id: int) -> Optional[SiteRecord]:
        return self.sites.get(site_id)

    async def sites_of_user(self, user_id: int, include_hidden: bool = False) -> List[SiteRecord]:
        site_ids = sorted(site_id for (member, site_id) in self.memberships if member == user_id)
        records = []
        for site_id in site_ids:
            site = self.sites.get(site_id, SiteRecord(site_id=site_id, url=""))
            if site.is_archived and not include_hidden:
                continue
            records.append(site)
        return records

    async def primary_site(self, user_id: int) -> Optional[SiteRecord]:
        site_id = self.primary_sites.get(user_id)
        if site_id is not None and site_id in self.sites and not self.sites[site_id].is_archived:
            return self.sites[site_id]
        sites = await self.sites_of_user(user_id)
        return sites[0] if sites else None

    async def site_members(self, site_id: int) -> List[UserRecord]:
        if site_id not in self.sites:
            raise TenantContextError(site_id)
        return [
            self.users.get(user_id, UserRecord(user_id=user_id, username=str(user_id)))
            for (user_id, member_site) in sorted(self.memberships)
            if member_site == site_id
        ]
