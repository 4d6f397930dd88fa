"""
Identity collaborator: who is asking and what they are on each site.

Every lookup takes an explicit user and/or site id; nothing here depends on
a "current site" switched in and out of a global.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Site, SiteMembership, User

from .exceptions import TenantContextError

logger = logging.getLogger(__name__)

ADMINISTRATOR_ROLE = "administrator"


@dataclass(frozen=True)
class SiteRecord:
    """A site as seen by the access core."""

    site_id: int
    url: str
    name: Optional[str] = None
    is_archived: bool = False


@dataclass(frozen=True)
class UserRecord:
    """A network user as seen by the access core."""

    user_id: int
    username: str
    email: Optional[str] = None


class IdentityProvider(ABC):
    """Read-only view of users, their sites and their privileges."""

    @abstractmethod
    async def current_user_id(self) -> int:
        """Id of the requesting user, ``0`` when anonymous."""

    async def is_authenticated(self) -> bool:
        return await self.current_user_id() > 0

    @abstractmethod
    async def is_site_admin(self, user_id: int, site_id: int) -> bool:
        ...

    @abstractmethod
    async def is_super_admin(self, user_id: int) -> bool:
        ...

    @abstractmethod
    async def user_exists(self, user_id: int) -> bool:
        ...

    @abstractmethod
    async def is_site_member(self, user_id: int, site_id: int) -> bool:
        ...

    @abstractmethod
    async def get_site(self, site_id: int) -> Optional[SiteRecord]:
        ...

    @abstractmethod
    async def sites_of_user(self, user_id: int, include_hidden: bool = False) -> List[SiteRecord]:
        """Sites the user belongs to; archived sites only when ``include_hidden``."""

    @abstractmethod
    async def primary_site(self, user_id: int) -> Optional[SiteRecord]:
        ...

    @abstractmethod
    async def site_members(self, site_id: int) -> List[UserRecord]:
        """Members of a site; raises TenantContextError for unknown sites."""


def _site_record(site: Site, scheme: str) -> SiteRecord:
    return SiteRecord(
        site_id=site.id,
        url=site.url(scheme),
        name=site.name,
        is_archived=bool(site.is_archived),
    )


class DatabaseIdentity(IdentityProvider):
    """
    Identity backed by the ``users``, ``sites`` and ``site_memberships`` tables.

    Args:
        session: Request-scoped database session.
        current_user: Authenticated user of this request, if any.
        multisite: Whether the installation runs as a network.
        main_site_id: Site whose administrators act as super admins on a
            single-site install.
        scheme: URL scheme used to build site URLs.
    """

    def __init__(
        self,
        session: AsyncSession,
        current_user: Optional[User] = None,
        multisite: bool = False,
        main_site_id: int = 1,
        scheme: str = "http",
    ):
        self.session = session
        self.current_user = current_user
        self.multisite = multisite
        self.main_site_id = main_site_id
        self.scheme = scheme

    async def current_user_id(self) -> int:
        if self.current_user is None or not self.current_user.is_active:
            return 0
        return self.current_user.id

    async def _role_on(self, user_id: int, site_id: int) -> Optional[str]:
        result = await self.session.execute(
            select(SiteMembership.role).where(
                SiteMembership.user_id == user_id,
                SiteMembership.site_id == site_id,
            )
        )
        return result.scalar_one_or_none()

    async def is_site_admin(self, user_id: int, site_id: int) -> bool:
        if not user_id:
            return False
        return await self._role_on(user_id, site_id) == ADMINISTRATOR_ROLE

    async def is_super_admin(self, user_id: int) -> bool:
        if not user_id:
            return False
        if not self.multisite:
            return await self.is_site_admin(user_id, self.main_site_id)
        user = await self.session.get(User, user_id)
        return bool(user and user.is_active and user.is_super_admin)

    async def user_exists(self, user_id: int) -> bool:
        if not user_id:
            return False
        user = await self.session.get(User, user_id)
        return user is not None and user.is_active

    async def is_site_member(self, user_id: int, site_id: int) -> bool:
        if not user_id:
            return False
        return await self._role_on(user_id, site_id) is not None

    async def get_site(self, site_id: int) -> Optional[SiteRecord]:
        site = await self.session.get(Site, site_id)
        return _site_record(site, self.scheme) if site else None

    async def sites_of_user(self, user_id: int, include_hidden: bool = False) -> List[SiteRecord]:
        if not user_id:
            return []
        query = (
            select(Site)
            .join(SiteMembership, SiteMembership.site_id == Site.id)
            .where(SiteMembership.user_id == user_id)
            .order_by(Site.id)
        )
        if not include_hidden:
            query = query.where(Site.is_archived.is_(False))
        result = await self.session.execute(query)
        return [_site_record(site, self.scheme) for site in result.scalars().all()]

    async def primary_site(self, user_id: int) -> Optional[SiteRecord]:
        """
        The user's primary site, or the first site they belong to.

        Archived sites never qualify.
        """
        user = await self.session.get(User, user_id) if user_id else None
        if user is None:
            return None

        if user.primary_site_id:
            site = await self.session.get(Site, user.primary_site_id)
            if site is not None and not site.is_archived:
                return _site_record(site, self.scheme)

        sites = await self.sites_of_user(user_id)
        return sites[0] if sites else None

    async def site_members(self, site_id: int) -> List[UserRecord]:
        try:
            site = await self.session.get(Site, site_id)
            if site is None:
                raise TenantContextError(site_id)
            result = await self.session.execute(
                select(User)
                .join(SiteMembership, SiteMembership.user_id == User.id)
                .where(SiteMembership.site_id == site_id)
                .order_by(User.id)
            )
        except SQLAlchemyError as exc:
            raise TenantContextError(site_id, f"Could not load members of site {site_id}: {exc}") from exc
        return [
            UserRecord(user_id=user.id, username=user.username, email=user.email)
            for user in result.scalars().all()
        ]
