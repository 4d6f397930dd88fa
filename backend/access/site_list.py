"""
Site-list filtering for "My Sites" style listings.

A site is only listed when the user could actually reach it, using the same
network-before-site precedence as the request guard.
"""

import logging
from typing import Dict, Iterable, List

from . import hooks as hook_names
from .decisions import AccessDecisionEngine
from .exceptions import TenantContextError
from .hooks import HookRegistry
from .identity import IdentityProvider, SiteRecord, UserRecord

logger = logging.getLogger(__name__)


class SiteListFilter:
    """
    Args:
        engine: Decision engine.
        identity: Identity collaborator listing the user's sites.
        hooks: Registry holding the ``hide_my_sites`` and ``network_users`` filters.
        threshold: Users with fewer visible sites than this get "My Sites" hidden.
    """

    def __init__(
        self,
        engine: AccessDecisionEngine,
        identity: IdentityProvider,
        hooks: HookRegistry,
        threshold: int = 2,
    ):
        self.engine = engine
        self.identity = identity
        self.hooks = hooks
        self.threshold = threshold

    async def filter_sites(
        self,
        user_id: int,
        sites: Iterable[SiteRecord],
        include_all: bool = False,
    ) -> List[SiteRecord]:
        """
        Drop the sites the user is not allowed to see.

        Args:
            user_id: User whose sites are listed.
            sites: Candidate sites, left unmodified.
            include_all: Return every candidate unfiltered.

        Returns:
            The visible sites, in input order. Sites that cannot be
            evaluated are skipped.
        """
        if include_all:
            return list(sites)

        visible = []
        for site in sites:
            try:
                if await self.engine.network_blocks(user_id, site.site_id):
                    continue
                if await self.engine.site_blocks(user_id, site.site_id):
                    continue
            except TenantContextError as exc:
                logger.warning(f"Skipping site {site.site_id} for user {user_id}: {exc}")
                continue
            visible.append(site)
        return visible

    async def visible_sites_of_user(self, user_id: int, include_hidden: bool = False) -> List[SiteRecord]:
        sites = await self.identity.sites_of_user(user_id, include_hidden=include_hidden)
        return await self.filter_sites(user_id, sites)

    async def hide_my_sites(self, user_id: int) -> bool:
        """
        Presentation hint: hide "My Sites" entry points for this user.

        Never hidden for super admins. This is not an access decision.
        """
        if await self.identity.is_super_admin(user_id):
            return False

        sites = await self.visible_sites_of_user(user_id)
        hide = await self.engine.hide_single_site_nav() and len(sites) < self.threshold
        return bool(self.hooks.apply_filters(hook_names.HIDE_MY_SITES, hide, user_id, sites))

    async def network_users(self, user_id: int) -> Dict[int, UserRecord]:
        """Members of every site ``user_id`` belongs to, keyed by user id."""
        users: Dict[int, UserRecord] = {}
        for site in await self.identity.sites_of_user(user_id, include_hidden=True):
            try:
                members = await self.identity.site_members(site.site_id)
            except TenantContextError as exc:
                logger.warning(f"Skipping members of site {site.site_id}: {exc}")
                continue
            for member in members:
                users[member.user_id] = member
        return self.hooks.apply_filters(hook_names.NETWORK_USERS, users)
