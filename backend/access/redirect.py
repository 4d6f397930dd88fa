"""
Fallback destinations for users blocked by network protection.

Instead of only logging the user out, the network may send them somewhere
they are allowed: their primary site, or the network home for anonymous
visitors. A candidate is only used when it would not block the user again.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from . import hooks as hook_names
from .decisions import AccessDecisionEngine
from .exceptions import InvalidRedirectTarget, TenantContextError
from .hooks import HookRegistry
from .identity import IdentityProvider

logger = logging.getLogger(__name__)


def validate_redirect_target(location: object) -> str:
    """
    Return ``location`` if it is an absolute http(s) URL.

    Raises:
        InvalidRedirectTarget: for anything else.
    """
    if not isinstance(location, str) or not location.strip():
        raise InvalidRedirectTarget(location)
    if any(ch.isspace() or ord(ch) < 32 for ch in location):
        raise InvalidRedirectTarget(location)

    parsed = urlparse(location)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidRedirectTarget(location)
    return location


class NetworkRedirectResolver:
    """
    Pick a safe landing page for a user blocked at network level.

    Args:
        engine: Decision engine used to re-check candidate sites.
        identity: Identity collaborator for primary-site lookup.
        hooks: Registry holding the ``network_redirect_location`` filter.
        main_site_id: The network's main site.
        network_home_url: Public URL of the network home.
    """

    def __init__(
        self,
        engine: AccessDecisionEngine,
        identity: IdentityProvider,
        hooks: HookRegistry,
        main_site_id: int,
        network_home_url: str,
    ):
        self.engine = engine
        self.identity = identity
        self.hooks = hooks
        self.main_site_id = main_site_id
        self.network_home_url = network_home_url

    async def _site_reachable(self, user_id: int, site_id: int) -> bool:
        try:
            if not await self.engine.is_site_protected(site_id):
                return True
            return await self.engine.is_user_allowed_for_site(user_id, site_id)
        except TenantContextError as exc:
            logger.warning(f"Redirect candidate skipped: {exc}")
            return False

    async def resolve(self, user_id: int, blocked_site_id: Optional[int] = None) -> Optional[str]:
        """
        Return the URL to send the blocked user to, or ``None`` to fall
        back to the login redirect.

        The site being blocked is never a candidate.
        """
        location = ""

        if user_id:
            site = await self.identity.primary_site(user_id)
            if (
                site is not None
                and site.site_id != blocked_site_id
                and await self._site_reachable(user_id, site.site_id)
            ):
                location = site.url
        elif blocked_site_id != self.main_site_id:
            try:
                if (
                    not await self.engine.network_blocks(0, self.main_site_id)
                    and not await self.engine.is_site_protected(self.main_site_id)
                ):
                    location = self.network_home_url
            except TenantContextError as exc:
                logger.warning(f"Network home not usable as redirect: {exc}")

        location = self.hooks.apply_filters(hook_names.NETWORK_REDIRECT_LOCATION, location, user_id)
        if not location:
            return None

        try:
            return validate_redirect_target(location)
        except InvalidRedirectTarget as exc:
            logger.warning(f"{exc}; falling back to login redirect")
            return None
