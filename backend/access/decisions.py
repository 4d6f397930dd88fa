"""
Access decision engine.

Answers "is this site / the network protected?" and "may this user see it?"
from the configuration store, identity collaborator and registered hooks.
Nothing is cached: every call reads fresh settings.

The network-defined restrictions are enforced before any site restriction
is evaluated, so a stricter network rule always beats a more permissive
site rule. :meth:`AccessDecisionEngine.network_blocks` and
:meth:`AccessDecisionEngine.site_blocks` encode that order once for both
the request guard and the site-list filter.
"""

import logging
from typing import Any, List, Optional

from . import hooks as hook_names
from .exceptions import ConfigurationUnavailable
from .hooks import HookRegistry
from .identity import IdentityProvider
from .store import NETWORK_SETTINGS, SITE_SETTINGS, TEXT, ConfigStore, coerce_setting

logger = logging.getLogger(__name__)

# Default network access levels
ACCESS_NONE = ""
ACCESS_SITE_USERS = "site_users"
ACCESS_NETWORK_USERS = "network_users"

DEFAULT_ACCESS_LEVELS = {
    ACCESS_SITE_USERS: "Allow site users",
    ACCESS_NETWORK_USERS: "Allow network users",
}


def is_known_access_level(level: str, hooks: HookRegistry) -> bool:
    """Built-in levels, or a custom level some extension decides via its filter."""
    if level in (ACCESS_NONE, *DEFAULT_ACCESS_LEVELS):
        return True
    return hooks.has_filters(f"{hook_names.NETWORK_IS_USER_ALLOWED_BY_DEFAULT}:{level}")


class AccessDecisionEngine:
    """
    Pure access predicates over site and network settings.

    Args:
        store: Configuration store to read settings from.
        identity: Identity collaborator for admin and membership checks.
        hooks: Registry of filters that may adjust decisions.
        multisite: Whether network-level settings apply at all.
        main_site_id: The network's main (home) site.
    """

    def __init__(
        self,
        store: ConfigStore,
        identity: IdentityProvider,
        hooks: HookRegistry,
        multisite: bool = False,
        main_site_id: int = 1,
    ):
        self.store = store
        self.identity = identity
        self.hooks = hooks
        self.multisite = multisite
        self.main_site_id = main_site_id

    # ── Reading settings (fail-open) ──────────────────────────────────

    async def _site_setting(self, site_id: int, key: str) -> Any:
        try:
            return await self.store.get_site_setting(site_id, key)
        except ConfigurationUnavailable as exc:
            logger.warning(f"Site {site_id}: {exc}; using empty value")
            return coerce_setting(key, SITE_SETTINGS.get(key, TEXT), None)

    async def _network_setting(self, key: str) -> Any:
        try:
            return await self.store.get_network_setting(key)
        except ConfigurationUnavailable as exc:
            logger.warning(f"Network: {exc}; using empty value")
            return coerce_setting(key, NETWORK_SETTINGS.get(key, TEXT), None)

    # ── Site ──────────────────────────────────────────────────────────

    async def is_site_protected(self, site_id: int) -> bool:
        """
        Return whether the site's protection is active.

        Raises:
            TenantContextError: if the site does not exist.
        """
        protected = await self._site_setting(site_id, "site_protect")
        return bool(self.hooks.apply_filters(hook_names.IS_SITE_PROTECTED, protected, site_id))

    async def site_allowed_users(self, site_id: int) -> List[int]:
        return [user_id for user_id in await self._site_setting(site_id, "allowed_users") if user_id]

    async def is_site_administrator(self, user_id: int, site_id: int) -> bool:
        if not user_id:
            return False
        if await self.identity.is_super_admin(user_id):
            return True
        return await self.identity.is_site_admin(user_id, site_id)

    async def is_user_allowed_for_site(self, user_id: int, site_id: int) -> bool:
        """
        Return whether the user may view the site.

        Allow-list membership runs through the ``is_user_allowed`` filter
        first; the administrator override is applied afterwards so a filter
        can grant access but never take it away from an administrator.
        """
        allowed = bool(user_id) and user_id in await self.site_allowed_users(site_id)
        allowed = bool(self.hooks.apply_filters(hook_names.IS_USER_ALLOWED, allowed, user_id, site_id))
        return allowed or await self.is_site_administrator(user_id, site_id)

    async def site_login_message(self, site_id: int) -> str:
        return await self._site_setting(site_id, "login_message")

    async def protection_details(self, site_id: int) -> str:
        """Short human-readable summary of the site's protection."""
        count = len(await self.site_allowed_users(site_id))
        details = f"{count} allowed user" if count == 1 else f"{count} allowed users"
        return self.hooks.apply_filters(hook_names.PROTECTION_DETAILS, details, site_id)

    # ── Network ───────────────────────────────────────────────────────

    async def _network_flag(self, key: str, hook: str) -> bool:
        if not self.multisite:
            return False
        return bool(self.hooks.apply_filters(hook, await self._network_setting(key)))

    async def is_network_protected(self) -> bool:
        return await self._network_flag("network_protect", hook_names.IS_NETWORK_PROTECTED)

    async def is_network_only(self) -> bool:
        """When set, per-site protection is inert everywhere."""
        return await self._network_flag("network_only", hook_names.IS_NETWORK_ONLY)

    async def is_network_redirect_enabled(self) -> bool:
        return await self._network_flag("network_redirect", hook_names.NETWORK_REDIRECT)

    async def network_allows_main_site(self) -> bool:
        return await self._network_flag("network_allow_main_site", hook_names.NETWORK_ALLOW_MAIN_SITE)

    async def hide_single_site_nav(self) -> bool:
        if not self.multisite:
            return False
        return await self._network_setting("network_hide_my_sites")

    async def network_default_access(self) -> str:
        level = await self._network_setting("network_default_access")
        return self.hooks.apply_filters(hook_names.NETWORK_DEFAULT_ACCESS, level) or ACCESS_NONE

    async def network_allowed_users(self) -> List[int]:
        users = await self._network_setting("network_allowed_users")
        users = self.hooks.apply_filters(hook_names.NETWORK_ALLOWED_USERS, users)
        return [user_id for user_id in users if user_id]

    async def network_login_message(self) -> str:
        return await self._network_setting("network_login_message")

    async def is_user_allowed_by_default(self, user_id: int, site_id: Optional[int] = None) -> bool:
        """
        Evaluate the network's default access level for the user.

        ``site_users`` admits members of ``site_id``, ``network_users``
        admits any existing user. Other levels are decided by the
        ``network_is_user_allowed_by_default:<level>`` filter.
        """
        if not user_id:
            return False

        level = await self.network_default_access()
        if level in (ACCESS_NONE, "0"):
            return False
        if level == ACCESS_SITE_USERS:
            return site_id is not None and await self.identity.is_site_member(user_id, site_id)
        if level == ACCESS_NETWORK_USERS:
            return await self.identity.user_exists(user_id)

        custom_hook = f"{hook_names.NETWORK_IS_USER_ALLOWED_BY_DEFAULT}:{level}"
        return bool(self.hooks.apply_filters(custom_hook, False, user_id, site_id))

    async def is_user_allowed_for_network(self, user_id: int, site_id: Optional[int] = None) -> bool:
        """Super admins always pass; otherwise default access, then the network allow-list."""
        if user_id and await self.identity.is_super_admin(user_id):
            return True

        allowed = await self.is_user_allowed_by_default(user_id, site_id)
        if not allowed:
            allowed = bool(user_id) and user_id in await self.network_allowed_users()
            allowed = bool(
                self.hooks.apply_filters(hook_names.NETWORK_IS_USER_ALLOWED, allowed, user_id, site_id)
            )
        return allowed

    # ── Precedence ────────────────────────────────────────────────────

    async def is_main_site_exempt(self, site_id: int) -> bool:
        return site_id == self.main_site_id and await self.network_allows_main_site()

    async def network_blocks(self, user_id: int, site_id: int) -> bool:
        """Whether network protection keeps the user out of ``site_id``. Anonymous users are always kept out."""
        if not await self.is_network_protected():
            return False
        if await self.is_main_site_exempt(site_id):
            return False
        return not user_id or not await self.is_user_allowed_for_network(user_id, site_id)

    async def site_blocks(self, user_id: int, site_id: int) -> bool:
        """Whether site protection keeps the user out. Never consulted in network-only mode."""
        if await self.is_network_only():
            return False
        if not await self.is_site_protected(site_id):
            return False
        return not user_id or not await self.is_user_allowed_for_site(user_id, site_id)

    async def login_messages(self, site_id: int) -> List[str]:
        """Messages for the login screen: network message first, then the site's."""
        messages = []
        if await self.is_network_protected():
            message = await self.network_login_message()
            if message:
                messages.append(message)
        if not await self.is_network_only() and await self.is_site_protected(site_id):
            message = await self.site_login_message(site_id)
            if message:
                messages.append(message)
        return self.hooks.apply_filters(hook_names.LOGIN_MESSAGES, messages, site_id)
