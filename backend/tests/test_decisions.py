"""
Tests for the access decision engine.

Covers:
- Site protection and allow-lists
- Administrator override (hooks may grant, never revoke)
- Network protection, default access levels and the network allow-list
- Network-before-site precedence and main-site exemption
- Fail-open on unreadable configuration
- Login messages and protection details
"""

import pytest

from access import hooks as hook_names
from access.decisions import is_known_access_level
from access.hooks import HookRegistry
from access.identity import ADMINISTRATOR_ROLE


# ──────────────────────────────────────────────────────────────────────────────
# SITE DECISIONS
# ──────────────────────────────────────────────────────────────────────────────


class TestSiteDecisions:

    @pytest.mark.asyncio
    async def test_site_protection_flag(self, build_access):
        access = build_access(sites={1: {"site_protect": True}, 2: {}})
        assert await access.engine.is_site_protected(1) is True
        assert await access.engine.is_site_protected(2) is False

    @pytest.mark.asyncio
    async def test_site_protection_filter_overrides_stored_value(self, build_access):
        hooks = HookRegistry()
        hooks.add_filter(hook_names.IS_SITE_PROTECTED, lambda protected, site_id: site_id == 2)
        access = build_access(sites={1: {"site_protect": True}, 2: {}}, hooks=hooks)

        assert await access.engine.is_site_protected(1) is False
        assert await access.engine.is_site_protected(2) is True

    @pytest.mark.asyncio
    async def test_allow_list_membership(self, build_access):
        access = build_access(sites={1: {"site_protect": True, "allowed_users": [42]}})
        assert await access.engine.is_user_allowed_for_site(42, 1) is True
        assert await access.engine.is_user_allowed_for_site(7, 1) is False

    @pytest.mark.asyncio
    async def test_anonymous_never_allowed_even_when_listed(self, build_access):
        access = build_access(sites={1: {"site_protect": True, "allowed_users": [0]}})
        assert await access.engine.is_user_allowed_for_site(0, 1) is False

    @pytest.mark.asyncio
    async def test_site_admin_override(self, build_access):
        access = build_access(
            sites={1: {"site_protect": True, "allowed_users": []}},
            memberships={(7, 1): ADMINISTRATOR_ROLE},
        )
        assert await access.engine.is_user_allowed_for_site(7, 1) is True

    @pytest.mark.asyncio
    async def test_super_admin_override(self, build_access):
        access = build_access(sites={1: {"site_protect": True}}, super_admins=[1])
        assert await access.engine.is_user_allowed_for_site(1, 1) is True
        assert await access.engine.is_user_allowed_for_network(1) is True

    @pytest.mark.asyncio
    async def test_hook_can_grant_access(self, build_access):
        hooks = HookRegistry()
        hooks.add_filter(hook_names.IS_USER_ALLOWED, lambda allowed, user_id, site_id: allowed or user_id == 7)
        access = build_access(sites={1: {"site_protect": True}}, hooks=hooks)

        assert await access.engine.is_user_allowed_for_site(7, 1) is True

    @pytest.mark.asyncio
    async def test_hook_cannot_revoke_admin_override(self, build_access):
        hooks = HookRegistry()
        hooks.add_filter(hook_names.IS_USER_ALLOWED, lambda allowed, user_id, site_id: False)
        access = build_access(
            sites={1: {"site_protect": True, "allowed_users": [42]}},
            memberships={(5, 1): ADMINISTRATOR_ROLE},
            hooks=hooks,
        )

        assert await access.engine.is_user_allowed_for_site(42, 1) is False
        assert await access.engine.is_user_allowed_for_site(5, 1) is True

    @pytest.mark.asyncio
    async def test_allowed_check_is_idempotent(self, build_access):
        access = build_access(sites={1: {"site_protect": True, "allowed_users": [42]}})
        first = await access.engine.is_user_allowed_for_site(42, 1)
        second = await access.engine.is_user_allowed_for_site(42, 1)
        assert first is second is True
        assert await access.store.get_site_setting(1, "allowed_users") == [42]

    @pytest.mark.asyncio
    async def test_protection_details(self, build_access):
        access = build_access(sites={1: {"allowed_users": [2, 5, 7]}, 2: {"allowed_users": [2]}})
        assert await access.engine.protection_details(1) == "3 allowed users"
        assert await access.engine.protection_details(2) == "1 allowed user"


# ──────────────────────────────────────────────────────────────────────────────
# NETWORK DECISIONS
# ──────────────────────────────────────────────────────────────────────────────


class TestNetworkDecisions:

    @pytest.mark.asyncio
    async def test_network_flags_ignored_without_multisite(self, build_access):
        access = build_access(
            network={"network_protect": True, "network_only": True, "network_redirect": True},
            multisite=False,
        )
        assert await access.engine.is_network_protected() is False
        assert await access.engine.is_network_only() is False
        assert await access.engine.is_network_redirect_enabled() is False

    @pytest.mark.asyncio
    async def test_network_flags_in_multisite(self, build_access):
        access = build_access(network={"network_protect": True, "network_only": True})
        assert await access.engine.is_network_protected() is True
        assert await access.engine.is_network_only() is True
        assert await access.engine.is_network_redirect_enabled() is False

    @pytest.mark.asyncio
    async def test_network_allow_list(self, build_access):
        access = build_access(network={"network_protect": True, "network_allowed_users": [5]})
        assert await access.engine.is_user_allowed_for_network(5) is True
        assert await access.engine.is_user_allowed_for_network(7) is False

    @pytest.mark.asyncio
    async def test_network_filter_can_grant(self, build_access):
        hooks = HookRegistry()
        hooks.add_filter(
            hook_names.NETWORK_IS_USER_ALLOWED,
            lambda allowed, user_id, site_id: allowed or user_id == 7,
        )
        access = build_access(network={"network_protect": True}, hooks=hooks)
        assert await access.engine.is_user_allowed_for_network(7) is True

    @pytest.mark.asyncio
    async def test_default_access_site_users(self, build_access):
        access = build_access(
            network={"network_protect": True, "network_default_access": "site_users"},
            memberships={(5, 2): "subscriber"},
        )
        assert await access.engine.is_user_allowed_for_network(5, 2) is True
        assert await access.engine.is_user_allowed_for_network(5, 3) is False
        assert await access.engine.is_user_allowed_for_network(5) is False

    @pytest.mark.asyncio
    async def test_default_access_network_users(self, build_access):
        access = build_access(
            network={"network_protect": True, "network_default_access": "network_users"},
        )
        assert await access.engine.is_user_allowed_for_network(7, 3) is True
        assert await access.engine.is_user_allowed_for_network(999, 3) is False

    @pytest.mark.asyncio
    async def test_custom_default_access_level(self, build_access):
        hooks = HookRegistry()
        hooks.add_filter(
            f"{hook_names.NETWORK_IS_USER_ALLOWED_BY_DEFAULT}:staff",
            lambda allowed, user_id, site_id: user_id == 42,
        )
        access = build_access(
            network={"network_protect": True, "network_default_access": "staff"},
            hooks=hooks,
        )
        assert await access.engine.is_user_allowed_for_network(42, 1) is True
        assert await access.engine.is_user_allowed_for_network(7, 1) is False

    def test_known_access_levels(self):
        hooks = HookRegistry()
        assert is_known_access_level("", hooks) is True
        assert is_known_access_level("site_users", hooks) is True
        assert is_known_access_level("staff", hooks) is False

        hooks.add_filter(f"{hook_names.NETWORK_IS_USER_ALLOWED_BY_DEFAULT}:staff", lambda *a: True)
        assert is_known_access_level("staff", hooks) is True


# ──────────────────────────────────────────────────────────────────────────────
# PRECEDENCE
# ──────────────────────────────────────────────────────────────────────────────


class TestPrecedence:

    @pytest.mark.asyncio
    async def test_network_block_beats_site_allow_list(self, build_access):
        access = build_access(
            sites={1: {}, 2: {"site_protect": True, "allowed_users": [5]}},
            network={"network_protect": True},
        )
        assert await access.engine.network_blocks(5, 2) is True

    @pytest.mark.asyncio
    async def test_site_evaluated_when_network_allows(self, build_access):
        access = build_access(
            sites={2: {"site_protect": True, "allowed_users": []}},
            network={"network_protect": True, "network_allowed_users": [5]},
        )
        assert await access.engine.network_blocks(5, 2) is False
        assert await access.engine.site_blocks(5, 2) is True

    @pytest.mark.asyncio
    async def test_network_only_disables_site_protection(self, build_access):
        access = build_access(
            sites={2: {"site_protect": True}},
            network={"network_only": True},
        )
        assert await access.engine.site_blocks(7, 2) is False

    @pytest.mark.asyncio
    async def test_main_site_exemption(self, build_access):
        access = build_access(network={"network_protect": True, "network_allow_main_site": True})
        assert await access.engine.network_blocks(0, 1) is False
        assert await access.engine.network_blocks(0, 2) is True

    @pytest.mark.asyncio
    async def test_unprotected_site_never_blocks(self, build_access):
        access = build_access(sites={1: {"allowed_users": [42]}})
        for user_id in (0, 7, 42):
            assert await access.engine.site_blocks(user_id, 1) is False


# ──────────────────────────────────────────────────────────────────────────────
# FAILURE SEMANTICS
# ──────────────────────────────────────────────────────────────────────────────


class TestFailOpen:

    @pytest.mark.asyncio
    async def test_corrupted_site_flag_reads_unprotected(self, build_access, caplog):
        access = build_access(sites={1: {"site_protect": "maybe"}})
        assert await access.engine.is_site_protected(1) is False
        assert "site_protect" in caplog.text

    @pytest.mark.asyncio
    async def test_corrupted_allow_list_reads_empty(self, build_access):
        access = build_access(
            sites={1: {"site_protect": True, "allowed_users": "42"}},
            memberships={(5, 1): ADMINISTRATOR_ROLE},
        )
        assert await access.engine.is_user_allowed_for_site(42, 1) is False
        assert await access.engine.is_user_allowed_for_site(5, 1) is True

    @pytest.mark.asyncio
    async def test_corrupted_network_flag_reads_unprotected(self, build_access):
        access = build_access(network={"network_protect": {"on": True}})
        assert await access.engine.is_network_protected() is False


# ──────────────────────────────────────────────────────────────────────────────
# LOGIN MESSAGES
# ──────────────────────────────────────────────────────────────────────────────


class TestLoginMessages:

    @pytest.mark.asyncio
    async def test_network_message_before_site_message(self, build_access):
        access = build_access(
            sites={2: {"site_protect": True, "login_message": "Site members only"}},
            network={"network_protect": True, "network_login_message": "Staff network"},
        )
        assert await access.engine.login_messages(2) == ["Staff network", "Site members only"]

    @pytest.mark.asyncio
    async def test_messages_only_for_active_protection(self, build_access):
        access = build_access(
            sites={2: {"login_message": "Site members only"}},
            network={"network_login_message": "Staff network"},
        )
        assert await access.engine.login_messages(2) == []

    @pytest.mark.asyncio
    async def test_network_only_hides_site_message(self, build_access):
        access = build_access(
            sites={2: {"site_protect": True, "login_message": "Site members only"}},
            network={"network_only": True},
        )
        assert await access.engine.login_messages(2) == []
