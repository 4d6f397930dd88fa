"""
Tests for the settings and "My Sites" endpoints.

Covers:
- Site settings: permissions, partial updates, sanitization, audit
- Network settings: super admin only, multisite only, default access levels
- "My Sites" filtering and hide hint
- Network user lookup
"""

import json

import pytest
from httpx import AsyncClient

from access import hooks as hook_names
from access.identity import ADMINISTRATOR_ROLE
from main import app


# ──────────────────────────────────────────────────────────────────────────────
# SITE SETTINGS
# ──────────────────────────────────────────────────────────────────────────────


class TestSiteSettings:

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client: AsyncClient, seed):
        await seed.site(1, "test")
        response = await async_client.get("/api/sites/1/settings")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_subscriber_forbidden(self, async_client: AsyncClient, seed):
        await seed.site(1, "test")
        user_id = await seed.user("sub", memberships={1: "subscriber"})

        response = await async_client.get("/api/sites/1/settings", headers=seed.auth(user_id))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_site_admin_reads_defaults(self, async_client: AsyncClient, seed):
        await seed.site(1, "test")
        admin_id = await seed.user("admin", memberships={1: ADMINISTRATOR_ROLE})

        response = await async_client.get("/api/sites/1/settings", headers=seed.auth(admin_id))

        assert response.status_code == 200
        assert response.json() == {
            "site_id": 1,
            "site_protect": False,
            "allowed_users": [],
            "login_message": "",
            "protection_details": "0 allowed users",
        }

    @pytest.mark.asyncio
    async def test_update_sanitizes_and_persists(self, async_client: AsyncClient, seed):
        await seed.site(1, "test")
        admin_id = await seed.user("admin", memberships={1: ADMINISTRATOR_ROLE})

        response = await async_client.put(
            "/api/sites/1/settings",
            headers=seed.auth(admin_id),
            json={
                "site_protect": True,
                "allowed_users": [4, "4", -9, 0],
                "login_message": "<div>Readers <strong>only</strong></div>",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["site_protect"] is True
        assert data["allowed_users"] == [4, 9]
        assert data["login_message"] == "Readers <strong>only</strong>"
        assert data["protection_details"] == "2 allowed users"

        again = await async_client.get("/api/sites/1/settings", headers=seed.auth(admin_id))
        assert again.json()["allowed_users"] == [4, 9]

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_settings(self, async_client: AsyncClient, seed):
        await seed.site(1, "test", site_protect=True, allowed_users=[3])
        admin_id = await seed.user("admin", memberships={1: ADMINISTRATOR_ROLE})

        response = await async_client.put(
            "/api/sites/1/settings",
            headers=seed.auth(admin_id),
            json={"login_message": "Hello"},
        )

        data = response.json()
        assert data["site_protect"] is True
        assert data["allowed_users"] == [3]
        assert data["login_message"] == "Hello"

    @pytest.mark.asyncio
    async def test_invalid_ids_rejected(self, async_client: AsyncClient, seed):
        await seed.site(1, "test")
        admin_id = await seed.user("admin", memberships={1: ADMINISTRATOR_ROLE})

        response = await async_client.put(
            "/api/sites/1/settings",
            headers=seed.auth(admin_id),
            json={"allowed_users": ["bob"]},
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "allowed_users"

    @pytest.mark.asyncio
    async def test_admin_of_other_site_forbidden(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        await seed.site(2, "blog.test")
        admin_id = await seed.user("blogadmin", memberships={2: ADMINISTRATOR_ROLE})

        own = await async_client.get("/api/sites/2/settings", headers=seed.auth(admin_id))
        other = await async_client.get("/api/sites/1/settings", headers=seed.auth(admin_id))

        assert own.status_code == 200
        assert other.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_site_for_super_admin(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        root_id = await seed.user("root", super_admin=True)

        response = await async_client.get("/api/sites/77/settings", headers=seed.auth(root_id))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_is_audited(self, async_client: AsyncClient, seed, caplog):
        await seed.site(1, "test")
        admin_id = await seed.user("admin", memberships={1: ADMINISTRATOR_ROLE})

        with caplog.at_level("INFO", logger="audit"):
            await async_client.put(
                "/api/sites/1/settings",
                headers=seed.auth(admin_id),
                json={"site_protect": True},
            )

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "audit"]
        updates = [e for e in events if e["action"] == "UPDATE"]
        assert updates[0]["resource"] == "Site"
        assert updates[0]["resource_id"] == "1"
        assert updates[0]["details"] == {"keys": ["site_protect"]}
        assert updates[0]["actor"] == f"user:{admin_id}"


# ──────────────────────────────────────────────────────────────────────────────
# NETWORK SETTINGS
# ──────────────────────────────────────────────────────────────────────────────


class TestNetworkSettings:

    @pytest.mark.asyncio
    async def test_unavailable_on_single_site(self, async_client: AsyncClient, seed):
        await seed.site(1, "test")
        admin_id = await seed.user("admin", memberships={1: ADMINISTRATOR_ROLE})

        response = await async_client.get("/api/network/settings", headers=seed.auth(admin_id))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_site_admin_forbidden(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        admin_id = await seed.user("admin", memberships={1: ADMINISTRATOR_ROLE})

        response = await async_client.get("/api/network/settings", headers=seed.auth(admin_id))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_super_admin_reads_defaults(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        root_id = await seed.user("root", super_admin=True)

        response = await async_client.get("/api/network/settings", headers=seed.auth(root_id))

        assert response.status_code == 200
        data = response.json()
        assert data["network_protect"] is False
        assert data["network_allowed_users"] == []
        assert data["network_default_access"] == ""
        assert set(data["default_access_levels"]) == {"site_users", "network_users"}

    @pytest.mark.asyncio
    async def test_update(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        root_id = await seed.user("root", super_admin=True)

        response = await async_client.put(
            "/api/network/settings",
            headers=seed.auth(root_id),
            json={
                "network_protect": True,
                "network_redirect": True,
                "network_allowed_users": "5,6,5",
                "network_default_access": "site_users",
                "network_login_message": "<script>x()</script>Staff only",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["network_protect"] is True
        assert data["network_redirect"] is True
        assert data["network_only"] is False
        assert data["network_allowed_users"] == [5, 6]
        assert data["network_default_access"] == "site_users"
        assert data["network_login_message"] == "Staff only"

    @pytest.mark.asyncio
    async def test_unknown_default_access_stored_as_none(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        root_id = await seed.user("root", super_admin=True)

        response = await async_client.put(
            "/api/network/settings",
            headers=seed.auth(root_id),
            json={"network_default_access": "staff"},
        )

        assert response.json()["network_default_access"] == ""

    @pytest.mark.asyncio
    async def test_custom_default_access_kept_when_handled(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        root_id = await seed.user("root", super_admin=True)
        app.state.hooks.add_filter(
            f"{hook_names.NETWORK_IS_USER_ALLOWED_BY_DEFAULT}:staff",
            lambda allowed, user_id, site_id: allowed,
        )

        response = await async_client.put(
            "/api/network/settings",
            headers=seed.auth(root_id),
            json={"network_default_access": "staff"},
        )

        assert response.json()["network_default_access"] == "staff"


# ──────────────────────────────────────────────────────────────────────────────
# MY SITES
# ──────────────────────────────────────────────────────────────────────────────


class TestMySites:

    @pytest.mark.asyncio
    async def test_lists_only_reachable_sites(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test", name="Main")
        await seed.site(2, "blog.test", name="Blog", site_protect=True)
        await seed.site(3, "shop.test", name="Shop")
        user_id = await seed.user(
            "dave",
            memberships={1: "subscriber", 2: "subscriber", 3: "subscriber"},
        )

        response = await async_client.get("/api/my-sites", headers=seed.auth(user_id))

        assert response.status_code == 200
        data = response.json()
        assert [s["site_id"] for s in data["sites"]] == [1, 3]
        assert data["sites"][1]["url"] == "http://shop.test/"
        assert data["hide_my_sites"] is False

    @pytest.mark.asyncio
    async def test_hide_hint_for_single_site_user(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        await seed.site(2, "blog.test", site_protect=True)
        await seed.network(network_hide_my_sites=True)
        user_id = await seed.user("erin", memberships={1: "subscriber", 2: "subscriber"})

        response = await async_client.get("/api/my-sites", headers=seed.auth(user_id))

        data = response.json()
        assert [s["site_id"] for s in data["sites"]] == [1]
        assert data["hide_my_sites"] is True

    @pytest.mark.asyncio
    async def test_requires_authentication(self, async_client: AsyncClient, seed):
        await seed.site(1, "test")
        response = await async_client.get("/api/my-sites")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_network_users(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        await seed.site(2, "blog.test")
        await seed.site(3, "shop.test")
        frank = await seed.user("frank", memberships={1: "subscriber", 2: ADMINISTRATOR_ROLE})
        grace = await seed.user("grace", memberships={2: "subscriber"})
        await seed.user("heidi", memberships={3: "subscriber"})

        response = await async_client.get("/api/network/users", headers=seed.auth(frank))

        assert response.status_code == 200
        assert [u["username"] for u in response.json()] == ["frank", "grace"]
        assert {u["user_id"] for u in response.json()} == {frank, grace}

    @pytest.mark.asyncio
    async def test_network_users_forbidden_for_subscribers(self, async_client: AsyncClient, seed, multisite):
        await seed.site(1, "test")
        await seed.site(2, "blog.test")
        sub = await seed.user("sub", memberships={1: "subscriber"})
        await seed.user("ivan", memberships={1: "subscriber", 2: ADMINISTRATOR_ROLE})

        response = await async_client.get("/api/network/users", headers=seed.auth(sub))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_network_users_for_super_admin_without_memberships(
        self, async_client: AsyncClient, seed, multisite
    ):
        await seed.site(1, "test")
        root = await seed.user("root", super_admin=True)

        response = await async_client.get("/api/network/users", headers=seed.auth(root))

        assert response.status_code == 200
        assert response.json() == []
