"""
Pytest configuration and fixtures for Portier tests.

Provides:
- Async SQLite in-memory database setup
- FastAPI app with dependency overrides
- AsyncClient for testing async endpoints
- Seeding helpers for sites, users, memberships and options
- In-memory access-control wiring for unit tests of the core
"""

from typing import Any, Dict, Iterable, Optional

import bcrypt
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from access.control import AccessControl
from access.enforcement import EnforcementSink
from access.hooks import HookRegistry
from access.identity import SiteRecord, UserRecord
from access.memory import InMemoryConfigStore, InMemoryIdentity
from auth.jwt_service import create_access_token
from config import settings
from database import Base, get_db
from main import app, build_hooks
from models import NetworkOption, Site, SiteMembership, SiteOption, User


@pytest_asyncio.fixture
async def session_factory():
    """
    In-memory SQLite database with all tables created, as a session factory.
    The database is created fresh for each test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
    )

    async_session = sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        future=True,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_session

    await engine.dispose()


@pytest_asyncio.fixture
async def async_client(session_factory):
    """
    Create an AsyncClient pointing to the FastAPI app with the in-memory
    test database and a fresh hook registry.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.hooks = build_hooks()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def multisite(monkeypatch):
    """Run the app as a multisite network for the duration of the test."""
    monkeypatch.setattr(settings, "MULTISITE", True)
    monkeypatch.setattr(settings, "NETWORK_HOME_URL", "http://test/")
    return settings


class Seeder:
    """Writes fixture rows, each call in its own committed session."""

    PASSWORD = "s3cret-pass"

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def site(self, site_id: int, domain: str, name: Optional[str] = None, **options: Any) -> int:
        async with self.session_factory() as db:
            db.add(Site(id=site_id, domain=domain, path="/", name=name or domain))
            await db.flush()
            for key, value in options.items():
                db.add(SiteOption(site_id=site_id, key=key, value=value))
            await db.commit()
        return site_id

    async def user(
        self,
        username: str,
        super_admin: bool = False,
        primary_site: Optional[int] = None,
        is_active: bool = True,
        memberships: Optional[Dict[int, str]] = None,
    ) -> int:
        hashed = bcrypt.hashpw(self.PASSWORD.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
        async with self.session_factory() as db:
            user = User(
                username=username,
                email=f"{username}@example.com",
                display_name=username.title(),
                is_super_admin=super_admin,
                primary_site_id=primary_site,
                local_password_hash=hashed,
                is_active=is_active,
            )
            db.add(user)
            await db.flush()
            for site_id, role in (memberships or {}).items():
                db.add(SiteMembership(user_id=user.id, site_id=site_id, role=role))
            await db.commit()
            return user.id

    async def site_options(self, site_id: int, **options: Any) -> None:
        async with self.session_factory() as db:
            for key, value in options.items():
                db.add(SiteOption(site_id=site_id, key=key, value=value))
            await db.commit()

    async def network(self, **options: Any) -> None:
        async with self.session_factory() as db:
            for key, value in options.items():
                db.add(NetworkOption(key=key, value=value))
            await db.commit()

    @staticmethod
    def token(user_id: int) -> str:
        return create_access_token(user_id=user_id)

    def auth(self, user_id: int) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token(user_id)}"}


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


# ── In-memory core wiring ─────────────────────────────────────────────


class RecordingSink(EnforcementSink):
    """Sink that records enforcement actions instead of answering requests."""

    def __init__(self):
        self.calls = []

    def block(self, scope: str, reason: str) -> None:
        self.calls.append(("block", scope, reason))

    def redirect_to(self, url: str) -> None:
        self.calls.append(("redirect", url))

    def force_404(self) -> None:
        self.calls.append(("404",))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def network_sites():
    """Three sites of a network; site 1 is the main site."""
    return [
        SiteRecord(site_id=1, url="http://main.example/", name="Main"),
        SiteRecord(site_id=2, url="http://two.example/", name="Two"),
        SiteRecord(site_id=3, url="http://three.example/", name="Three"),
    ]


@pytest.fixture
def build_access(network_sites):
    """
    Factory wiring the core over in-memory collaborators.

    Usage::

        access = build_access(
            sites={1: {"site_protect": True}},
            network={"network_protect": True},
            memberships={(5, 2): "subscriber"},
        )
    """

    def _build(
        sites: Optional[Dict[int, Dict[str, Any]]] = None,
        network: Optional[Dict[str, Any]] = None,
        memberships: Optional[Dict[tuple, str]] = None,
        super_admins: Iterable[int] = (),
        primary_sites: Optional[Dict[int, int]] = None,
        users: Iterable[int] = (1, 2, 5, 7, 42),
        site_records: Optional[Iterable[SiteRecord]] = None,
        hooks: Optional[HookRegistry] = None,
        multisite: bool = True,
        current_user_id: int = 0,
        threshold: int = 2,
    ) -> AccessControl:
        store = InMemoryConfigStore(
            sites=sites if sites is not None else {1: {}, 2: {}, 3: {}},
            network=network or {},
        )
        identity = InMemoryIdentity(
            current_user_id=current_user_id,
            sites=site_records if site_records is not None else network_sites,
            users=[UserRecord(user_id=uid, username=f"user{uid}") for uid in users],
            memberships=memberships or {},
            super_admins=super_admins,
            primary_sites=primary_sites or {},
        )
        return AccessControl.build(
            store=store,
            identity=identity,
            hooks=hooks or HookRegistry(),
            multisite=multisite,
            main_site_id=1,
            network_home_url="http://main.example/",
            my_sites_threshold=threshold,
        )

    return _build
