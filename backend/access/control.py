"""Composition of the access-control components for one request."""

from dataclasses import dataclass

from .decisions import AccessDecisionEngine
from .guard import RequestGuard
from .hooks import HookRegistry
from .identity import IdentityProvider
from .redirect import NetworkRedirectResolver
from .site_list import SiteListFilter
from .store import ConfigStore


@dataclass
class AccessControl:
    """Everything the guard, resolver and filter need, wired once."""

    store: ConfigStore
    identity: IdentityProvider
    hooks: HookRegistry
    engine: AccessDecisionEngine
    resolver: NetworkRedirectResolver
    guard: RequestGuard
    site_list: SiteListFilter

    @classmethod
    def build(
        cls,
        store: ConfigStore,
        identity: IdentityProvider,
        hooks: HookRegistry,
        multisite: bool = False,
        main_site_id: int = 1,
        network_home_url: str = "",
        my_sites_threshold: int = 2,
    ) -> "AccessControl":
        engine = AccessDecisionEngine(
            store,
            identity,
            hooks,
            multisite=multisite,
            main_site_id=main_site_id,
        )
        resolver = NetworkRedirectResolver(engine, identity, hooks, main_site_id, network_home_url)
        return cls(
            store=store,
            identity=identity,
            hooks=hooks,
            engine=engine,
            resolver=resolver,
            guard=RequestGuard(engine, resolver, hooks),
            site_list=SiteListFilter(engine, identity, hooks, threshold=my_sites_threshold),
        )
