"""
Access control for sites and the network.

Provides:
- Decision engine (site / network protection and allow-lists)
- Request guard with feed masking and login redirects
- Network fallback redirect resolver
- "My Sites" list filtering
- Filter/action hooks for extensions
"""

from .control import AccessControl
from .decisions import AccessDecisionEngine
from .enforcement import EnforcementSink, HttpEnforcementSink, RequestTerminated
from .exceptions import (
    AccessControlError,
    ConfigurationUnavailable,
    InvalidRedirectTarget,
    TenantContextError,
)
from .guard import BlockScope, EnforcementKind, GuardOutcome, GuardState, RequestContext, RequestGuard
from .hooks import HookRegistry
from .identity import DatabaseIdentity, IdentityProvider, SiteRecord, UserRecord
from .redirect import NetworkRedirectResolver
from .site_list import SiteListFilter
from .store import ConfigStore, DatabaseConfigStore

__all__ = [
    "AccessControl",
    "AccessDecisionEngine",
    "EnforcementSink",
    "HttpEnforcementSink",
    "RequestTerminated",
    "AccessControlError",
    "ConfigurationUnavailable",
    "InvalidRedirectTarget",
    "TenantContextError",
    "BlockScope",
    "EnforcementKind",
    "GuardOutcome",
    "GuardState",
    "RequestContext",
    "RequestGuard",
    "HookRegistry",
    "DatabaseIdentity",
    "IdentityProvider",
    "SiteRecord",
    "UserRecord",
    "NetworkRedirectResolver",
    "SiteListFilter",
    "ConfigStore",
    "DatabaseConfigStore",
]
