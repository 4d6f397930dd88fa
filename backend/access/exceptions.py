"""
Errors raised inside the access-control core.

None of these ever reaches the visitor: the decision engine, guard, resolver
and site-list filter each recover from them locally.
"""

from typing import Any, Optional


class AccessControlError(Exception):
    """Base class for access-control errors."""


class ConfigurationUnavailable(AccessControlError):
    """
    A setting could not be read, or was stored with an unexpected type.

    Protection flags read as ``False`` and allow-lists as empty when this is
    raised, so storage trouble never locks administrators out.
    """

    def __init__(self, key: str, reason: str, value: Any = None):
        self.key = key
        self.reason = reason
        self.value = value
        super().__init__(f"Setting '{key}' unavailable: {reason}")


class TenantContextError(AccessControlError):
    """Evaluation was asked about a site that does not exist (anymore)."""

    def __init__(self, site_id: int, reason: Optional[str] = None):
        self.site_id = site_id
        super().__init__(reason or f"Site {site_id} does not exist")


class InvalidRedirectTarget(AccessControlError):
    """A resolved fallback redirect is not an absolute http(s) URL."""

    def __init__(self, location: Any):
        self.location = location
        super().__init__(f"Invalid redirect target: {location!r}")
