"""
Pydantic v2 schemas with strict input validation and lenient output serialization.

Architecture:
  - *Fields classes: pure field definitions, no validators.  Shared by both
    input (Update) and output (Response) schemas.
  - *Update classes: inherit from *Fields and ADD sanitizing validators so
    settings are normalized before they reach the configuration store.
  - *Response classes: inherit from *Fields directly (no validators) so any
    value already stored serializes without crashing.

Updates are partial: only the fields present in the request body are
written (``model_dump(exclude_unset=True)``).
"""

from html import escape
from html.parser import HTMLParser
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Sanitizers ───────────────────────────────────────────────────────

MESSAGE_MAX_LENGTH = 5000

# Tags kept in login messages; everything else is reduced to its text
ALLOWED_MESSAGE_TAGS = frozenset({"a", "em", "strong"})
SAFE_LINK_SCHEMES = frozenset({"", "http", "https", "mailto"})
_DROPPED_CONTENT_TAGS = frozenset({"script", "style"})


def sanitize_user_ids(value: Any) -> List[int]:
    """
    Normalize an allow-list to unique positive user ids.

    Accepts a list of ints / numeric strings or a comma-separated string.
    Negative ids are made absolute, zeros are dropped, order is preserved.
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]
    if not isinstance(value, (list, tuple, set)):
        raise ValueError("Expected a list of user ids")

    ids: List[int] = []
    for item in value:
        if isinstance(item, bool):
            raise ValueError(f"Invalid user id '{item}'")
        try:
            user_id = abs(int(str(item).strip()))
        except ValueError:
            raise ValueError(f"Invalid user id '{item}'. Expected an integer")
        if user_id and user_id not in ids:
            ids.append(user_id)
    return ids


class _MessageSanitizer(HTMLParser):
    """Rebuilds markup keeping only links, emphasis and strong text."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []
        self._open: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in _DROPPED_CONTENT_TAGS:
            self._skip_depth += 1
            return
        if tag not in ALLOWED_MESSAGE_TAGS:
            return
        if tag == "a":
            href = (dict(attrs).get("href") or "").strip()
            if not href or urlparse(href).scheme.lower() not in SAFE_LINK_SCHEMES:
                return
            self.parts.append(f'<a href="{escape(href)}">')
        else:
            self.parts.append(f"<{tag}>")
        self._open.append(tag)

    def handle_endtag(self, tag):
        if tag in _DROPPED_CONTENT_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
            return
        if tag not in self._open:
            return
        # Close everything opened after it as well
        while self._open:
            closed = self._open.pop()
            self.parts.append(f"</{closed}>")
            if closed == tag:
                break

    def handle_data(self, data):
        if not self._skip_depth:
            self.parts.append(escape(data, quote=False))

    def result(self) -> str:
        self.close()
        while self._open:
            self.parts.append(f"</{self._open.pop()}>")
        return "".join(self.parts)


def sanitize_message(value: Optional[str]) -> str:
    """Strip a login message down to text plus ``<a href>``, ``<em>`` and ``<strong>``."""
    if not value:
        return ""
    parser = _MessageSanitizer()
    parser.feed(value)
    return parser.result().strip()


def sanitize_access_level(value: Optional[str]) -> str:
    """Default access levels are plain identifiers; anything else means "none"."""
    if not value:
        return ""
    level = value.strip()
    if not level.replace("_", "").replace("-", "").isalnum():
        return ""
    return level


# ═══════════════════════════════════════════════════════════════════════
# SITE SETTINGS SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class SiteSettingsFields(BaseModel):
    """Pure field definitions for per-site settings.  No validators."""

    site_protect: Optional[bool] = None
    allowed_users: Optional[List[int]] = None
    login_message: Optional[str] = None


class SiteSettingsUpdate(SiteSettingsFields):
    """Partial update of a site's protection settings."""

    login_message: Optional[str] = Field(None, max_length=MESSAGE_MAX_LENGTH)

    @field_validator("allowed_users", mode="before")
    @classmethod
    def validate_allowed_users(cls, v):
        if v is None:
            return v
        return sanitize_user_ids(v)

    @field_validator("login_message")
    @classmethod
    def validate_login_message(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return sanitize_message(v)


class SiteSettingsResponse(SiteSettingsFields):
    site_id: int
    site_protect: bool = False
    allowed_users: List[int] = []
    login_message: str = ""
    protection_details: str = ""


# ═══════════════════════════════════════════════════════════════════════
# NETWORK SETTINGS SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class NetworkSettingsFields(BaseModel):
    """Pure field definitions for network-wide settings.  No validators."""

    network_protect: Optional[bool] = None
    network_only: Optional[bool] = None
    network_redirect: Optional[bool] = None
    network_hide_my_sites: Optional[bool] = None
    network_allow_main_site: Optional[bool] = None
    network_allowed_users: Optional[List[int]] = None
    network_login_message: Optional[str] = None
    network_default_access: Optional[str] = None


class NetworkSettingsUpdate(NetworkSettingsFields):
    """
    Partial update of the network settings.

    Whether ``network_default_access`` names a level the installation
    knows about is checked by the router, which has the hook registry.
    """

    network_login_message: Optional[str] = Field(None, max_length=MESSAGE_MAX_LENGTH)
    network_default_access: Optional[str] = Field(None, max_length=64)

    @field_validator("network_allowed_users", mode="before")
    @classmethod
    def validate_allowed_users(cls, v):
        if v is None:
            return v
        return sanitize_user_ids(v)

    @field_validator("network_login_message")
    @classmethod
    def validate_login_message(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return sanitize_message(v)

    @field_validator("network_default_access")
    @classmethod
    def validate_default_access(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return sanitize_access_level(v)


class NetworkSettingsResponse(NetworkSettingsFields):
    network_protect: bool = False
    network_only: bool = False
    network_redirect: bool = False
    network_hide_my_sites: bool = False
    network_allow_main_site: bool = False
    network_allowed_users: List[int] = []
    network_login_message: str = ""
    network_default_access: str = ""
    default_access_levels: Dict[str, str] = {}


# ═══════════════════════════════════════════════════════════════════════
# SITE LIST / LOGIN SCREEN SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class SiteSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    site_id: int
    url: str
    name: Optional[str] = None


class NetworkUser(BaseModel):
    """Entry of the allow-list user picker."""

    user_id: int
    username: str
    email: Optional[str] = None


class MySitesResponse(BaseModel):
    sites: List[SiteSummary]
    hide_my_sites: bool = False


class LoginScreenResponse(BaseModel):
    site_id: int
    messages: List[str] = []
    redirect_to: Optional[str] = None
    reauth: bool = False
