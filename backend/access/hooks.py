"""
Filter and action hooks for extending access decisions.

Filters are ordered transform chains: every callback receives the current
value plus the call's context arguments and returns the (possibly modified)
value for the next callback. Actions are notifications whose return values
are ignored.

Usage::

    hooks = HookRegistry()

    # Let everybody with a company email in, on every site
    def allow_staff(allowed, user_id, site_id):
        return allowed or user_id in staff_ids

    hooks.add_filter(IS_USER_ALLOWED, allow_staff)
"""

import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

# ── Filter names ──────────────────────────────────────────────────────
IS_SITE_PROTECTED = "is_site_protected"
IS_USER_ALLOWED = "is_user_allowed"
IS_NETWORK_PROTECTED = "is_network_protected"
NETWORK_IS_USER_ALLOWED = "network_is_user_allowed"
NETWORK_IS_USER_ALLOWED_BY_DEFAULT = "network_is_user_allowed_by_default"
IS_NETWORK_ONLY = "is_network_only"
NETWORK_REDIRECT = "network_redirect"
NETWORK_ALLOW_MAIN_SITE = "network_allow_main_site"
NETWORK_DEFAULT_ACCESS = "network_default_access"
NETWORK_ALLOWED_USERS = "network_allowed_users"
NETWORK_REDIRECT_LOCATION = "network_redirect_location"
HIDE_MY_SITES = "hide_my_sites"
NETWORK_USERS = "network_users"
LOGIN_MESSAGES = "login_messages"
PROTECTION_DETAILS = "protection_details"

# ── Action names ──────────────────────────────────────────────────────
SITE_PROTECT = "site_protect"
NETWORK_PROTECT = "network_protect"

DEFAULT_PRIORITY = 10


@dataclass(order=True)
class _Callback:
    priority: int
    sequence: int
    func: Callable[..., Any] = field(compare=False)


class HookRegistry:
    """
    Ordered registry of filter and action callbacks.

    Lower priorities run first; equal priorities run in registration order.
    """

    def __init__(self):
        self._filters: Dict[str, List[_Callback]] = {}
        self._actions: Dict[str, List[_Callback]] = {}
        self._sequence = count()

    # ── Filters ───────────────────────────────────────────────────────

    def add_filter(
        self,
        name: str,
        func: Callable[..., Any],
        priority: int = DEFAULT_PRIORITY,
    ) -> None:
        self._register(self._filters, name, func, priority)

    def remove_filter(self, name: str, func: Callable[..., Any]) -> bool:
        return self._unregister(self._filters, name, func)

    def has_filters(self, name: str) -> bool:
        return bool(self._filters.get(name))

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """
        Run ``value`` through every callback registered for ``name``.

        Args:
            name: Filter name.
            value: Initial value.
            *args: Extra context passed to every callback.

        Returns:
            The value returned by the last callback, or ``value`` untouched
            when nothing is registered. A failing callback is logged and
            skipped; the value it was given is passed on unchanged.
        """
        for callback in list(self._filters.get(name, ())):
            try:
                value = callback.func(value, *args)
            except Exception:
                logger.exception(f"Filter '{name}' callback {callback.func!r} failed")
        return value

    # ── Actions ───────────────────────────────────────────────────────

    def add_action(
        self,
        name: str,
        func: Callable[..., Any],
        priority: int = DEFAULT_PRIORITY,
    ) -> None:
        self._register(self._actions, name, func, priority)

    def remove_action(self, name: str, func: Callable[..., Any]) -> bool:
        return self._unregister(self._actions, name, func)

    def do_action(self, name: str, *args: Any) -> None:
        """Notify every observer of ``name``. A failing observer is logged and skipped."""
        for callback in list(self._actions.get(name, ())):
            try:
                callback.func(*args)
            except Exception:
                logger.exception(f"Action '{name}' callback {callback.func!r} failed")

    # ── Internals ─────────────────────────────────────────────────────

    def _register(self, table, name, func, priority) -> None:
        callbacks = table.setdefault(name, [])
        callbacks.append(_Callback(priority, next(self._sequence), func))
        callbacks.sort()

    def _unregister(self, table, name, func) -> bool:
        callbacks = table.get(name, [])
        for callback in callbacks:
            if callback.func == func:
                callbacks.remove(callback)
                return True
        return False
