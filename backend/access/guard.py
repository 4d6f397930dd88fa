"""
Request guard: decide and enforce protection for one page request.

Evaluation order:

1. Requests that already resolved to "not found" pass untouched.
2. Network protection (unless the main site is exempt): anonymous or
   not network-allowed users are ``BLOCKED(network)``.
3. Site protection, skipped in network-only mode: anonymous or not
   allowed users are ``BLOCKED(site)``.
4. Everything else passes.

A block first notifies the ``network_protect`` / ``site_protect`` action,
then: feeds get a 404, network blocks may be redirected to a fallback site,
and everything else is logged out and sent to the login screen.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from . import hooks as hook_names
from .decisions import AccessDecisionEngine
from .enforcement import EnforcementSink
from .exceptions import TenantContextError
from .hooks import HookRegistry
from .redirect import NetworkRedirectResolver

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    PASS = "pass"
    BLOCKED = "blocked"


class BlockScope(str, Enum):
    NETWORK = "network"
    SITE = "site"


class EnforcementKind(str, Enum):
    LOGIN = "login"
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RequestContext:
    """What the guard needs to know about the incoming request."""

    site_id: int
    user_id: int = 0
    url: str = ""
    is_feed: bool = False
    is_404: bool = False


@dataclass(frozen=True)
class GuardOutcome:
    """Result of guarding one request."""

    state: GuardState
    scope: Optional[BlockScope] = None
    reason: str = ""
    action: Optional[EnforcementKind] = None
    location: Optional[str] = None

    @property
    def blocked(self) -> bool:
        return self.state == GuardState.BLOCKED


PASSED = GuardOutcome(state=GuardState.PASS)


class RequestGuard:
    def __init__(
        self,
        engine: AccessDecisionEngine,
        resolver: NetworkRedirectResolver,
        hooks: HookRegistry,
    ):
        self.engine = engine
        self.resolver = resolver
        self.hooks = hooks

    async def evaluate(self, ctx: RequestContext) -> GuardOutcome:
        """Decide whether the request passes. Has no side effects."""
        if ctx.is_404:
            return PASSED

        reason = "not_allowed" if ctx.user_id else "anonymous"
        try:
            if await self.engine.network_blocks(ctx.user_id, ctx.site_id):
                return GuardOutcome(GuardState.BLOCKED, BlockScope.NETWORK, reason)
            if await self.engine.site_blocks(ctx.user_id, ctx.site_id):
                return GuardOutcome(GuardState.BLOCKED, BlockScope.SITE, reason)
        except TenantContextError as exc:
            logger.warning(f"Cannot evaluate protection for site {ctx.site_id}: {exc}; not enforcing")
            return PASSED

        return PASSED

    async def protect(self, ctx: RequestContext, sink: EnforcementSink) -> GuardOutcome:
        """
        Evaluate the request and hand any block to ``sink``.

        Sinks may end the request by raising; the returned outcome is only
        seen by sinks that return normally.
        """
        outcome = await self.evaluate(ctx)
        if not outcome.blocked:
            return outcome

        action = hook_names.NETWORK_PROTECT if outcome.scope == BlockScope.NETWORK else hook_names.SITE_PROTECT
        self.hooks.do_action(action, ctx, outcome)
        logger.info(
            f"Blocked user {ctx.user_id or 'anonymous'} on site {ctx.site_id} "
            f"(scope={outcome.scope.value}, reason={outcome.reason})"
        )

        if ctx.is_feed:
            outcome = replace(outcome, action=EnforcementKind.NOT_FOUND)
            sink.force_404()
            return outcome

        if outcome.scope == BlockScope.NETWORK and await self.engine.is_network_redirect_enabled():
            location = await self.resolver.resolve(ctx.user_id, ctx.site_id)
            if location:
                outcome = replace(outcome, action=EnforcementKind.REDIRECT, location=location)
                sink.redirect_to(location)
                return outcome

        outcome = replace(outcome, action=EnforcementKind.LOGIN)
        sink.block(outcome.scope.value, outcome.reason)
        return outcome
