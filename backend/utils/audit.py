"""
Structured audit logging module for the Portier backend.

This module provides an AuditLogger class that logs events to a dedicated 'audit' logger
in structured JSON format. It supports context-aware request_id propagation across async
calls using contextvars.ContextVar.

Key features:
- Async-safe request_id and actor tracking via ContextVar
- Structured JSON output with ISO8601 timestamps
- Convenience methods for logins, settings changes and access blocks
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# Context variable for tracking request_id across async calls
_request_id_context: ContextVar[Optional[str]] = ContextVar(
    'request_id', default=None
)

# Context variable for tracking actor (authenticated user) across async calls
_actor_context: ContextVar[Optional[str]] = ContextVar(
    'actor', default=None
)


class AuditLogger:
    """
    Structured audit logger for security-relevant events.

    All events are written to a dedicated 'audit' logger in JSON format.
    """

    def __init__(self):
        self.logger = logging.getLogger('audit')

    def set_request_id(self, request_id: str) -> None:
        _request_id_context.set(request_id)

    def get_request_id(self) -> Optional[str]:
        return _request_id_context.get()

    def set_actor(self, actor: str) -> None:
        """Set the authenticated user for this request context."""
        _actor_context.set(actor)

    def get_actor(self) -> Optional[str]:
        """Get the current actor from context, or None."""
        return _actor_context.get()

    def log(
        self,
        action: str,
        actor: str,
        resource: str,
        resource_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Core method to log a structured audit event.

        Args:
            action: Type of action performed (e.g., 'LOGIN', 'UPDATE', 'BLOCK')
            actor: User performing the action; 'user' resolves to the context actor
            resource: Type of resource affected (e.g., 'Site', 'Network', 'User')
            resource_id: Unique identifier of the affected resource
            status: Result status (e.g., 'success', 'failure', 'denied')
            details: Optional dict of additional context
        """
        event = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'action': action,
            'actor': actor if actor != 'user' else (self.get_actor() or 'user'),
            'resource': resource,
            'resource_id': resource_id,
            'status': status,
            'request_id': self.get_request_id(),
            'details': details or {},
        }
        self.logger.info(json.dumps(event))

    def log_login(self, username: str, user_id: int, status: str, method: str = 'local') -> None:
        self.log(
            action='LOGIN',
            actor=username,
            resource='User',
            resource_id=str(user_id),
            status=status,
            details={'method': method},
        )

    def log_logout(self, user_id: Optional[int]) -> None:
        self.log(
            action='LOGOUT',
            actor='user',
            resource='User',
            resource_id=str(user_id or 'anonymous'),
            status='success',
        )

    def log_settings_change(
        self,
        scope: str,
        scope_id: str,
        changed_keys: List[str],
    ) -> None:
        """
        Log a change to site or network settings.

        Args:
            scope: 'Site' or 'Network'
            scope_id: Site id, or 'network'
            changed_keys: Names of the settings that were written
        """
        self.log(
            action='UPDATE',
            actor='user',
            resource=scope,
            resource_id=scope_id,
            status='success',
            details={'keys': sorted(changed_keys)},
        )

    def log_block(
        self,
        scope: str,
        site_id: int,
        user_id: int,
        reason: str,
        is_feed: bool = False,
    ) -> None:
        """
        Log a request blocked by site or network protection.

        Args:
            scope: 'network' or 'site'
            site_id: Site the request was addressed to
            user_id: Requesting user, 0 for anonymous visitors
            reason: 'anonymous' or 'not_allowed'
            is_feed: Whether the blocked request was a feed
        """
        self.log(
            action='BLOCK',
            actor=f"user:{user_id}" if user_id else 'anonymous',
            resource='Site',
            resource_id=str(site_id),
            status='denied',
            details={'scope': scope, 'reason': reason, 'feed': is_feed},
        )


# Global audit logger instance for convenient import
audit = AuditLogger()
