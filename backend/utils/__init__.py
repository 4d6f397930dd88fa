# Logging and audit helpers shared by the routers and the access core
from .audit import AuditLogger, audit
from .logging_utils import setup_logging, get_logger, LogTimer

__all__ = ['AuditLogger', 'audit', 'setup_logging', 'get_logger', 'LogTimer']
