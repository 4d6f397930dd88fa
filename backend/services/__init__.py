"""Services package for Portier."""

from .health import (
    ComponentHealth,
    HealthResponse,
    run_health_checks,
)

__all__ = [
    "ComponentHealth",
    "HealthResponse",
    "run_health_checks",
]
