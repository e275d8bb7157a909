"""Integration check helpers."""

from .checks import (
    IntegrationCheckResult,
    check_ai_service,
    check_storage,
    run_all_checks,
)

__all__ = [
    "IntegrationCheckResult",
    "check_ai_service",
    "check_storage",
    "run_all_checks",
]
