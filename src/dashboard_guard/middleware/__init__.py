"""FastAPI middleware integration."""

from dashboard_guard.middleware.fastapi import (
    DashboardGuardMiddleware,
    GuardComponents,
    create_guard_router,
    get_components,
    require_token_holder,
)

__all__ = [
    "DashboardGuardMiddleware",
    "GuardComponents",
    "create_guard_router",
    "get_components",
    "require_token_holder",
]
