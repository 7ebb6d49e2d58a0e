"""API routes."""

from access_compliance.api.routes.access_delta import router as access_delta_router
from access_compliance.api.routes.eligibility import router as eligibility_router
from access_compliance.api.routes.health import router as health_router

__all__ = ["access_delta_router", "eligibility_router", "health_router"]
