"""API routes."""

from hr_workflow.api.routes.audit import router as audit_router
from hr_workflow.api.routes.entities import router as entities_router
from hr_workflow.api.routes.health import router as health_router
from hr_workflow.api.routes.profiles import router as profiles_router
from hr_workflow.api.routes.storage import router as storage_router

__all__ = ["audit_router", "entities_router", "health_router", "profiles_router", "storage_router"]
