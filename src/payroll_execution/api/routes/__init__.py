"""API routes."""

from payroll_execution.api.routes.benefits import router as benefits_router
from payroll_execution.api.routes.health import router as health_router
from payroll_execution.api.routes.payroll_runs import router as payroll_runs_router
from payroll_execution.api.routes.refunds import router as refunds_router

__all__ = ["payroll_runs_router", "benefits_router", "refunds_router", "health_router"]
