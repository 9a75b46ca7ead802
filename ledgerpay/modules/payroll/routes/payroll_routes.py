# ledgerpay/modules/payroll/routes/payroll_routes.py

"""
Main payroll routes combining all payroll module endpoints.

This router aggregates:
- Payroll runs (calculate, review, approve, post, cancel)
- Employee compensation and deductions
- Pay schedules and periods
- GL mapping configuration
"""

from datetime import datetime

from fastapi import APIRouter

from .employee_routes import router as employee_router
from .gl_mapping_routes import router as gl_mapping_router
from .run_routes import router as run_router
from .schedule_routes import router as schedule_router

# Create main payroll router
router = APIRouter(prefix="/api/payroll", tags=["Payroll"])

# Include sub-routers
router.include_router(run_router, prefix="/runs", tags=["Payroll Runs"])
router.include_router(employee_router, prefix="/employees", tags=["Payroll Employees"])
router.include_router(schedule_router, prefix="/schedules", tags=["Pay Schedules"])
router.include_router(gl_mapping_router, prefix="/gl-mappings", tags=["Payroll GL Mappings"])


@router.get("/health")
async def payroll_health_check():
    """
    Health check endpoint for payroll module.

    Returns:
        dict: Health status of payroll module
    """
    return {
        "status": "healthy",
        "module": "payroll",
        "timestamp": datetime.utcnow().isoformat(),
    }
