# ledgerpay/modules/payroll/routes/__init__.py

"""
Payroll Module Routes Package

This package contains API routes for payroll processing:
- Payroll run lifecycle
- Employee compensation and deduction management
- Pay schedules and periods
- GL mapping configuration
"""

from .payroll_routes import router as payroll_router

__all__ = ["payroll_router"]
