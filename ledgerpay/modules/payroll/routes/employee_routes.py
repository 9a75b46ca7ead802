# ledgerpay/modules/payroll/routes/employee_routes.py

"""
Per-employee payroll inputs: compensation history and deduction enrollments.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ledgerpay.core.database import get_db
from ledgerpay.core.tenant_context import RequestContext, get_request_context, parse_uuid
from ..exceptions import PayrollException
from ..models.employee_models import EmployeeDeduction
from ..schemas.employee_schemas import (
    CompensationCreate, CompensationCreatedResponse, CompensationHistoryResponse,
    CompensationResponse, DeductionCreate, DeductionListResponse, DeductionResponse,
    DeductionUpdate,
)
from ..schemas.error_schemas import PayrollErrorCodes
from ..services.compensation_service import CompensationService
from ..services.deduction_service import DeductionService
from .helpers import internal_error, payroll_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


def deduction_response(enrollment: EmployeeDeduction) -> DeductionResponse:
    response = DeductionResponse.model_validate(enrollment)
    deduction_type = enrollment.deduction_type
    if deduction_type:
        response.deduction_type_code = deduction_type.code
        response.deduction_type_name = deduction_type.name
        response.category = deduction_type.category.value
    return response


@router.get("/{employee_id}/compensation", response_model=CompensationHistoryResponse)
async def get_compensation_history(
    employee_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Compensation history for an employee, newest first.

    ## Response
    - **current_compensation**: The open record, if any
    - **history**: Every record including the open one
    """
    employee_id = parse_uuid(employee_id, "employee_id")
    try:
        employee, current, history = CompensationService(db).get_history(
            ctx.tenant_id, employee_id
        )
        return CompensationHistoryResponse(
            employee_id=employee.id,
            employee_number=employee.employee_number,
            current_compensation=CompensationResponse.model_validate(current) if current else None,
            history=[CompensationResponse.model_validate(r) for r in history],
        )
    except PayrollException as e:
        raise payroll_http_error(e)


@router.post(
    "/{employee_id}/compensation",
    response_model=CompensationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_compensation(
    employee_id: str,
    request: CompensationCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Record new compensation terms.

    The currently open record is closed the day before ``effective_from``.

    ## Error Responses
    - **404**: Employee not found
    - **400**: Employee terminated, or effective_from not after the open record
    """
    employee_id = parse_uuid(employee_id, "employee_id")
    try:
        record, closed = CompensationService(db).create_compensation(
            ctx.tenant_id, employee_id, request, ctx.actor_id
        )
        return CompensationCreatedResponse(
            compensation_id=record.id,
            effective_from=record.effective_from,
            closed_compensation_id=closed.id if closed else None,
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to create compensation for employee {employee_id}")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to create compensation")


@router.get("/{employee_id}/deductions", response_model=DeductionListResponse)
async def list_employee_deductions(
    employee_id: str,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    employee_id = parse_uuid(employee_id, "employee_id")
    try:
        active, inactive = DeductionService(db).list_deductions(
            ctx.tenant_id, employee_id, include_inactive
        )
        return DeductionListResponse(
            employee_id=employee_id,
            active_deductions=[deduction_response(d) for d in active],
            inactive_deductions=[deduction_response(d) for d in inactive],
        )
    except PayrollException as e:
        raise payroll_http_error(e)


@router.post(
    "/{employee_id}/deductions",
    response_model=DeductionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_employee_deduction(
    employee_id: str,
    request: DeductionCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Enroll an employee in a deduction, benefit or garnishment.

    ## Error Responses
    - **404**: Employee or deduction type not found
    - **400**: Employee terminated
    - **409**: Active enrollment of the same type already exists
    """
    employee_id = parse_uuid(employee_id, "employee_id")
    parse_uuid(request.deduction_type_id, "deduction_type_id")
    try:
        enrollment = DeductionService(db).create_deduction(
            ctx.tenant_id, employee_id, request, ctx.actor_id
        )
        return deduction_response(enrollment)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to enroll employee {employee_id} in deduction")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to create deduction")


@router.patch("/{employee_id}/deductions", response_model=DeductionResponse)
async def update_employee_deduction(
    employee_id: str,
    request: DeductionUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Update or end an enrollment.

    ## Request Body
    - **deduction_id**: Enrollment to change
    - **end_deduction**: End the enrollment as of end_date (default today)
    - Other fields replace the enrollment's terms when given

    ## Error Responses
    - **404**: Employee or enrollment not found
    - **400**: Enrollment has already ended
    """
    employee_id = parse_uuid(employee_id, "employee_id")
    parse_uuid(request.deduction_id, "deduction_id")
    try:
        enrollment = DeductionService(db).update_deduction(
            ctx.tenant_id, employee_id, request, ctx.actor_id
        )
        return deduction_response(enrollment)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to update deduction for employee {employee_id}")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to update deduction")
