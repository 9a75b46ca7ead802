# ledgerpay/modules/payroll/routes/run_routes.py

"""
Payroll run lifecycle API endpoints.

Runs move draft -> calculated -> reviewing -> approved -> posted; each
transition is a POST on the run so retries are explicit.
"""

import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ledgerpay.core.database import get_db
from ledgerpay.core.tenant_context import RequestContext, get_request_context, parse_uuid
from ledgerpay.modules.ledger.exceptions import LedgerError
from ..enums.payroll_enums import PayrollRunStatus
from ..exceptions import PayrollException
from ..schemas.error_schemas import PayrollErrorCodes
from ..schemas.payroll_schemas import (
    ApproveRunRequest, ApproveRunResponse, CalculateRunResponse, CancelRunRequest,
    PayrollRunCreate, PayrollRunResponse, PayrollRunUpdate, PostRunResponse,
    RunEmployeesResponse, RunSummaryResponse, RunTransitionResponse,
)
from ..services.payroll_run_service import PayrollRunService
from .helpers import internal_error, payroll_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=PayrollRunResponse, status_code=status.HTTP_201_CREATED)
async def create_payroll_run(
    request: PayrollRunCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Create a draft payroll run for a pay period.

    ## Request Body
    - **pay_period_id**: Pay period the run belongs to
    - **run_type**: regular (default), bonus, correction or final
    - **notes**: Optional notes

    ## Error Responses
    - **404**: Pay period not found
    - **400**: Pay period already has an open regular run
    """
    parse_uuid(request.pay_period_id, "pay_period_id")
    try:
        run = PayrollRunService(db).create_run(ctx.tenant_id, request, ctx.actor_id)
        return PayrollRunResponse.model_validate(run)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create payroll run")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to create payroll run")


@router.get("", response_model=List[PayrollRunResponse])
async def list_payroll_runs(
    run_status: Optional[PayrollRunStatus] = Query(None, alias="status"),
    pay_period_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """List runs for the tenant, newest first."""
    if pay_period_id:
        pay_period_id = parse_uuid(pay_period_id, "pay_period_id")
    runs = PayrollRunService(db).list_runs(ctx.tenant_id, run_status, pay_period_id, limit)
    return [PayrollRunResponse.model_validate(r) for r in runs]


@router.get("/{run_id}", response_model=PayrollRunResponse)
async def get_payroll_run(
    run_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    run_id = parse_uuid(run_id, "run_id")
    try:
        run = PayrollRunService(db).get_run(ctx.tenant_id, run_id)
        return PayrollRunResponse.model_validate(run)
    except PayrollException as e:
        raise payroll_http_error(e)


@router.patch("/{run_id}", response_model=PayrollRunResponse)
async def update_payroll_run(
    run_id: str,
    request: PayrollRunUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Update notes on a draft run."""
    run_id = parse_uuid(run_id, "run_id")
    try:
        run = PayrollRunService(db).update_run(ctx.tenant_id, run_id, request, ctx.actor_id)
        return PayrollRunResponse.model_validate(run)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to update payroll run {run_id}")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to update payroll run")


@router.delete("/{run_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payroll_run(
    run_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Delete a draft run. Runs past draft can only be cancelled."""
    run_id = parse_uuid(run_id, "run_id")
    try:
        PayrollRunService(db).delete_run(ctx.tenant_id, run_id, ctx.actor_id)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to delete payroll run {run_id}")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to delete payroll run")


@router.post("/{run_id}/calculate", response_model=CalculateRunResponse)
async def calculate_payroll_run(
    run_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Calculate gross-to-net for every active, compensated employee.

    Recalculating a calculated run replaces its employee results.

    ## Response
    - **summary**: Run totals and counts
    - **anomalies**: Per-employee anomalies (negative_net, large_change)

    ## Error Responses
    - **404**: Run not found
    - **400**: Run is not draft or calculated
    - **500**: Calculation failed; the run keeps its prior status
    """
    run_id = parse_uuid(run_id, "run_id")
    try:
        run, summary, anomalies = PayrollRunService(db).calculate_run(
            ctx.tenant_id, run_id, ctx.actor_id
        )
        return CalculateRunResponse(
            success=True,
            status=run.status,
            summary=RunSummaryResponse(**asdict(summary)),
            anomalies=anomalies,
        )
    except (PayrollException, LedgerError) as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Calculation failed for payroll run {run_id}")
        raise internal_error(PayrollErrorCodes.CALCULATION_FAILED, "Payroll calculation failed")


@router.post("/{run_id}/review", response_model=RunTransitionResponse)
async def review_payroll_run(
    run_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    run_id = parse_uuid(run_id, "run_id")
    try:
        run = PayrollRunService(db).review_run(ctx.tenant_id, run_id, ctx.actor_id)
        return RunTransitionResponse(success=True, status=run.status)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to start review of payroll run {run_id}")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to start review")


@router.post("/{run_id}/approve", response_model=ApproveRunResponse)
async def approve_payroll_run(
    run_id: str,
    request: Optional[ApproveRunRequest] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Approve a calculated or reviewed run.

    ## Request Body
    - **comment**: Optional approval comment, appended to the run notes
    - **acknowledge_anomalies**: Required when any employee has negative net pay

    ## Error Responses
    - **400**: Wrong status, no employees, or unacknowledged negative net pay
    """
    run_id = parse_uuid(run_id, "run_id")
    request = request or ApproveRunRequest()
    try:
        run = PayrollRunService(db).approve_run(ctx.tenant_id, run_id, request, ctx.actor_id)
        return ApproveRunResponse(
            success=True, status=run.status, employee_count=run.employee_count
        )
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to approve payroll run {run_id}")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to approve payroll run")


@router.post("/{run_id}/post", response_model=PostRunResponse)
async def post_payroll_run(
    run_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Post an approved run to the general ledger.

    Safe to retry: a run that is already posted returns its journal entry
    with ``idempotent`` set.

    ## Error Responses
    - **400**: Run is not approved
    - **500**: GL account unresolved or journal unbalanced; the run stays approved
    """
    run_id = parse_uuid(run_id, "run_id")
    try:
        outcome = PayrollRunService(db).post_run(ctx.tenant_id, run_id, ctx.actor_id)
        return PostRunResponse(
            success=True,
            status=outcome.run.status,
            journal_entry_id=outcome.journal_entry_id,
            transaction_set_id=outcome.transaction_set_id,
            idempotent=outcome.idempotent,
        )
    except (PayrollException, LedgerError) as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Posting failed for payroll run {run_id}")
        raise internal_error(PayrollErrorCodes.POSTING_FAILED, "Payroll posting failed")


@router.post("/{run_id}/cancel", response_model=RunTransitionResponse)
async def cancel_payroll_run(
    run_id: str,
    request: Optional[CancelRunRequest] = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    run_id = parse_uuid(run_id, "run_id")
    request = request or CancelRunRequest()
    try:
        run = PayrollRunService(db).cancel_run(ctx.tenant_id, run_id, request, ctx.actor_id)
        return RunTransitionResponse(success=True, status=run.status)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to cancel payroll run {run_id}")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to cancel payroll run")


@router.get("/{run_id}/employees", response_model=RunEmployeesResponse)
async def get_payroll_run_employees(
    run_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Per-employee results with nested earnings, taxes and deductions."""
    run_id = parse_uuid(run_id, "run_id")
    try:
        run, employees = PayrollRunService(db).get_run_employees(ctx.tenant_id, run_id)
        return RunEmployeesResponse(run_id=run.id, status=run.status, employees=employees)
    except PayrollException as e:
        raise payroll_http_error(e)
