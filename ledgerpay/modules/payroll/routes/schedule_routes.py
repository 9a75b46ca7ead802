# ledgerpay/modules/payroll/routes/schedule_routes.py

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ledgerpay.core.database import get_db
from ledgerpay.core.tenant_context import RequestContext, get_request_context, parse_uuid
from ..exceptions import PayrollException
from ..schemas.error_schemas import PayrollErrorCodes
from ..schemas.payroll_schemas import (
    PayPeriodResponse, PayScheduleCreate, PayScheduleResponse,
)
from ..services.pay_schedule_service import PayScheduleService
from .helpers import internal_error, payroll_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=PayScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_pay_schedule(
    request: PayScheduleCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Create a pay schedule, optionally generating its first pay periods.

    ## Request Body
    - **frequency**: weekly, biweekly, semimonthly or monthly
    - **anchor_date**: First pay date (weekly/biweekly) or first month covered
    - **generate_periods**: Number of periods to create (0-52)
    """
    try:
        schedule = PayScheduleService(db).create_schedule(ctx.tenant_id, request, ctx.actor_id)
        return PayScheduleResponse.model_validate(schedule)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create pay schedule")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to create pay schedule")


@router.get("/{schedule_id}", response_model=PayScheduleResponse)
async def get_pay_schedule(
    schedule_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    schedule_id = parse_uuid(schedule_id, "schedule_id")
    try:
        schedule = PayScheduleService(db).get_schedule(ctx.tenant_id, schedule_id)
        return PayScheduleResponse.model_validate(schedule)
    except PayrollException as e:
        raise payroll_http_error(e)


@router.get("/{schedule_id}/periods", response_model=List[PayPeriodResponse])
async def list_pay_periods(
    schedule_id: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    schedule_id = parse_uuid(schedule_id, "schedule_id")
    try:
        periods = PayScheduleService(db).list_periods(ctx.tenant_id, schedule_id)
        return [PayPeriodResponse.model_validate(p) for p in periods]
    except PayrollException as e:
        raise payroll_http_error(e)
