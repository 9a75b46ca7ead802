# ledgerpay/modules/payroll/routes/gl_mapping_routes.py

"""
Payroll GL mapping configuration.

Mappings tell the posting generator which ledger accounts to use for
payroll expense and the three payable lines.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ledgerpay.core.database import get_db
from ledgerpay.core.tenant_context import RequestContext, get_request_context, parse_uuid
from ..exceptions import PayrollException
from ..schemas.error_schemas import PayrollErrorCodes
from ..schemas.payroll_schemas import GLMappingCreate, GLMappingResponse
from ..services.gl_posting_service import GLPostingService
from .helpers import internal_error, payroll_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[GLMappingResponse])
async def list_gl_mappings(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    mappings = GLPostingService(db).list_mappings(ctx.tenant_id, include_inactive)
    return [GLMappingResponse.model_validate(m) for m in mappings]


@router.post("", response_model=GLMappingResponse, status_code=status.HTTP_201_CREATED)
async def create_gl_mapping(
    request: GLMappingCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Configure the account for a mapping type.

    The previous active mapping of the same type is deactivated.

    ## Request Body
    - **mapping_type**: payroll_expense, taxes_payable, deductions_payable or net_pay_payable
    - **debit_account_id**: Required for payroll_expense
    - **credit_account_id**: Required for the payable types

    ## Error Responses
    - **404**: Account not found or inactive
    """
    for value, name in (
        (request.debit_account_id, "debit_account_id"),
        (request.credit_account_id, "credit_account_id"),
    ):
        if value:
            parse_uuid(value, name)
    try:
        mapping = GLPostingService(db).create_mapping(ctx.tenant_id, request, ctx.actor_id)
        return GLMappingResponse.model_validate(mapping)
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to create GL mapping")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to create GL mapping")


@router.post("/bootstrap")
async def bootstrap_gl_mappings(
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Create mappings for every type that has none, using the conventional
    account codes found in the tenant's chart of accounts.

    ## Response
    - **created**: Mappings created by this call
    - **unresolved**: Mapping types with no matching account
    """
    try:
        created, unresolved = GLPostingService(db).bootstrap_mappings(ctx.tenant_id, ctx.actor_id)
        return {
            "success": True,
            "created": [GLMappingResponse.model_validate(m).model_dump(mode="json") for m in created],
            "unresolved": unresolved,
        }
    except PayrollException as e:
        raise payroll_http_error(e)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Failed to bootstrap GL mappings")
        raise internal_error(PayrollErrorCodes.DATABASE_ERROR, "Failed to bootstrap GL mappings")
