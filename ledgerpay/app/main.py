import logging

from fastapi import FastAPI

from ledgerpay.core.config import settings
from ledgerpay.core.exceptions import register_exception_handlers

# Models must be imported so their tables are registered on Base.metadata
from ledgerpay.core import audit_logger  # noqa: F401
from ledgerpay.modules.ledger import models as ledger_models  # noqa: F401
from ledgerpay.modules.payroll import models as payroll_models  # noqa: F401

# ========== Payroll ==========
from ledgerpay.modules.payroll.routes import payroll_router

logger = logging.getLogger(__name__)


def configure_logging():
    """Configure root logging from settings"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


configure_logging()

app = FastAPI(
    title="LedgerPay - Payroll Processing API",
    description="""
    Payroll calculation and general ledger posting.

    ## Features

    * **Payroll Runs** - Calculate, review, approve and post payroll per pay period
    * **Tax Withholding** - Federal, state, Social Security, Medicare and FUTA
    * **Deductions** - Benefits, voluntary deductions and prioritised garnishments
    * **GL Posting** - Balanced journal entries with configurable account mappings
    """,
    version="1.0.0",
)

register_exception_handlers(app)

app.include_router(payroll_router)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting LedgerPay in {settings.environment.upper()} mode")


@app.get("/")
def read_root():
    return {"message": "LedgerPay payroll service is running"}
