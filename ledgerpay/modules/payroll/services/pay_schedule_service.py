import calendar
import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ledgerpay.core.audit_logger import AuditContext
from ..enums.payroll_enums import PayFrequency, PayPeriodStatus
from ..exceptions import PayrollNotFoundError, PayrollValidationError
from ..models.payroll_models import PayPeriod, PaySchedule
from ..schemas.payroll_schemas import PayScheduleCreate

logger = logging.getLogger(__name__)

MAX_GENERATED_PERIODS = 52


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def capped_day(year: int, month: int, day: int) -> date:
    """``day`` of the month, or the last day when the month is shorter."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _next_month(year: int, month: int) -> Tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def generate_period_dates(schedule: PaySchedule, count: int) -> List[Tuple[date, date, date]]:
    """
    (start, end, pay_date) for the next ``count`` periods of a schedule.

    Weekly and biweekly periods end the day before each pay date, starting
    from the anchor pay date. Semimonthly periods run 1-15 and 16 to month
    end. Monthly periods cover the calendar month. Pay days past the end of
    a month fall on its last day.
    """
    frequency = PayFrequency(schedule.frequency)
    anchor = schedule.anchor_date
    periods: List[Tuple[date, date, date]] = []

    if frequency in (PayFrequency.WEEKLY, PayFrequency.BIWEEKLY):
        length = 7 if frequency == PayFrequency.WEEKLY else 14
        for i in range(count):
            pay_date = anchor + timedelta(days=length * i)
            end = pay_date - timedelta(days=1)
            start = end - timedelta(days=length - 1)
            periods.append((start, end, pay_date))
        return periods

    year, month = anchor.year, anchor.month

    if frequency == PayFrequency.SEMIMONTHLY:
        first_day = schedule.first_pay_day or 15
        second_day = schedule.second_pay_day or 31
        second_half = anchor.day > 15
        while len(periods) < count:
            if not second_half:
                start = date(year, month, 1)
                end = date(year, month, 15)
                pay_date = capped_day(year, month, first_day)
            else:
                start = date(year, month, 16)
                end = month_end(year, month)
                pay_date = capped_day(year, month, second_day)
                year, month = _next_month(year, month)
            periods.append((start, end, pay_date))
            second_half = not second_half
        return periods

    pay_day = schedule.pay_day_of_month or 31
    for _ in range(count):
        periods.append((date(year, month, 1), month_end(year, month), capped_day(year, month, pay_day)))
        year, month = _next_month(year, month)
    return periods


class PayScheduleService:
    def __init__(self, db_session: Session):
        self.db = db_session

    def create_schedule(
        self, tenant_id: str, request: PayScheduleCreate, actor_id: Optional[str] = None
    ) -> PaySchedule:
        if request.generate_periods > MAX_GENERATED_PERIODS:
            raise PayrollValidationError(
                f"At most {MAX_GENERATED_PERIODS} periods can be generated", field="generate_periods"
            )
        try:
            schedule = PaySchedule(
                tenant_id=tenant_id,
                name=request.name,
                frequency=request.frequency,
                anchor_date=request.anchor_date,
                first_pay_day=request.first_pay_day,
                second_pay_day=request.second_pay_day,
                pay_day_of_month=request.pay_day_of_month,
                is_active=True,
            )
            self.db.add(schedule)
            self.db.flush()

            if request.generate_periods:
                self._add_periods(schedule, request.generate_periods)

            AuditContext(self.db, tenant_id, actor_id).log(
                "pay_schedule",
                schedule.id,
                "pay_schedule_created",
                {"frequency": request.frequency.value, "periods": request.generate_periods},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(schedule)
        logger.info(
            f"Created pay schedule {schedule.id} ({schedule.frequency.value}) "
            f"with {request.generate_periods} periods"
        )
        return schedule

    def get_schedule(self, tenant_id: str, schedule_id: str) -> PaySchedule:
        schedule = (
            self.db.query(PaySchedule)
            .filter(PaySchedule.id == schedule_id, PaySchedule.tenant_id == tenant_id)
            .first()
        )
        if not schedule:
            raise PayrollNotFoundError("Pay schedule", schedule_id)
        return schedule

    def list_periods(self, tenant_id: str, schedule_id: str) -> List[PayPeriod]:
        self.get_schedule(tenant_id, schedule_id)
        return (
            self.db.query(PayPeriod)
            .filter(PayPeriod.tenant_id == tenant_id, PayPeriod.pay_schedule_id == schedule_id)
            .order_by(PayPeriod.start_date)
            .all()
        )

    def _add_periods(self, schedule: PaySchedule, count: int) -> List[PayPeriod]:
        counters: Dict[int, int] = {}
        created = []
        for start, end, pay_date in generate_period_dates(schedule, count):
            year = pay_date.year
            counters[year] = counters.get(year, 0) + 1
            period = PayPeriod(
                tenant_id=schedule.tenant_id,
                pay_schedule_id=schedule.id,
                period_number=counters[year],
                year=year,
                start_date=start,
                end_date=end,
                pay_date=pay_date,
                status=PayPeriodStatus.UPCOMING,
            )
            self.db.add(period)
            created.append(period)
        self.db.flush()
        return created
