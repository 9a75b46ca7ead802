import pytest
from datetime import date

from ..enums.payroll_enums import PayFrequency
from ..exceptions import PayrollNotFoundError, PayrollValidationError
from ..models.payroll_models import PaySchedule
from ..schemas.payroll_schemas import PayScheduleCreate
from ..services.pay_schedule_service import (
    MAX_GENERATED_PERIODS, PayScheduleService, capped_day, generate_period_dates,
)


class TestGeneratePeriodDates:
    """Period boundaries per pay frequency."""

    def test_biweekly_periods_end_day_before_pay_date(self):
        schedule = PaySchedule(frequency=PayFrequency.BIWEEKLY, anchor_date=date(2024, 1, 19))

        periods = generate_period_dates(schedule, 2)

        assert periods == [
            (date(2024, 1, 5), date(2024, 1, 18), date(2024, 1, 19)),
            (date(2024, 1, 19), date(2024, 2, 1), date(2024, 2, 2)),
        ]

    def test_weekly_periods(self):
        schedule = PaySchedule(frequency=PayFrequency.WEEKLY, anchor_date=date(2024, 3, 8))

        periods = generate_period_dates(schedule, 2)

        assert periods[0] == (date(2024, 3, 1), date(2024, 3, 7), date(2024, 3, 8))
        assert periods[1][2] == date(2024, 3, 15)

    def test_semimonthly_halves_with_month_end_pay_day(self):
        schedule = PaySchedule(frequency=PayFrequency.SEMIMONTHLY, anchor_date=date(2024, 2, 1))

        periods = generate_period_dates(schedule, 3)

        assert periods == [
            (date(2024, 2, 1), date(2024, 2, 15), date(2024, 2, 15)),
            (date(2024, 2, 16), date(2024, 2, 29), date(2024, 2, 29)),
            (date(2024, 3, 1), date(2024, 3, 15), date(2024, 3, 15)),
        ]

    def test_semimonthly_starting_second_half(self):
        schedule = PaySchedule(
            frequency=PayFrequency.SEMIMONTHLY,
            anchor_date=date(2024, 12, 20),
            first_pay_day=10,
            second_pay_day=25,
        )

        periods = generate_period_dates(schedule, 2)

        assert periods == [
            (date(2024, 12, 16), date(2024, 12, 31), date(2024, 12, 25)),
            (date(2025, 1, 1), date(2025, 1, 15), date(2025, 1, 10)),
        ]

    def test_monthly_pay_day_capped_to_month_end(self):
        schedule = PaySchedule(
            frequency=PayFrequency.MONTHLY, anchor_date=date(2024, 4, 10), pay_day_of_month=31
        )

        periods = generate_period_dates(schedule, 2)

        assert periods == [
            (date(2024, 4, 1), date(2024, 4, 30), date(2024, 4, 30)),
            (date(2024, 5, 1), date(2024, 5, 31), date(2024, 5, 31)),
        ]

    def test_capped_day(self):
        assert capped_day(2023, 2, 30) == date(2023, 2, 28)
        assert capped_day(2024, 2, 30) == date(2024, 2, 29)
        assert capped_day(2024, 3, 15) == date(2024, 3, 15)


class TestPayScheduleService:
    @pytest.fixture
    def service(self, db_session):
        return PayScheduleService(db_session)

    def test_create_schedule_numbers_periods_per_year(self, service, tenant_id):
        schedule = service.create_schedule(
            tenant_id,
            PayScheduleCreate(
                name="Weekly hourly",
                frequency=PayFrequency.WEEKLY,
                anchor_date=date(2024, 12, 20),
                generate_periods=3,
            ),
        )

        periods = service.list_periods(tenant_id, schedule.id)

        assert [(p.year, p.period_number) for p in periods] == [(2024, 1), (2024, 2), (2025, 1)]
        assert periods[-1].pay_date == date(2025, 1, 3)

    def test_create_schedule_without_periods(self, service, tenant_id):
        schedule = service.create_schedule(
            tenant_id,
            PayScheduleCreate(
                name="Monthly", frequency=PayFrequency.MONTHLY, anchor_date=date(2024, 1, 31)
            ),
        )

        assert service.list_periods(tenant_id, schedule.id) == []

    def test_too_many_periods_rejected(self, service, tenant_id):
        request = PayScheduleCreate(
            name="Weekly", frequency=PayFrequency.WEEKLY, anchor_date=date(2024, 1, 5)
        )
        request.generate_periods = MAX_GENERATED_PERIODS + 1

        with pytest.raises(PayrollValidationError):
            service.create_schedule(tenant_id, request)

    def test_schedule_scoped_to_tenant(self, service, tenant_id, pay_schedule):
        with pytest.raises(PayrollNotFoundError):
            service.get_schedule("99999999-9999-4999-8999-999999999999", pay_schedule.id)

        assert service.get_schedule(tenant_id, pay_schedule.id).id == pay_schedule.id
