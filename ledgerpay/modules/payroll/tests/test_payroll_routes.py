"""
API tests for the payroll endpoints.

Routes run against the per-test SQLite session through a ``get_db``
override; the tenant comes from the ``X-Tenant-ID`` header.
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from ..services.payroll_run_service import PayrollRunService

BASE = "/api/payroll"


@pytest.fixture
def draft_run_id(client, auth_headers, pay_period):
    response = client.post(
        f"{BASE}/runs", json={"pay_period_id": pay_period.id}, headers=auth_headers
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestRequestValidation:
    """Header, identifier and body validation."""

    def test_health(self, client):
        response = client.get(f"{BASE}/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_missing_tenant_header(self, client):
        response = client.get(f"{BASE}/runs")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_IDENTIFIER"

    def test_malformed_tenant_header(self, client):
        response = client.get(f"{BASE}/runs", headers={"X-Tenant-ID": "tenant-1"})

        assert response.status_code == 400

    def test_malformed_run_id(self, client, auth_headers):
        response = client.get(f"{BASE}/runs/not-a-uuid", headers=auth_headers)

        assert response.status_code == 400
        assert "run_id" in response.json()["detail"]

    def test_unknown_run(self, client, auth_headers):
        response = client.get(
            f"{BASE}/runs/00000000-0000-4000-8000-000000000000", headers=auth_headers
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "PAYROLL_RECORD_NOT_FOUND"

    def test_invalid_body_is_400(self, client, auth_headers, salaried_employee):
        response = client.post(
            f"{BASE}/employees/{salaried_employee.id}/compensation",
            json={"effective_from": "2024-07-01", "pay_type": "salary", "pay_rate": "-1"},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestRunLifecycleRoutes:
    """Create, calculate, approve and post through the API."""

    def test_full_lifecycle(self, client, auth_headers, draft_run_id, salaried_employee, gl_accounts):
        response = client.post(f"{BASE}/runs/{draft_run_id}/calculate", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "calculated"
        assert body["summary"]["total_gross_pay"] == "2000.00"
        assert body["summary"]["total_net_pay"] == "1683.31"
        assert body["anomalies"] == []

        response = client.get(f"{BASE}/runs/{draft_run_id}/employees", headers=auth_headers)
        assert response.status_code == 200
        employee = response.json()["employees"][0]
        assert employee["employee_number"] == salaried_employee.employee_number
        assert {t["tax_type"] for t in employee["taxes"]} == {
            "federal_income", "social_security", "medicare", "futa",
        }

        response = client.post(
            f"{BASE}/runs/{draft_run_id}/approve",
            json={"comment": "Looks right"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "status": "approved", "employee_count": 1}

        response = client.post(f"{BASE}/runs/{draft_run_id}/post", headers=auth_headers)
        assert response.status_code == 200
        posted = response.json()
        assert posted["status"] == "posted"
        assert posted["idempotent"] is False

        response = client.post(f"{BASE}/runs/{draft_run_id}/post", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["idempotent"] is True
        assert response.json()["journal_entry_id"] == posted["journal_entry_id"]

        response = client.get(f"{BASE}/runs/{draft_run_id}", headers=auth_headers)
        assert response.json()["journal_entry_id"] == posted["journal_entry_id"]
        assert response.json()["notes"] == "Approval comment: Looks right"

    def test_duplicate_open_run(self, client, auth_headers, pay_period, draft_run_id):
        response = client.post(
            f"{BASE}/runs", json={"pay_period_id": pay_period.id}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "PAYROLL_RULE_RUN_ALREADY_OPEN"

    def test_bonus_run_calculation_rejected(
        self, client, auth_headers, pay_period, salaried_employee
    ):
        response = client.post(
            f"{BASE}/runs",
            json={"pay_period_id": pay_period.id, "run_type": "bonus"},
            headers=auth_headers,
        )
        run_id = response.json()["id"]

        response = client.post(f"{BASE}/runs/{run_id}/calculate", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "PAYROLL_RULE_UNSUPPORTED_RUN_TYPE"
        run = client.get(f"{BASE}/runs/{run_id}", headers=auth_headers).json()
        assert run["status"] == "draft"

    def test_approve_draft_is_state_conflict(self, client, auth_headers, draft_run_id):
        response = client.post(f"{BASE}/runs/{draft_run_id}/approve", headers=auth_headers)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "RunStateConflictError"
        assert detail["code"] == "PAYROLL_INVALID_RUN_STATE"
        assert detail["context"]["current_status"] == "draft"
        assert detail["context"]["allowed_statuses"] == ["calculated", "reviewing"]

    def test_unacknowledged_negative_net(
        self, client, auth_headers, draft_run_id, salaried_employee,
        deduction_type_factory, enrollment_factory,
    ):
        loan = deduction_type_factory("LOAN")
        enrollment_factory(salaried_employee, loan, amount=Decimal("2500.00"))
        client.post(f"{BASE}/runs/{draft_run_id}/calculate", headers=auth_headers)

        response = client.post(f"{BASE}/runs/{draft_run_id}/approve", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "PAYROLL_ANOMALIES_NOT_ACKNOWLEDGED"

        response = client.post(
            f"{BASE}/runs/{draft_run_id}/approve",
            json={"acknowledge_anomalies": True},
            headers=auth_headers,
        )
        assert response.status_code == 200

    def test_calculation_failure_is_generic_500(self, client, auth_headers, draft_run_id):
        with patch.object(
            PayrollRunService, "calculate_run", side_effect=RuntimeError("db password in here")
        ):
            response = client.post(f"{BASE}/runs/{draft_run_id}/calculate", headers=auth_headers)

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["code"] == "PAYROLL_CALCULATION_FAILED"
        assert "password" not in detail["message"]

    def test_post_without_accounts_keeps_run_approved(
        self, client, auth_headers, draft_run_id, salaried_employee
    ):
        client.post(f"{BASE}/runs/{draft_run_id}/calculate", headers=auth_headers)
        client.post(f"{BASE}/runs/{draft_run_id}/approve", headers=auth_headers)

        response = client.post(f"{BASE}/runs/{draft_run_id}/post", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "PAYROLL_GL_ACCOUNT_UNRESOLVED"
        run = client.get(f"{BASE}/runs/{draft_run_id}", headers=auth_headers).json()
        assert run["status"] == "approved"

    def test_cancel_and_list(self, client, auth_headers, draft_run_id):
        response = client.post(
            f"{BASE}/runs/{draft_run_id}/cancel", json={"reason": "Test"}, headers=auth_headers
        )
        assert response.json()["status"] == "cancelled"

        response = client.get(f"{BASE}/runs", params={"status": "cancelled"}, headers=auth_headers)
        assert [r["id"] for r in response.json()] == [draft_run_id]

    def test_delete_draft(self, client, auth_headers, draft_run_id):
        response = client.delete(f"{BASE}/runs/{draft_run_id}", headers=auth_headers)

        assert response.status_code == 204
        assert client.get(f"{BASE}/runs/{draft_run_id}", headers=auth_headers).status_code == 404


class TestEmployeeRoutes:
    """Compensation and deduction endpoints."""

    def test_compensation_change(self, client, auth_headers, salaried_employee):
        response = client.post(
            f"{BASE}/employees/{salaried_employee.id}/compensation",
            json={
                "effective_from": "2024-07-01",
                "pay_type": "salary",
                "pay_rate": "60000",
                "pay_frequency": "biweekly",
                "change_reason": "annual_review",
            },
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["closed_compensation_id"] is not None

        response = client.get(
            f"{BASE}/employees/{salaried_employee.id}/compensation", headers=auth_headers
        )
        body = response.json()
        assert body["current_compensation"]["effective_from"] == "2024-07-01"
        assert body["history"][1]["effective_to"] == "2024-06-30"

    def test_deduction_enrollment(self, client, auth_headers, salaried_employee, deduction_type_factory):
        retirement = deduction_type_factory()
        payload = {
            "deduction_type_id": retirement.id,
            "effective_from": "2024-01-01",
            "calc_method": "percent_gross",
            "amount": "5",
        }
        url = f"{BASE}/employees/{salaried_employee.id}/deductions"

        response = client.post(url, json=payload, headers=auth_headers)
        assert response.status_code == 201
        enrollment = response.json()
        assert enrollment["deduction_type_code"] == "401K_EE"
        assert enrollment["category"] == "retirement"
        assert enrollment["ytd_year"] is None

        response = client.post(url, json=payload, headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "PAYROLL_DUPLICATE_ENROLLMENT"

        response = client.patch(
            url,
            json={"deduction_id": enrollment["id"], "end_deduction": True, "end_date": "2024-03-31"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = client.get(url, params={"include_inactive": True}, headers=auth_headers)
        body = response.json()
        assert body["active_deductions"] == []
        assert [d["id"] for d in body["inactive_deductions"]] == [enrollment["id"]]

    def test_unknown_employee(self, client, auth_headers):
        response = client.get(
            f"{BASE}/employees/00000000-0000-4000-8000-000000000000/deductions",
            headers=auth_headers,
        )

        assert response.status_code == 404


class TestScheduleAndMappingRoutes:
    def test_create_schedule_with_periods(self, client, auth_headers):
        response = client.post(
            f"{BASE}/schedules",
            json={
                "name": "Biweekly salaried",
                "frequency": "biweekly",
                "anchor_date": "2024-01-19",
                "generate_periods": 3,
            },
            headers=auth_headers,
        )
        assert response.status_code == 201
        schedule_id = response.json()["id"]

        response = client.get(f"{BASE}/schedules/{schedule_id}/periods", headers=auth_headers)
        periods = response.json()
        assert [p["pay_date"] for p in periods] == ["2024-01-19", "2024-02-02", "2024-02-16"]
        assert periods[0]["start_date"] == date(2024, 1, 5).isoformat()

    def test_bootstrap_mappings(self, client, auth_headers, gl_accounts):
        response = client.post(f"{BASE}/gl-mappings/bootstrap", headers=auth_headers)

        assert response.status_code == 200
        assert len(response.json()["created"]) == 4
        assert response.json()["unresolved"] == []

        response = client.get(f"{BASE}/gl-mappings", headers=auth_headers)
        assert len(response.json()) == 4
