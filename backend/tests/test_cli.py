# Overview: Pytest coverage for the operator CLI.

from datetime import datetime

from conftest import ACTOR
from tripflow.models import Organization, TripWage
from tripflow.services import sequence_service, wage_service


def test_orgs_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["orgs", "create", "--name", "Acme Logistics", "--code", "ACME"])
    assert "PASS Created organization" in result.output
    assert db_session.query(Organization).filter_by(code="ACME").count() == 1

    result = runner.invoke(args=["orgs", "create", "--name", "Other", "--code", "ACME"])
    assert "FAIL" in result.output

    result = runner.invoke(args=["orgs", "list"])
    assert "Acme Logistics" in result.output


def test_sequences_show(app, db_session, org):
    sequence_service.increment_and_get_next(org.id, "FY2425")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["sequences", "show", "--org-id", str(org.id)])

    assert "FY2425" in result.output
    assert "DM/FY2425/2" in result.output


def test_wages_revert(app, db_session, memo):
    wage = wage_service.create_trip_wage(
        delivery_memo_id=memo.id,
        loading_employee_ids=[31],
        unloading_employee_ids=[],
        loading_wages_cents=10000,
        unloading_wages_cents=0,
        created_by=ACTOR,
    )
    wage_id = wage.id
    wage_service.settle_trip_wage(wage_id, payment_date=datetime(2024, 5, 12), actor_id=ACTOR)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["wages", "revert", "--id", str(wage_id)])

    assert "PASS Reverted trip wage" in result.output
    assert "1/1 ledger entries deleted" in result.output
    assert db_session.query(TripWage).filter_by(id=wage_id).first() is None

    result = runner.invoke(args=["wages", "revert", "--id", str(wage_id)])
    assert "FAIL" in result.output
