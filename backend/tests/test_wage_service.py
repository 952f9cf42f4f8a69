# Overview: Pytest coverage for trip wage settlement and reversal.

"""
Trip Wage Tests

Settlement writes one employee ledger entry per worker and role and records
the trip in each worker's monthly attendance. Reversal undoes both. The
test app uses a ledger batch size of 2 so three workers span two chunks.
"""

from datetime import date, datetime

import pytest
from conftest import ACTOR
from tripflow.models import AttendanceRecord, LedgerEntry, TripWage
from tripflow.services import ledger_service, memo_service, wage_service
from tripflow.services.wage_service import WageAlreadyProcessedError, WageSettlementError
from tripflow.validation import NotFoundError, ValidationError


# Paid in the next fiscal year for a trip run in May 2024
PAYMENT_DATE = datetime(2025, 4, 5, 10, 0)


def _wage(memo, *, loading=(31, 32), unloading=(33,), loading_cents=60000, unloading_cents=30000):
    return wage_service.create_trip_wage(
        delivery_memo_id=memo.id,
        loading_employee_ids=list(loading),
        unloading_employee_ids=list(unloading),
        loading_wages_cents=loading_cents,
        unloading_wages_cents=unloading_cents,
        created_by=ACTOR,
    )


def _attendance(db_session, org_id, employee_id):
    return db_session.query(AttendanceRecord).filter_by(
        organization_id=org_id, employee_id=employee_id
    ).first()


def _employee_balance(org_id, employee_id):
    return ledger_service.get_balance(
        organization_id=org_id, ledger_type=ledger_service.LEDGER_EMPLOYEE, party_id=employee_id
    )


@pytest.fixture
def second_memo(db_session, cod_trip):
    """Memo for a second trip on the same day as the first."""
    result = memo_service.generate_dispatch_memo(cod_trip.id, ACTOR)
    return memo_service.get_memo(result["memo_id"])


class TestCreateTripWage:
    def test_rates_are_split_per_worker(self, db_session, org, trip, memo):
        wage = _wage(memo)

        assert wage.organization_id == org.id
        assert wage.trip_id == trip.id
        assert wage.dm_id == "DM/FY2425/1"
        assert wage.loading_wage_per_employee_cents == 30000
        assert wage.unloading_wage_per_employee_cents == 30000
        assert wage.total_wage_cents == 90000
        assert wage.status == wage_service.WAGE_STATUS_PENDING

    def test_split_rounds_down(self, db_session, memo):
        wage = _wage(memo, loading=(31, 32, 34), loading_cents=10000)
        assert wage.loading_wage_per_employee_cents == 3333

    def test_needs_a_worker(self, db_session, memo):
        with pytest.raises(ValidationError):
            _wage(memo, loading=(), unloading=())

    def test_unknown_memo(self, db_session, org):
        with pytest.raises(NotFoundError):
            wage_service.create_trip_wage(
                delivery_memo_id=99999, loading_employee_ids=[31], unloading_employee_ids=[],
            )


class TestSettleTripWage:
    def test_settle_writes_entries_and_attendance(self, db_session, org, memo):
        wage = _wage(memo)

        result = wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        assert len(result["entry_ids"]) == 3
        assert result["financial_year"] == "FY2425"
        assert result["year_month"] == "2024-05"

        entries = db_session.query(LedgerEntry).filter_by(trip_wage_id=wage.id).order_by(LedgerEntry.id).all()
        assert [e.party_id for e in entries] == [31, 32, 33]
        assert [e.task_type for e in entries] == ["loading", "loading", "unloading"]
        # Entries follow the payment date; attendance follows the trip date
        assert {e.financial_year for e in entries} == {"FY2526"}
        assert {e.category for e in entries} == {ledger_service.CATEGORY_WAGE_CREDIT}
        assert _employee_balance(org.id, 31) == 30000

        record = _attendance(db_session, org.id, 31)
        assert record.financial_year == "FY2425"
        assert record.year_month == "2024-05"
        assert record.total_days_present == 1
        assert record.total_trips_worked == 1
        assert record.days[0].date == date(2024, 5, 10)
        assert record.days[0].trip_wage_ids == [wage.id]

        wage = wage_service.get_trip_wage(wage.id)
        assert wage.status == wage_service.WAGE_STATUS_PROCESSED
        assert wage.wage_entry_ids == result["entry_ids"]
        assert wage.processed_by == ACTOR

    def test_worker_in_both_roles(self, db_session, org, memo):
        wage = _wage(memo, loading=(31,), unloading=(31,))

        result = wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        assert len(result["entry_ids"]) == 2
        assert _employee_balance(org.id, 31) == 90000
        record = _attendance(db_session, org.id, 31)
        assert record.total_trips_worked == 1

    def test_settle_twice_is_rejected(self, db_session, memo):
        wage = _wage(memo)
        wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        with pytest.raises(WageSettlementError):
            wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        assert db_session.query(LedgerEntry).count() == 3

    def test_wage_settled_in_the_meantime_writes_nothing(self, db_session, monkeypatch, memo):
        wage = _wage(memo)
        wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        # Caller read the wage while it was still pending
        monkeypatch.setattr(wage_service, "_check_settleable", lambda wage: None)

        with pytest.raises(WageAlreadyProcessedError) as exc_info:
            wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        assert exc_info.value.entry_ids == []
        assert db_session.query(LedgerEntry).count() == 3

    def test_attendance_record_created_concurrently_is_reused(self, db_session, monkeypatch, org, memo, second_memo):
        first = _wage(memo, loading=(31,), unloading=(), loading_cents=10000, unloading_cents=0)
        second = _wage(second_memo, loading=(31,), unloading=(), loading_cents=20000, unloading_cents=0)
        wage_service.settle_trip_wage(first.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        # Read taken before the first settlement committed its record
        monkeypatch.setattr(
            wage_service, "_lock_attendance",
            lambda organization_id, employee_ids, fy, year_month: {e: None for e in employee_ids},
        )

        wage_service.settle_trip_wage(second.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        assert db_session.query(AttendanceRecord).filter_by(employee_id=31).count() == 1
        record = _attendance(db_session, org.id, 31)
        assert record.total_trips_worked == 2
        assert record.days[0].trip_wage_ids == [first.id, second.id]
        assert wage_service.get_trip_wage(second.id).status == wage_service.WAGE_STATUS_PROCESSED

    def test_settle_without_rates_is_rejected(self, db_session, memo):
        wage = _wage(memo, loading_cents=None, unloading_cents=None)

        with pytest.raises(WageSettlementError, match="does not have calculated wages"):
            wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        assert db_session.query(LedgerEntry).count() == 0

    def test_settle_unknown_wage(self, db_session, org):
        with pytest.raises(NotFoundError):
            wage_service.settle_trip_wage(99999, payment_date=PAYMENT_DATE, actor_id=ACTOR)

    def test_two_trips_same_day_count_once_as_present(self, db_session, org, memo, second_memo):
        first = _wage(memo)
        second = _wage(second_memo, loading=(31,), unloading=(), loading_cents=20000, unloading_cents=0)

        wage_service.settle_trip_wage(first.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        wage_service.settle_trip_wage(second.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        record = _attendance(db_session, org.id, 31)
        assert record.total_days_present == 1
        assert record.total_trips_worked == 2
        assert len(record.days) == 1
        assert record.days[0].number_of_trips == 2
        assert record.days[0].trip_wage_ids == [first.id, second.id]

    def test_failure_reports_created_entries(self, db_session, monkeypatch, memo):
        wage = _wage(memo)

        def broken_lock(*args, **kwargs):
            raise RuntimeError("attendance store unavailable")

        monkeypatch.setattr(wage_service, "_lock_attendance", broken_lock)

        with pytest.raises(WageSettlementError) as exc_info:
            wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        assert len(exc_info.value.entry_ids) == 3
        assert wage_service.get_trip_wage(wage.id).status == wage_service.WAGE_STATUS_PENDING
        assert db_session.query(AttendanceRecord).count() == 0

    def test_rerun_after_failure_reuses_entries(self, db_session, monkeypatch, memo):
        wage = _wage(memo)
        monkeypatch.setattr(wage_service, "_lock_attendance", lambda *a, **k: 1 / 0)
        with pytest.raises(WageSettlementError) as exc_info:
            wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        monkeypatch.undo()

        result = wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        assert result["entry_ids"] == exc_info.value.entry_ids
        assert db_session.query(LedgerEntry).count() == 3


class TestRevertTripWage:
    def test_revert_removes_entries_attendance_and_wage(self, db_session, org, memo):
        wage = _wage(memo)
        wage_id = wage.id
        wage_service.settle_trip_wage(wage_id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        result = wage_service.revert_trip_wage(wage_id)

        assert result == {"trip_wage_id": wage_id, "entry_count": 3, "deleted_entries": 3}
        assert db_session.query(LedgerEntry).count() == 0
        assert db_session.query(AttendanceRecord).count() == 0
        assert db_session.query(TripWage).filter_by(id=wage_id).first() is None
        assert _employee_balance(org.id, 31) == 0

    def test_revert_keeps_other_wages_of_the_day(self, db_session, org, memo, second_memo):
        first = _wage(memo)
        second = _wage(second_memo, loading=(31,), unloading=(), loading_cents=20000, unloading_cents=0)
        first_id, second_id = first.id, second.id
        wage_service.settle_trip_wage(first_id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        wage_service.settle_trip_wage(second_id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        wage_service.revert_trip_wage(first_id)

        db_session.expire_all()
        record = _attendance(db_session, org.id, 31)
        assert record.total_days_present == 1
        assert record.total_trips_worked == 1
        assert record.days[0].trip_wage_ids == [second_id]
        assert record.days[0].number_of_trips == 1
        # Workers only on the reverted wage lose their record
        assert _attendance(db_session, org.id, 32) is None
        assert _employee_balance(org.id, 31) == 20000

    def test_revert_cleans_up_failed_settlement(self, db_session, monkeypatch, memo):
        wage = _wage(memo)
        wage_id = wage.id
        monkeypatch.setattr(wage_service, "_lock_attendance", lambda *a, **k: 1 / 0)
        with pytest.raises(WageSettlementError):
            wage_service.settle_trip_wage(wage_id, payment_date=PAYMENT_DATE, actor_id=ACTOR)
        monkeypatch.undo()

        result = wage_service.revert_trip_wage(wage_id)

        assert result["deleted_entries"] == 3
        assert db_session.query(LedgerEntry).count() == 0
        assert db_session.query(TripWage).filter_by(id=wage_id).first() is None

    def test_revert_unknown_wage(self, db_session, org):
        with pytest.raises(NotFoundError):
            wage_service.revert_trip_wage(99999)


class TestDeleteTripWage:
    def test_delete_pending_wage(self, db_session, memo):
        wage = _wage(memo)
        assert wage_service.delete_trip_wage(wage.id) is True
        assert wage_service.delete_trip_wage(wage.id) is False

    def test_processed_wage_must_be_reverted(self, db_session, memo):
        wage = _wage(memo)
        wage_service.settle_trip_wage(wage.id, payment_date=PAYMENT_DATE, actor_id=ACTOR)

        with pytest.raises(WageSettlementError):
            wage_service.delete_trip_wage(wage.id)
