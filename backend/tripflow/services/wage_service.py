# Overview: Service-layer operations for trip wages; encapsulates business logic and database work.

"""
Trip wage settlement.

WHY: A returned trip pays its loading and unloading crew. Settlement writes
one employee ledger entry per worker and role, then records the trip in
each worker's monthly attendance. Reversal undoes both.

FLOW (settle):
1. Trip date = memo scheduled date (payment date as fallback); it selects
   the attendance fiscal year and month. Ledger entries use the fiscal year
   of the payment date.
2. Ledger entries are written per role in chunks of LEDGER_BATCH_SIZE,
   one commit per chunk. Entry keys make a re-run reuse earlier entries.
3. One transaction reads every affected attendance record, then updates
   them and marks the wage PROCESSED.

A failure after some chunks committed raises WageSettlementError listing
the created entry ids. The wage stays PENDING; revert_trip_wage cleans up.
A request that finds the wage already PROCESSED raises
WageAlreadyProcessedError without entry ids: the entries belong to the
settlement that won.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import AttendanceDay, AttendanceRecord, DeliveryMemo, TripWage
from ..validation import NotFoundError, ValidationError
from tripflow.time_utils import normalize_date, utcnow
from . import ledger_service
from .concurrency import chunked, lock_for_update, run_with_retry
from .financial_year import get_financial_context


WAGE_STATUS_PENDING = "PENDING"
WAGE_STATUS_PROCESSED = "PROCESSED"

TASK_LOADING = "loading"
TASK_UNLOADING = "unloading"


class WageSettlementError(Exception):
    """Raised when a trip wage cannot be settled or reverted."""

    def __init__(self, message: str, *, entry_ids: list[int] | None = None):
        super().__init__(message)
        self.entry_ids = list(entry_ids or [])


class WageAlreadyProcessedError(WageSettlementError):
    """The wage was settled, possibly by a concurrent request; its entries are not ours to revert."""


def _batch_size() -> int:
    return int(current_app.config.get("LEDGER_BATCH_SIZE", 500))


def _unique(ids) -> list[int]:
    return list(dict.fromkeys(ids or []))


def _per_employee(total_cents: int | None, count: int) -> int | None:
    if total_cents is None:
        return None
    if count == 0:
        return 0
    return total_cents // count


def get_trip_wage(trip_wage_id: int) -> TripWage:
    wage = db.session.query(TripWage).filter_by(id=trip_wage_id).first()
    if not wage:
        raise NotFoundError(f"Trip wage {trip_wage_id} not found")
    return wage


# =============================================================================
# CREATE / DELETE
# =============================================================================

def create_trip_wage(
    *,
    delivery_memo_id: int,
    loading_employee_ids: list[int],
    unloading_employee_ids: list[int],
    loading_wages_cents: int | None = None,
    unloading_wages_cents: int | None = None,
    created_by: str | None = None,
) -> TripWage:
    """
    Record a wage for a delivery memo.

    When a role's total is given the per-employee rate is total // workers;
    otherwise both stay null and the wage cannot be settled yet.
    """
    memo = db.session.query(DeliveryMemo).filter_by(id=delivery_memo_id).first()
    if not memo:
        raise NotFoundError(f"Delivery memo {delivery_memo_id} not found")

    loading = _unique(loading_employee_ids)
    unloading = _unique(unloading_employee_ids)
    if not loading and not unloading:
        raise ValidationError("At least one loading or unloading employee is required")

    total = None
    if loading_wages_cents is not None or unloading_wages_cents is not None:
        total = (loading_wages_cents or 0) + (unloading_wages_cents or 0)

    wage = TripWage(
        organization_id=memo.organization_id,
        delivery_memo_id=memo.id,
        dm_id=memo.dm_id,
        trip_id=memo.trip_id,
        loading_employee_ids=loading,
        unloading_employee_ids=unloading,
        total_wage_cents=total,
        loading_wages_cents=loading_wages_cents,
        unloading_wages_cents=unloading_wages_cents,
        loading_wage_per_employee_cents=_per_employee(loading_wages_cents, len(loading)),
        unloading_wage_per_employee_cents=_per_employee(unloading_wages_cents, len(unloading)),
        status=WAGE_STATUS_PENDING,
        wage_entry_ids=[],
        created_by=created_by,
    )
    db.session.add(wage)
    db.session.commit()
    current_app.logger.info("Trip wage %s recorded for %s", wage.id, memo.dm_id)
    return wage


def delete_trip_wage(trip_wage_id: int) -> bool:
    """Delete an unprocessed wage. A missing wage counts as deleted."""
    wage = db.session.query(TripWage).filter_by(id=trip_wage_id).first()
    if not wage:
        current_app.logger.info("Trip wage %s not found, considered deleted", trip_wage_id)
        return False
    if wage.status == WAGE_STATUS_PROCESSED:
        raise WageSettlementError(f"Trip wage {trip_wage_id} is processed; revert it instead")

    db.session.delete(wage)
    db.session.commit()
    current_app.logger.info("Trip wage %s deleted", trip_wage_id)
    return True


# =============================================================================
# SETTLE
# =============================================================================

def _check_settleable(wage: TripWage) -> None:
    if wage.status == WAGE_STATUS_PROCESSED:
        raise WageAlreadyProcessedError(f"Trip wage {wage.id} has already been processed")
    if not wage.organization_id:
        raise WageSettlementError("Trip wage is missing organization_id")
    if not wage.dm_id:
        raise WageSettlementError("Trip wage is missing its delivery memo reference")
    if not wage.loading_employee_ids and not wage.unloading_employee_ids:
        raise WageSettlementError("Trip wage must have at least one employee (loading or unloading)")
    if (
        wage.loading_wage_per_employee_cents is None
        or wage.unloading_wage_per_employee_cents is None
    ):
        raise WageSettlementError("Trip wage does not have calculated wages")


def _trip_date(wage: TripWage, fallback: datetime | None):
    memo = wage.delivery_memo
    if memo is not None and memo.scheduled_date is not None:
        return normalize_date(memo.scheduled_date)
    return normalize_date(fallback or utcnow())


def _write_entry_chunk(
    *,
    trip_wage_id: int,
    organization_id: int,
    dm_id: str,
    task_type: str,
    employee_ids: list[int],
    rate_cents: int,
    financial_year: str,
    payment_date: datetime,
    actor_id: str,
) -> list[int]:
    def _op() -> list[int]:
        created = []
        for employee_id in employee_ids:
            entry = ledger_service.create_entry(
                organization_id=organization_id,
                ledger_type=ledger_service.LEDGER_EMPLOYEE,
                party_id=employee_id,
                entry_type=ledger_service.ENTRY_CREDIT,
                category=ledger_service.CATEGORY_WAGE_CREDIT,
                amount_cents=rate_cents,
                financial_year=financial_year,
                idempotency_key=ledger_service.wage_entry_key(trip_wage_id, task_type, employee_id),
                trip_wage_id=trip_wage_id,
                dm_id=dm_id,
                task_type=task_type,
                description=f"Trip wage - {task_type.capitalize()} (DM: {dm_id})",
                payment_date=payment_date,
                created_by=actor_id,
            )
            created.append(entry.id)
        db.session.commit()
        return created

    return run_with_retry(_op)


def _lock_attendance(organization_id: int, employee_ids: list[int], fy: str, year_month: str) -> dict:
    records = {}
    for employee_id in employee_ids:
        records[employee_id] = lock_for_update(
            db.session.query(AttendanceRecord).filter_by(
                organization_id=organization_id,
                employee_id=employee_id,
                financial_year=fy,
                year_month=year_month,
            )
        ).first()
    return records


def _get_or_create_attendance(organization_id: int, employee_id: int, fy: str, year_month: str) -> AttendanceRecord:
    """
    Create a missing monthly record inside a SAVEPOINT. A concurrent
    settlement that created it first wins the unique constraint and its
    record is used instead.
    """
    record = AttendanceRecord(
        organization_id=organization_id,
        employee_id=employee_id,
        financial_year=fy,
        year_month=year_month,
        total_days_present=0,
        total_trips_worked=0,
    )
    try:
        with db.session.begin_nested():
            db.session.add(record)
    except IntegrityError:
        record = lock_for_update(
            db.session.query(AttendanceRecord).filter_by(
                organization_id=organization_id,
                employee_id=employee_id,
                financial_year=fy,
                year_month=year_month,
            )
        ).first()
        if record is None:
            raise
    return record


def _claim_for_settlement(trip_wage_id: int) -> None:
    def _op() -> None:
        locked = lock_for_update(db.session.query(TripWage).filter_by(id=trip_wage_id)).first()
        if not locked:
            raise NotFoundError(f"Trip wage {trip_wage_id} not found")
        if locked.status == WAGE_STATUS_PROCESSED:
            raise WageAlreadyProcessedError(f"Trip wage {trip_wage_id} has already been processed")
        db.session.rollback()

    run_with_retry(_op)


def settle_trip_wage(trip_wage_id: int, *, payment_date: datetime, actor_id: str) -> dict:
    """
    SettleTripWage: pay every worker of a wage and record attendance.

    Returns {"trip_wage_id", "entry_ids", "financial_year", "year_month"}.
    """
    if payment_date is None:
        raise ValidationError("payment_date is required")
    if not actor_id:
        raise ValidationError("actor_id is required")

    wage = get_trip_wage(trip_wage_id)
    _check_settleable(wage)

    # Plain values: the wage instance expires at every chunk commit
    organization_id = wage.organization_id
    dm_id = wage.dm_id
    roles = (
        (TASK_LOADING, _unique(wage.loading_employee_ids), wage.loading_wage_per_employee_cents),
        (TASK_UNLOADING, _unique(wage.unloading_employee_ids), wage.unloading_wage_per_employee_cents),
    )
    all_employee_ids = wage.all_employee_ids()
    trip_day = _trip_date(wage, payment_date)
    attendance_ctx = get_financial_context(trip_day)
    entry_fy = get_financial_context(payment_date).fy_label
    batch_size = _batch_size()

    current_app.logger.info(
        "Settling trip wage %s: %d worker(s), attendance %s/%s",
        trip_wage_id, len(all_employee_ids), attendance_ctx.fy_label, attendance_ctx.month_key,
    )

    entry_ids: list[int] = []

    def _record_attendance() -> None:
        locked = lock_for_update(db.session.query(TripWage).filter_by(id=trip_wage_id)).first()
        if not locked:
            raise NotFoundError(f"Trip wage {trip_wage_id} not found")
        if locked.status == WAGE_STATUS_PROCESSED:
            raise WageAlreadyProcessedError(f"Trip wage {trip_wage_id} has already been processed")

        # Read every record before writing any of them
        records = _lock_attendance(
            organization_id, all_employee_ids, attendance_ctx.fy_label, attendance_ctx.month_key
        )

        for employee_id in all_employee_ids:
            record = records[employee_id]
            if record is None:
                record = _get_or_create_attendance(
                    organization_id, employee_id, attendance_ctx.fy_label, attendance_ctx.month_key
                )

            day = record.day_for(trip_day)
            if day is None:
                day = AttendanceDay(date=trip_day, is_present=True, number_of_trips=0, trip_wage_ids=[])
                record.days.append(day)

            wage_ids = list(day.trip_wage_ids or [])
            if trip_wage_id not in wage_ids:
                wage_ids.append(trip_wage_id)
            day.trip_wage_ids = wage_ids
            day.number_of_trips = len(wage_ids)
            record.recompute_totals()

        locked.status = WAGE_STATUS_PROCESSED
        locked.wage_entry_ids = list(entry_ids)
        locked.payment_date = payment_date
        locked.processed_at = utcnow()
        locked.processed_by = actor_id
        db.session.commit()

    try:
        _claim_for_settlement(trip_wage_id)
        for task_type, employee_ids, rate_cents in roles:
            for chunk in chunked(employee_ids, batch_size):
                entry_ids.extend(
                    _write_entry_chunk(
                        trip_wage_id=trip_wage_id,
                        organization_id=organization_id,
                        dm_id=dm_id,
                        task_type=task_type,
                        employee_ids=chunk,
                        rate_cents=rate_cents,
                        financial_year=entry_fy,
                        payment_date=payment_date,
                        actor_id=actor_id,
                    )
                )
        # A record or day created by a concurrent settlement surfaces as IntegrityError
        run_with_retry(_record_attendance, retry_on=(IntegrityError,))
    except WageAlreadyProcessedError:
        db.session.rollback()
        current_app.logger.warning("Trip wage %s was settled by another request", trip_wage_id)
        raise
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Trip wage %s settlement failed after %d entr(y/ies)", trip_wage_id, len(entry_ids)
        )
        if isinstance(exc, WageSettlementError):
            exc.entry_ids = list(entry_ids)
            raise
        raise WageSettlementError(
            f"Trip wage {trip_wage_id} settlement failed: {exc}", entry_ids=entry_ids
        ) from exc

    current_app.logger.info("Trip wage %s settled with %d entr(y/ies)", trip_wage_id, len(entry_ids))
    return {
        "trip_wage_id": trip_wage_id,
        "entry_ids": entry_ids,
        "financial_year": attendance_ctx.fy_label,
        "year_month": attendance_ctx.month_key,
    }


# =============================================================================
# REVERT
# =============================================================================

def _delete_entries(entry_ids: list[int]) -> int:
    """Delete entries chunk by chunk; one failing entry does not stop the rest."""
    deleted = 0
    for chunk in chunked(entry_ids, _batch_size()):
        for entry_id in chunk:
            try:
                with db.session.begin_nested():
                    if ledger_service.delete_entry(entry_id):
                        deleted += 1
            except SQLAlchemyError:
                current_app.logger.exception("Failed to delete wage ledger entry %s", entry_id)
        db.session.commit()
    return deleted


def revert_trip_wage(trip_wage_id: int) -> dict:
    """
    RevertTripWage: delete a wage's entries, strip it from attendance and
    delete the wage.

    Returns {"trip_wage_id", "entry_count", "deleted_entries"}.
    """
    wage = get_trip_wage(trip_wage_id)

    # Entries left behind by a failed settlement are not in wage_entry_ids yet
    entry_ids = _unique(
        list(wage.wage_entry_ids or [])
        + [e.id for e in ledger_service.list_entries(organization_id=wage.organization_id, trip_wage_id=wage.id)]
    )
    processed = wage.status == WAGE_STATUS_PROCESSED
    organization_id = wage.organization_id
    all_employee_ids = wage.all_employee_ids()
    trip_day = _trip_date(wage, wage.payment_date)
    ctx = get_financial_context(trip_day)

    deleted = _delete_entries(entry_ids) if entry_ids else 0

    def _op() -> None:
        locked = lock_for_update(db.session.query(TripWage).filter_by(id=trip_wage_id)).first()
        if not locked:
            return

        if processed:
            records = _lock_attendance(organization_id, all_employee_ids, ctx.fy_label, ctx.month_key)
            for record in records.values():
                if record is None:
                    continue
                for day in list(record.days):
                    wage_ids = [i for i in (day.trip_wage_ids or []) if i != trip_wage_id]
                    if len(wage_ids) == len(day.trip_wage_ids or []):
                        continue
                    if wage_ids:
                        day.trip_wage_ids = wage_ids
                        day.number_of_trips = len(wage_ids)
                    else:
                        record.days.remove(day)
                record.recompute_totals()
                if not record.days:
                    db.session.delete(record)

        db.session.delete(locked)
        db.session.commit()

    run_with_retry(_op)

    current_app.logger.info(
        "Trip wage %s reverted: %d/%d entr(y/ies) deleted", trip_wage_id, deleted, len(entry_ids)
    )
    return {
        "trip_wage_id": trip_wage_id,
        "entry_count": len(entry_ids),
        "deleted_entries": deleted,
    }
