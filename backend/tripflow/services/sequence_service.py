# Overview: Service-layer operations for delivery memo numbering; encapsulates business logic and database work.

"""
Delivery memo sequence issuer.

INVARIANTS:
- One FiscalCounter per (organization, fiscal year), created lazily.
- Each committed increment advances from a distinct current_number: the
  increment is a single atomic UPDATE, so concurrent callers serialize on
  the counter row and observe gap-free values.
- A number is issued only when the transaction that drew it commits.
  Callers never hold on to a number outside that transaction.
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import FiscalCounter, Organization
from ..validation import NotFoundError
from .concurrency import run_with_retry
from .financial_year import fiscal_year_bounds


class SequenceError(Exception):
    """Raised when delivery memo sequence operations fail."""
    pass


def _validate_key(organization_id: int, financial_year: str) -> None:
    if not organization_id:
        raise SequenceError("organization_id is required")
    if not financial_year:
        raise SequenceError("financial_year is required")
    try:
        fiscal_year_bounds(financial_year)
    except ValueError as exc:
        raise SequenceError(str(exc))


def _counter_query(organization_id: int, financial_year: str):
    return db.session.query(FiscalCounter).filter_by(
        organization_id=organization_id,
        financial_year=financial_year,
    )


def get_or_create_fiscal_counter(organization_id: int, financial_year: str) -> FiscalCounter:
    """
    Return the counter for (organization, fiscal year), creating it at 0.

    Runs inside the caller's transaction. The insert is wrapped in a
    SAVEPOINT so a concurrent creator winning the unique constraint only
    rolls back the insert, not the caller's work.
    """
    _validate_key(organization_id, financial_year)

    counter = _counter_query(organization_id, financial_year).first()
    if counter:
        return counter

    org = db.session.query(Organization).filter_by(id=organization_id).first()
    if not org:
        raise NotFoundError(f"Organization {organization_id} not found")

    fy_start, fy_end = fiscal_year_bounds(financial_year)
    counter = FiscalCounter(
        organization_id=organization_id,
        financial_year=financial_year,
        start_number=1,
        current_number=0,
        fy_start=fy_start,
        fy_end=fy_end,
    )
    try:
        with db.session.begin_nested():
            db.session.add(counter)
    except IntegrityError:
        counter = _counter_query(organization_id, financial_year).first()
        if counter is None:
            raise
    return counter


def next_number(organization_id: int, financial_year: str) -> int:
    """
    Advance the counter and return the new number.

    Must be called inside the transaction that consumes the number (memo
    insert, trip update). Does not commit.
    """
    get_or_create_fiscal_counter(organization_id, financial_year)

    stmt = (
        update(FiscalCounter)
        .where(
            FiscalCounter.organization_id == organization_id,
            FiscalCounter.financial_year == financial_year,
        )
        .values(current_number=FiscalCounter.current_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise SequenceError(
            f"Fiscal counter for organization {organization_id} / {financial_year} disappeared"
        )

    current = (
        db.session.query(FiscalCounter.current_number)
        .filter_by(organization_id=organization_id, financial_year=financial_year)
        .scalar()
    )
    # Keep any loaded instance in step with the row we just advanced
    for obj in db.session.identity_map.values():
        if (
            isinstance(obj, FiscalCounter)
            and obj.organization_id == organization_id
            and obj.financial_year == financial_year
        ):
            db.session.expire(obj, ["current_number", "updated_at"])
    return current


def increment_and_get_next(organization_id: int, financial_year: str) -> int:
    """
    Issue the next number in its own transaction and commit it.

    Retries transparently on lock contention; a failed attempt issues
    nothing.
    """
    def _op() -> int:
        number = next_number(organization_id, financial_year)
        db.session.commit()
        return number

    return run_with_retry(_op)


def get_fiscal_counter_state(organization_id: int, financial_year: str) -> FiscalCounter:
    """GetOrCreateFiscalCounter: counter state, persisted if it was absent."""
    def _op() -> FiscalCounter:
        counter = get_or_create_fiscal_counter(organization_id, financial_year)
        db.session.commit()
        return counter

    return run_with_retry(_op)
