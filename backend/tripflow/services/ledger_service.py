# Overview: Service-layer operations for ledger entries; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import LedgerEntry
from ..validation import NotFoundError
from tripflow.time_utils import utcnow
"""
Ledger Invariants (authoritative)

- Balances are plain running sums: credits minus debits of COMPLETED entries.
- A CANCELLED entry never affects a balance; cancellation is the reversal.
- Each idempotency key has at most one non-cancelled entry. create_entry
  returns the live entry for a key instead of writing a second one; a
  partial unique index over live keys backs this against concurrent writers.
- Entries are written inside the caller's transaction (flush, no commit).
"""


class LedgerError(Exception):
    """Raised for invalid ledger entry data."""
    pass


# =============================================================================
# CONSTANTS
# =============================================================================

LEDGER_CLIENT = "CLIENT"
LEDGER_EMPLOYEE = "EMPLOYEE"
VALID_LEDGER_TYPES = {LEDGER_CLIENT, LEDGER_EMPLOYEE}

ENTRY_CREDIT = "CREDIT"
ENTRY_DEBIT = "DEBIT"
VALID_ENTRY_TYPES = {ENTRY_CREDIT, ENTRY_DEBIT}

CATEGORY_CLIENT_CREDIT = "CLIENT_CREDIT"      # client owes a pay-later trip
CATEGORY_PENDING_PAYMENT = "PENDING_PAYMENT"  # unpaid remainder of a pay-on-delivery trip
CATEGORY_WAGE_CREDIT = "WAGE_CREDIT"          # loading/unloading wage
CATEGORY_ADVANCE = "ADVANCE"
VALID_CATEGORIES = {
    CATEGORY_CLIENT_CREDIT,
    CATEGORY_PENDING_PAYMENT,
    CATEGORY_WAGE_CREDIT,
    CATEGORY_ADVANCE,
}

ENTRY_STATUS_COMPLETED = "COMPLETED"
ENTRY_STATUS_CANCELLED = "CANCELLED"


def trip_entry_key(trip_id: int, category: str) -> str:
    return f"trip:{trip_id}:{category}"


def wage_entry_key(trip_wage_id: int, task_type: str, employee_id: int) -> str:
    return f"tripWage:{trip_wage_id}:{task_type}:{employee_id}"


# =============================================================================
# WRITES
# =============================================================================

def build_entry(
    *,
    organization_id: int,
    ledger_type: str,
    party_id: int,
    entry_type: str,
    category: str,
    amount_cents: int,
    financial_year: str,
    idempotency_key: str | None = None,
    trip_id: int | None = None,
    order_id: int | None = None,
    trip_wage_id: int | None = None,
    dm_id: str | None = None,
    task_type: str | None = None,
    description: str | None = None,
    payment_date: Optional[datetime] = None,
    created_by: str | None = None,
) -> LedgerEntry:
    """Validate and build an unsaved entry."""
    if ledger_type not in VALID_LEDGER_TYPES:
        raise LedgerError(f"Invalid ledger type: {ledger_type}")
    if entry_type not in VALID_ENTRY_TYPES:
        raise LedgerError(f"Invalid entry type: {entry_type}")
    if category not in VALID_CATEGORIES:
        raise LedgerError(f"Invalid category: {category}")
    if amount_cents is None or amount_cents < 0:
        raise LedgerError("Entry amount must be zero or positive")
    if not organization_id:
        raise LedgerError("organization_id is required")
    if party_id is None:
        raise LedgerError("party_id is required")
    if not financial_year:
        raise LedgerError("financial_year is required")

    return LedgerEntry(
        organization_id=organization_id,
        ledger_type=ledger_type,
        party_id=party_id,
        entry_type=entry_type,
        category=category,
        amount_cents=amount_cents,
        status=ENTRY_STATUS_COMPLETED,
        financial_year=financial_year,
        idempotency_key=idempotency_key,
        trip_id=trip_id,
        order_id=order_id,
        trip_wage_id=trip_wage_id,
        dm_id=dm_id,
        task_type=task_type,
        description=description,
        payment_date=payment_date,
        created_by=created_by,
        created_at=utcnow(),
    )


def find_live_entry(idempotency_key: str) -> LedgerEntry | None:
    return (
        db.session.query(LedgerEntry)
        .filter(
            LedgerEntry.idempotency_key == idempotency_key,
            LedgerEntry.status != ENTRY_STATUS_CANCELLED,
        )
        .order_by(LedgerEntry.id)
        .first()
    )


def create_entry(**data) -> LedgerEntry:
    """
    CreateEntry: add an entry to the current transaction.

    Idempotent on idempotency_key: when a non-cancelled entry already exists
    for the key it is returned unchanged.
    """
    key = data.get("idempotency_key")
    if key:
        existing = find_live_entry(key)
        if existing:
            return existing

    entry = build_entry(**data)
    if not key:
        db.session.add(entry)
        db.session.flush()  # ensures entry.id is assigned without committing
        return entry

    # A concurrent writer may insert the same key between the read and the
    # insert; the partial unique index rejects ours and the winner is reused.
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except IntegrityError:
        existing = find_live_entry(key)
        if existing is None:
            raise
        return existing
    return entry


def cancel_entry(entry_id: int, *, reason: str, cancelled_by: str = "system") -> bool:
    """
    CancelEntry: mark an entry CANCELLED.

    Returns False (and writes nothing) when the entry is already cancelled.
    Raises NotFoundError when the entry does not exist.
    """
    entry = db.session.query(LedgerEntry).filter_by(id=entry_id).first()
    if not entry:
        raise NotFoundError(f"Ledger entry {entry_id} not found")
    if entry.status == ENTRY_STATUS_CANCELLED:
        return False

    entry.status = ENTRY_STATUS_CANCELLED
    entry.cancelled_at = utcnow()
    entry.cancelled_by = cancelled_by
    entry.cancellation_reason = reason
    return True


def delete_entry(entry_id: int) -> bool:
    """Hard-delete an entry. Returns False if it was already gone."""
    deleted = db.session.query(LedgerEntry).filter_by(id=entry_id).delete(synchronize_session=False)
    return bool(deleted)


# =============================================================================
# READS
# =============================================================================

def get_balance(
    *,
    organization_id: int,
    ledger_type: str,
    party_id: int,
    financial_year: str | None = None,
) -> int:
    """Credits minus debits over COMPLETED entries, in cents."""
    signed = case(
        (LedgerEntry.entry_type == ENTRY_CREDIT, LedgerEntry.amount_cents),
        else_=-LedgerEntry.amount_cents,
    )
    query = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        LedgerEntry.organization_id == organization_id,
        LedgerEntry.ledger_type == ledger_type,
        LedgerEntry.party_id == party_id,
        LedgerEntry.status == ENTRY_STATUS_COMPLETED,
    )
    if financial_year:
        query = query.filter(LedgerEntry.financial_year == financial_year)
    return int(query.scalar() or 0)


def list_entries(
    *,
    organization_id: int,
    trip_id: int | None = None,
    trip_wage_id: int | None = None,
    include_cancelled: bool = True,
) -> list[LedgerEntry]:
    query = db.session.query(LedgerEntry).filter(LedgerEntry.organization_id == organization_id)
    if trip_id is not None:
        query = query.filter(LedgerEntry.trip_id == trip_id)
    if trip_wage_id is not None:
        query = query.filter(LedgerEntry.trip_wage_id == trip_wage_id)
    if not include_cancelled:
        query = query.filter(LedgerEntry.status != ENTRY_STATUS_CANCELLED)
    return query.order_by(LedgerEntry.id).all()
