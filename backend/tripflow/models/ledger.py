from __future__ import annotations

from ..extensions import db
from tripflow.time_utils import to_utc_z

class LedgerEntry(db.Model):
    """
    Ledger entry (transaction) for a client or employee ledger.

    WHY: Trips and wage settlements produce money movements that must be
    undoable without rewriting history. Reversals flip status to CANCELLED;
    cancelled entries never count towards balances.

    IDEMPOTENCY:
    idempotency_key names the originating business event (e.g.
    "trip:12:CLIENT_CREDIT" or "tripWage:4:loading:31"). The ledger service
    returns the existing non-cancelled entry instead of creating a second one.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_party", "organization_id", "ledger_type", "party_id"),
        db.Index("ix_ledger_entries_key_status", "idempotency_key", "status"),
        # At most one live entry per business event
        db.Index(
            "uq_ledger_entries_live_key",
            "idempotency_key",
            unique=True,
            sqlite_where=db.text("status != 'CANCELLED'"),
            postgresql_where=db.text("status != 'CANCELLED'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # CLIENT, EMPLOYEE
    ledger_type = db.Column(db.String(16), nullable=False)
    party_id = db.Column(db.Integer, nullable=False)

    # CREDIT, DEBIT
    entry_type = db.Column(db.String(8), nullable=False)
    # CLIENT_CREDIT, PENDING_PAYMENT, WAGE_CREDIT, ADVANCE
    category = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    # COMPLETED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    financial_year = db.Column(db.String(16), nullable=False, index=True)

    # Links back to the originating event
    trip_id = db.Column(db.Integer, nullable=True, index=True)
    order_id = db.Column(db.Integer, nullable=True)
    trip_wage_id = db.Column(db.Integer, nullable=True, index=True)
    dm_id = db.Column(db.String(64), nullable=True)
    task_type = db.Column(db.String(32), nullable=True)  # loading, unloading
    idempotency_key = db.Column(db.String(128), nullable=True)

    description = db.Column(db.String(255), nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "ledger_type": self.ledger_type,
            "party_id": self.party_id,
            "entry_type": self.entry_type,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "financial_year": self.financial_year,
            "trip_id": self.trip_id,
            "order_id": self.order_id,
            "trip_wage_id": self.trip_wage_id,
            "dm_id": self.dm_id,
            "task_type": self.task_type,
            "idempotency_key": self.idempotency_key,
            "description": self.description,
            "payment_date": to_utc_z(self.payment_date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
        }
