from __future__ import annotations

from ..extensions import db
from tripflow.time_utils import to_utc_z

class FiscalCounter(db.Model):
    """
    Atomic per-(organization, fiscal year) delivery memo counter.

    WHY: Memo numbers must never be reused, skipped on commit or issued
    twice under concurrent trip creation. The row is advanced with a single
    atomic UPDATE inside the transaction that uses the number.

    Created lazily on first number request; never deleted.
    """
    __tablename__ = "fiscal_counters"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "financial_year", name="uq_fiscal_counters_org_fy"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    financial_year = db.Column(db.String(16), nullable=False, index=True)  # e.g. "FY2425"

    start_number = db.Column(db.Integer, nullable=False, default=1)
    current_number = db.Column(db.Integer, nullable=False, default=0)

    fy_start = db.Column(db.DateTime(timezone=True), nullable=True)
    fy_end = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("fiscal_counters", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "financial_year": self.financial_year,
            "start_number": self.start_number,
            "current_number": self.current_number,
            "fy_start": to_utc_z(self.fy_start),
            "fy_end": to_utc_z(self.fy_end),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DeliveryMemo(db.Model):
    """
    Delivery memo (DM): snapshot of a trip at the moment a memo is needed.

    SOURCES:
    - DISPATCH: minted on request before dispatch; fields are overwritten in
      place as the trip advances (ACTIVE -> DELIVERED -> RETURNED)
    - RETURN: minted when the trip is returned, with its own number; the
      dispatch memo is kept as the dispatch record

    INVARIANTS:
    - dm_number is unique within (organization_id, financial_year)
    - at most one memo per (trip_id, source) has status != CANCELLED
    - a cancelled number is never re-issued
    """
    __tablename__ = "delivery_memos"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "financial_year", "dm_number", name="uq_delivery_memos_org_fy_number"),
        db.Index("ix_delivery_memos_trip_source_status", "trip_id", "source", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    dm_id = db.Column(db.String(64), nullable=False, index=True)  # "DM/FY2425/17"
    dm_number = db.Column(db.Integer, nullable=False)
    financial_year = db.Column(db.String(16), nullable=False)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    trip_id = db.Column(db.Integer, db.ForeignKey("trips.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, nullable=True)

    # Snapshot of trip fields (never null: neutral defaults are filled in)
    client_id = db.Column(db.Integer, nullable=True)
    client_name = db.Column(db.String(255), nullable=False, default="")
    customer_phone = db.Column(db.String(32), nullable=False, default="")
    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    vehicle_id = db.Column(db.Integer, nullable=True)
    vehicle_number = db.Column(db.String(32), nullable=False, default="")
    slot = db.Column(db.Integer, nullable=False, default=0)
    slot_name = db.Column(db.String(64), nullable=False, default="")
    driver_id = db.Column(db.Integer, nullable=True)
    driver_name = db.Column(db.String(255), nullable=True)
    driver_phone = db.Column(db.String(32), nullable=True)
    items = db.Column(db.JSON, nullable=False, default=list)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_type = db.Column(db.String(32), nullable=False, default="")

    # ACTIVE, DELIVERED, RETURNED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)
    # DISPATCH, RETURN
    source = db.Column(db.String(16), nullable=False, default="DISPATCH")
    trip_status = db.Column(db.String(16), nullable=False, default="SCHEDULED")

    generated_at = db.Column(db.DateTime(timezone=True), nullable=False)
    generated_by = db.Column(db.String(64), nullable=False)

    # Delivery fields (dispatch memo)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_by = db.Column(db.String(64), nullable=True)
    delivered_by_role = db.Column(db.String(32), nullable=True)
    delivery_photo_url = db.Column(db.String(512), nullable=True)

    # Return fields
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_by = db.Column(db.String(64), nullable=True)
    returned_by_role = db.Column(db.String(32), nullable=True)
    initial_reading = db.Column(db.Float, nullable=True)
    final_reading = db.Column(db.Float, nullable=True)
    distance_travelled = db.Column(db.Float, nullable=True)
    paid_on_return_cents = db.Column(db.Integer, nullable=True)

    # Cancellation
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    trip = db.relationship("Trip", backref=db.backref("delivery_memos", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dm_id": self.dm_id,
            "dm_number": self.dm_number,
            "financial_year": self.financial_year,
            "organization_id": self.organization_id,
            "trip_id": self.trip_id,
            "order_id": self.order_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "customer_phone": self.customer_phone,
            "scheduled_date": to_utc_z(self.scheduled_date),
            "vehicle_id": self.vehicle_id,
            "vehicle_number": self.vehicle_number,
            "slot": self.slot,
            "slot_name": self.slot_name,
            "driver_id": self.driver_id,
            "driver_name": self.driver_name,
            "driver_phone": self.driver_phone,
            "items": self.items or [],
            "subtotal_cents": self.subtotal_cents,
            "gst_cents": self.gst_cents,
            "total_cents": self.total_cents,
            "payment_type": self.payment_type,
            "status": self.status,
            "source": self.source,
            "trip_status": self.trip_status,
            "generated_at": to_utc_z(self.generated_at),
            "generated_by": self.generated_by,
            "delivered_at": to_utc_z(self.delivered_at),
            "delivered_by": self.delivered_by,
            "delivered_by_role": self.delivered_by_role,
            "delivery_photo_url": self.delivery_photo_url,
            "returned_at": to_utc_z(self.returned_at),
            "returned_by": self.returned_by,
            "returned_by_role": self.returned_by_role,
            "initial_reading": self.initial_reading,
            "final_reading": self.final_reading,
            "distance_travelled": self.distance_travelled,
            "paid_on_return_cents": self.paid_on_return_cents,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
