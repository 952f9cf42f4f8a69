from __future__ import annotations

from ..extensions import db
from tripflow.time_utils import to_utc_z

class Order(db.Model):
    """
    Customer order that trips are scheduled against.

    WHY: The order keeps a denormalized summary of each scheduled trip
    (scheduled_trips) so that order screens do not have to join trips.
    The summary is a mirror; the Trip row is authoritative.

    LIFECYCLE:
    - PENDING: trips still to be scheduled
    - FULLY_SCHEDULED: estimated_trips reached 0 (order is kept, not deleted)
    - CANCELLED: no further mirroring; existing trips continue independently
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_org_status", "organization_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    client_id = db.Column(db.Integer, nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=False, default="")
    client_phone = db.Column(db.String(32), nullable=True)

    # PAY_LATER, PAY_ON_DELIVERY, ADVANCE, CASH
    payment_type = db.Column(db.String(32), nullable=False, default="PAY_LATER")

    # PENDING, FULLY_SCHEDULED, CANCELLED
    status = db.Column(db.String(32), nullable=False, default="PENDING", index=True)

    # Ordered goods: [{"product_id", "product_name", "quantity", "unit_price_cents"}]
    items = db.Column(db.JSON, nullable=False, default=list)

    estimated_trips = db.Column(db.Integer, nullable=False, default=1)
    total_scheduled_trips = db.Column(db.Integer, nullable=False, default=0)

    # Trip summaries mirrored from SCHEDULED trips (list of dicts keyed by trip_id)
    scheduled_trips = db.Column(db.JSON, nullable=False, default=list)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("orders", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "payment_type": self.payment_type,
            "status": self.status,
            "items": self.items or [],
            "estimated_trips": self.estimated_trips,
            "total_scheduled_trips": self.total_scheduled_trips,
            "scheduled_trips": self.scheduled_trips or [],
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Trip(db.Model):
    """
    One physical delivery run against an order.

    LIFECYCLE:
        SCHEDULED -> DISPATCHED -> DELIVERED -> RETURNED

    Moving to an earlier status is a revert (compensated by the cascade
    router); RETURNED has no forward edge.

    MEMO REFERENCES:
    - dm_id / dm_number: the current memo (dispatch memo, or the return memo
      once the trip is returned)
    - dm_source: marker naming the source of the current memo. RETURN means a
      return memo was already minted for this trip.
    - dispatch_dm_id / dispatch_dm_number: preserved dispatch memo once a
      return memo supersedes it

    order_id is deliberately not a foreign key: a trip outlives its order and
    is only flagged with order_deleted for audit.
    """
    __tablename__ = "trips"
    __table_args__ = (
        db.Index("ix_trips_vehicle_slot", "scheduled_date", "vehicle_id", "slot"),
        db.Index("ix_trips_org_status", "organization_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, nullable=True, index=True)

    client_id = db.Column(db.Integer, nullable=True)
    client_name = db.Column(db.String(255), nullable=True)
    client_phone = db.Column(db.String(32), nullable=True)

    vehicle_id = db.Column(db.Integer, nullable=True)
    vehicle_number = db.Column(db.String(32), nullable=True)
    driver_id = db.Column(db.Integer, nullable=True)
    driver_name = db.Column(db.String(255), nullable=True)
    driver_phone = db.Column(db.String(32), nullable=True)

    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=False)
    slot = db.Column(db.Integer, nullable=True)
    slot_name = db.Column(db.String(64), nullable=True)

    items = db.Column(db.JSON, nullable=True)
    subtotal_cents = db.Column(db.Integer, nullable=True)
    gst_cents = db.Column(db.Integer, nullable=True)
    total_cents = db.Column(db.Integer, nullable=True)
    payment_type = db.Column(db.String(32), nullable=True)

    # SCHEDULED, DISPATCHED, DELIVERED, RETURNED
    status = db.Column(db.String(16), nullable=False, default="SCHEDULED", index=True)

    # Memo references
    dm_id = db.Column(db.String(64), nullable=True, index=True)
    dm_number = db.Column(db.Integer, nullable=True)
    dm_source = db.Column(db.String(16), nullable=True)  # DISPATCH, RETURN
    dispatch_dm_id = db.Column(db.String(64), nullable=True)
    dispatch_dm_number = db.Column(db.Integer, nullable=True)
    return_dm_id = db.Column(db.String(64), nullable=True)
    return_dm_number = db.Column(db.Integer, nullable=True)

    # Ledger references
    credit_entry_id = db.Column(db.Integer, nullable=True)
    return_entry_id = db.Column(db.Integer, nullable=True)

    # Dispatch stage
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    dispatched_by = db.Column(db.String(64), nullable=True)
    dispatched_by_role = db.Column(db.String(32), nullable=True)
    initial_reading = db.Column(db.Float, nullable=True)

    # Delivery stage
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_by = db.Column(db.String(64), nullable=True)
    delivered_by_role = db.Column(db.String(32), nullable=True)
    delivery_photo_url = db.Column(db.String(512), nullable=True)

    # Return stage
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_by = db.Column(db.String(64), nullable=True)
    returned_by_role = db.Column(db.String(32), nullable=True)
    final_reading = db.Column(db.Float, nullable=True)
    paid_on_return_cents = db.Column(db.Integer, nullable=True)

    # Last transition
    status_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    status_updated_by = db.Column(db.String(64), nullable=True)
    status_updated_by_role = db.Column(db.String(32), nullable=True)

    # Audit flag set when the parent order is deleted
    order_deleted = db.Column(db.Boolean, nullable=False, default=False)
    order_deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    order_deleted_by = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("trips", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def distance_travelled(self) -> float | None:
        if self.initial_reading is None or self.final_reading is None:
            return None
        return self.final_reading - self.initial_reading

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "order_id": self.order_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "vehicle_id": self.vehicle_id,
            "vehicle_number": self.vehicle_number,
            "driver_id": self.driver_id,
            "driver_name": self.driver_name,
            "driver_phone": self.driver_phone,
            "scheduled_date": to_utc_z(self.scheduled_date),
            "slot": self.slot,
            "slot_name": self.slot_name,
            "items": self.items or [],
            "subtotal_cents": self.subtotal_cents,
            "gst_cents": self.gst_cents,
            "total_cents": self.total_cents,
            "payment_type": self.payment_type,
            "status": self.status,
            "dm_id": self.dm_id,
            "dm_number": self.dm_number,
            "dm_source": self.dm_source,
            "dispatch_dm_id": self.dispatch_dm_id,
            "dispatch_dm_number": self.dispatch_dm_number,
            "return_dm_id": self.return_dm_id,
            "return_dm_number": self.return_dm_number,
            "credit_entry_id": self.credit_entry_id,
            "return_entry_id": self.return_entry_id,
            "dispatched_at": to_utc_z(self.dispatched_at),
            "dispatched_by": self.dispatched_by,
            "dispatched_by_role": self.dispatched_by_role,
            "initial_reading": self.initial_reading,
            "delivered_at": to_utc_z(self.delivered_at),
            "delivered_by": self.delivered_by,
            "delivered_by_role": self.delivered_by_role,
            "delivery_photo_url": self.delivery_photo_url,
            "returned_at": to_utc_z(self.returned_at),
            "returned_by": self.returned_by,
            "returned_by_role": self.returned_by_role,
            "final_reading": self.final_reading,
            "distance_travelled": self.distance_travelled,
            "paid_on_return_cents": self.paid_on_return_cents,
            "status_updated_at": to_utc_z(self.status_updated_at),
            "status_updated_by": self.status_updated_by,
            "status_updated_by_role": self.status_updated_by_role,
            "order_deleted": self.order_deleted,
            "order_deleted_at": to_utc_z(self.order_deleted_at),
            "order_deleted_by": self.order_deleted_by,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
