from __future__ import annotations

from ..extensions import db
from tripflow.time_utils import to_utc_z, to_iso_date

class TripWage(db.Model):
    """
    Loading/unloading wage for one returned trip.

    LIFECYCLE:
    - PENDING: recorded, per-employee wages may still be uncomputed
    - PROCESSED: one WAGE_CREDIT ledger entry issued per worker and
      attendance recorded; wage_entry_ids lists the created entries

    A PROCESSED wage is never edited; it is reverted (entries deleted,
    attendance stripped, wage deleted) and recorded again.
    """
    __tablename__ = "trip_wages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    delivery_memo_id = db.Column(db.Integer, db.ForeignKey("delivery_memos.id"), nullable=True, index=True)
    dm_id = db.Column(db.String(64), nullable=True)
    trip_id = db.Column(db.Integer, nullable=True, index=True)

    loading_employee_ids = db.Column(db.JSON, nullable=False, default=list)
    unloading_employee_ids = db.Column(db.JSON, nullable=False, default=list)

    # Computed wages (null until computed)
    total_wage_cents = db.Column(db.Integer, nullable=True)
    loading_wages_cents = db.Column(db.Integer, nullable=True)
    unloading_wages_cents = db.Column(db.Integer, nullable=True)
    loading_wage_per_employee_cents = db.Column(db.Integer, nullable=True)
    unloading_wage_per_employee_cents = db.Column(db.Integer, nullable=True)

    # PENDING, PROCESSED
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    wage_entry_ids = db.Column(db.JSON, nullable=False, default=list)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    delivery_memo = db.relationship("DeliveryMemo", backref=db.backref("trip_wages", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def all_employee_ids(self) -> list[int]:
        """Unique workers across both roles, in first-seen order."""
        seen: dict[int, None] = {}
        for employee_id in list(self.loading_employee_ids or []) + list(self.unloading_employee_ids or []):
            seen.setdefault(employee_id, None)
        return list(seen)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "delivery_memo_id": self.delivery_memo_id,
            "dm_id": self.dm_id,
            "trip_id": self.trip_id,
            "loading_employee_ids": self.loading_employee_ids or [],
            "unloading_employee_ids": self.unloading_employee_ids or [],
            "total_wage_cents": self.total_wage_cents,
            "loading_wages_cents": self.loading_wages_cents,
            "unloading_wages_cents": self.unloading_wages_cents,
            "loading_wage_per_employee_cents": self.loading_wage_per_employee_cents,
            "unloading_wage_per_employee_cents": self.unloading_wage_per_employee_cents,
            "status": self.status,
            "wage_entry_ids": self.wage_entry_ids or [],
            "payment_date": to_utc_z(self.payment_date),
            "processed_at": to_utc_z(self.processed_at),
            "processed_by": self.processed_by,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class AttendanceRecord(db.Model):
    """
    Monthly attendance of one employee, built from settled trip wages.

    INVARIANTS:
    - total_trips_worked == sum(day.number_of_trips)
    - total_days_present == count(day.is_present)
    - a trip wage id appears in at most one day of the record
    """
    __tablename__ = "attendance_records"
    __table_args__ = (
        db.UniqueConstraint(
            "organization_id", "employee_id", "financial_year", "year_month",
            name="uq_attendance_records_employee_month",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, nullable=False, index=True)
    financial_year = db.Column(db.String(16), nullable=False)
    year_month = db.Column(db.String(7), nullable=False)  # "2024-05"

    total_days_present = db.Column(db.Integer, nullable=False, default=0)
    total_trips_worked = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    days = db.relationship(
        "AttendanceDay",
        backref="record",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="AttendanceDay.date",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def day_for(self, day):
        for entry in self.days:
            if entry.date == day:
                return entry
        return None

    def recompute_totals(self) -> None:
        self.total_days_present = sum(1 for d in self.days if d.is_present)
        self.total_trips_worked = sum(d.number_of_trips or 0 for d in self.days)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "employee_id": self.employee_id,
            "financial_year": self.financial_year,
            "year_month": self.year_month,
            "total_days_present": self.total_days_present,
            "total_trips_worked": self.total_trips_worked,
            "days": [d.to_dict() for d in self.days],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AttendanceDay(db.Model):
    """One day of an attendance record; trip_wage_ids are the contributing settlements."""
    __tablename__ = "attendance_days"
    __table_args__ = (
        db.UniqueConstraint("record_id", "date", name="uq_attendance_days_record_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("attendance_records.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    is_present = db.Column(db.Boolean, nullable=False, default=True)
    number_of_trips = db.Column(db.Integer, nullable=False, default=0)
    trip_wage_ids = db.Column(db.JSON, nullable=False, default=list)

    def to_dict(self) -> dict:
        return {
            "date": to_iso_date(self.date),
            "is_present": self.is_present,
            "number_of_trips": self.number_of_trips,
            "trip_wage_ids": self.trip_wage_ids or [],
        }
