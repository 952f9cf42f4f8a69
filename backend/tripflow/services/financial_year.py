# Overview: Fiscal calendar helpers shared by memo numbering, ledger and attendance.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from flask import current_app


DEFAULT_START_MONTH = 4  # April


@dataclass(frozen=True)
class FinancialContext:
    fy_label: str        # "FY2425"
    fy_start: datetime   # first instant of the fiscal year (UTC-naive)
    fy_end: datetime     # first instant of the next fiscal year (exclusive)
    month_key: str       # "YYYY-MM" of the given date


def _start_month() -> int:
    try:
        return int(current_app.config.get("FISCAL_YEAR_START_MONTH", DEFAULT_START_MONTH))
    except RuntimeError:
        return DEFAULT_START_MONTH


def get_financial_context(value: datetime | date, *, start_month: int | None = None) -> FinancialContext:
    """
    Fiscal year context for a date.

    The fiscal year starts on the first day of start_month (April by
    default); 2024-05-10 and 2025-02-01 both fall in FY2425.
    """
    if start_month is None:
        start_month = _start_month()
    if not 1 <= start_month <= 12:
        raise ValueError("start_month must be between 1 and 12")

    fy_start_year = value.year if value.month >= start_month else value.year - 1
    fy_label = f"FY{fy_start_year % 100:02d}{(fy_start_year + 1) % 100:02d}"
    month_key = f"{value.year:04d}-{value.month:02d}"

    return FinancialContext(
        fy_label=fy_label,
        fy_start=datetime(fy_start_year, start_month, 1),
        fy_end=datetime(fy_start_year + 1, start_month, 1),
        month_key=month_key,
    )


def fiscal_year_bounds(fy_label: str, *, start_month: int | None = None) -> tuple[datetime, datetime]:
    """Boundary dates for a label such as "FY2425" (century assumed 2000s)."""
    if (
        not isinstance(fy_label, str)
        or len(fy_label) != 6
        or not fy_label.startswith("FY")
        or not fy_label[2:].isdigit()
    ):
        raise ValueError(f"Invalid fiscal year label '{fy_label}', expected e.g. 'FY2425'")
    if start_month is None:
        start_month = _start_month()
    first = int(fy_label[2:4])
    second = int(fy_label[4:6])
    if (first + 1) % 100 != second:
        raise ValueError(f"Invalid fiscal year label '{fy_label}': years are not consecutive")
    start_year = 2000 + first
    return datetime(start_year, start_month, 1), datetime(start_year + 1, start_month, 1)


def format_dm_id(fy_label: str, dm_number: int) -> str:
    return f"DM/{fy_label}/{dm_number}"
