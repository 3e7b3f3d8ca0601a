"""
pos_engines.labor -- Shift labor cost accrual.

Responsibility:
    Turn a closed time clock shift into a LABOR miscellaneous cost using a
    capped hourly equivalent of the employee's daily rate:

        cost = min(shift_hours, paid_hours_per_day) x daily_rate / paid_hours_per_day

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The clock-out time is a
    parameter; the service supplies it.

Invariants enforced:
    - Paid time is capped at ``paid_hours_per_day`` (12 by default) per
      shift regardless of actual duration.
    - One cost record per shift, timestamped at clock-out.
    - Employees without a daily rate accrue nothing.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pos_kernel.domain.models import CostKind, Employee, MiscCost, TimeClockEntry
from pos_kernel.domain.values import ZERO, to_non_negative, to_positive
from pos_kernel.exceptions import ValidationError
from pos_kernel.logging_config import get_logger

logger = get_logger("engines.labor")

DEFAULT_PAID_HOURS_PER_DAY = Decimal("12")
LABOR_COST_PREFIX = "Labor Cost:"

_SECONDS_PER_HOUR = Decimal("3600")


def shift_hours(start: datetime, end: datetime) -> Decimal:
    """Elapsed hours between two instants, as a Decimal."""
    seconds = Decimal(str((end - start).total_seconds()))
    return seconds / _SECONDS_PER_HOUR


def labor_cost(
    start: datetime,
    end: datetime,
    daily_rate: Decimal | int | str,
    paid_hours_per_day: Decimal | int | str = DEFAULT_PAID_HOURS_PER_DAY,
) -> Decimal:
    """Cost of one shift at a capped hourly equivalent of ``daily_rate``."""
    rate = to_non_negative(daily_rate, "daily_rate")
    cap = to_positive(paid_hours_per_day, "paid_hours_per_day")
    hours = max(shift_hours(start, end), ZERO)
    paid_hours = min(hours, cap)
    return paid_hours * (rate / cap)


def accrue_shift(
    entry: TimeClockEntry,
    employee: Employee,
    *,
    clock_out: datetime,
    cost_id: str,
    paid_hours_per_day: Decimal | int | str = DEFAULT_PAID_HOURS_PER_DAY,
) -> MiscCost | None:
    """
    Labor cost record for a shift ending at ``clock_out``.

    Returns None when the employee has no daily rate.
    """
    if entry.employee_id != employee.id:
        raise ValidationError(
            "employee_id",
            f"time clock entry {entry.id} belongs to {entry.employee_id}, not {employee.id}",
            employee.id,
        )
    if employee.daily_rate <= ZERO:
        logger.info("labor_cost_skipped_no_rate", extra={
            "employee_id": employee.id,
            "entry_id": entry.id,
        })
        return None
    amount = labor_cost(entry.start_time, clock_out, employee.daily_rate, paid_hours_per_day)
    logger.info("labor_cost_accrued", extra={
        "employee_id": employee.id,
        "entry_id": entry.id,
        "hours": str(shift_hours(entry.start_time, clock_out)),
        "amount": str(amount),
    })
    return MiscCost(
        id=cost_id,
        name=f"{LABOR_COST_PREFIX} {employee.name}",
        amount=amount,
        timestamp=clock_out,
        kind=CostKind.LABOR,
    )
