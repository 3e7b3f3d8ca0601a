"""
PosConfig schema.

The frozen runtime configuration.  YAML files are parsed into this type by
``pos_config.loader``; nothing else in the system reads configuration
files.  Construction validates every field and raises
``InvalidConfigError`` naming the offending key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from pos_kernel.domain.models import Tax
from pos_kernel.exceptions import InvalidConfigError, ValidationError

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class PosConfig:
    """Runtime settings for one store."""

    money_places: int = 2
    paid_hours_per_day: Decimal = Decimal("12")
    strict_references: bool = False
    taxes: tuple[Tax, ...] = ()
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if isinstance(self.money_places, bool) or not isinstance(self.money_places, int):
            raise InvalidConfigError("money_places", "must be an integer")
        if not 0 <= self.money_places <= 6:
            raise InvalidConfigError("money_places", "must be between 0 and 6")

        if isinstance(self.paid_hours_per_day, (bool, float)):
            raise InvalidConfigError("paid_hours_per_day", "must be an integer or decimal string")
        try:
            hours = Decimal(str(self.paid_hours_per_day))
        except ArithmeticError as e:
            raise InvalidConfigError("paid_hours_per_day", "is not numeric") from e
        if not hours.is_finite() or hours <= 0 or hours > 24:
            raise InvalidConfigError("paid_hours_per_day", "must be in (0, 24]")
        object.__setattr__(self, "paid_hours_per_day", hours)

        if not isinstance(self.strict_references, bool):
            raise InvalidConfigError("strict_references", "must be true or false")

        if not isinstance(self.log_level, str) or self.log_level.upper() not in _LOG_LEVELS:
            raise InvalidConfigError("log_level", f"must be one of {sorted(_LOG_LEVELS)}")
        object.__setattr__(self, "log_level", self.log_level.upper())

        object.__setattr__(self, "taxes", tuple(self.taxes))
        names = [t.name.lower() for t in self.taxes]
        if len(names) != len(set(names)):
            raise InvalidConfigError("taxes", "tax names must be unique")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)


def build_tax(data: dict) -> Tax:
    """Tax from a ``{name, rate}`` mapping; rate is a percentage."""
    if not isinstance(data, dict):
        raise InvalidConfigError("taxes", f"entry must be a mapping, got {data!r}")
    rate = data.get("rate")
    if isinstance(rate, float):
        # YAML reads 12.5 as a float; route it through str to keep the digits.
        rate = str(rate)
    try:
        return Tax(name=data.get("name", ""), rate=rate)
    except ValidationError as e:
        raise InvalidConfigError("taxes", e.reason) from e
