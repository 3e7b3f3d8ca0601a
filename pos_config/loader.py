"""
Configuration Loader (``pos_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``pos_config.schema.PosConfig``.  The single public entry point for
runtime config is ``pos_config.get_active_config()``; this module is the
tooling behind it.

Invariants enforced
-------------------
* Unknown top-level keys are rejected, so a typo never silently falls
  back to a default.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Rejected values or unknown keys -> ``InvalidConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from pos_config.schema import PosConfig, build_tax
from pos_kernel.exceptions import InvalidConfigError

_KNOWN_KEYS = frozenset({
    "money_places",
    "paid_hours_per_day",
    "strict_references",
    "taxes",
    "log_level",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        InvalidConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), "top-level YAML must be a mapping")
    return data


def parse_config(data: dict[str, Any]) -> PosConfig:
    """Parse a ``PosConfig`` from a dict.  Absent keys take their defaults."""
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise InvalidConfigError(unknown[0], "unknown configuration key")

    kwargs: dict[str, Any] = {k: v for k, v in data.items() if k != "taxes"}
    if "paid_hours_per_day" in kwargs and isinstance(kwargs["paid_hours_per_day"], float):
        kwargs["paid_hours_per_day"] = str(kwargs["paid_hours_per_day"])

    taxes_raw = data.get("taxes") or []
    if not isinstance(taxes_raw, list):
        raise InvalidConfigError("taxes", "must be a list")
    kwargs["taxes"] = tuple(build_tax(item) for item in taxes_raw)
    return PosConfig(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
