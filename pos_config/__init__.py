"""
pos_config -- single public entrypoint for store configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.  Returns a frozen ``PosConfig``.

Architecture position:
    Configuration -- YAML-driven settings.  This package sits above
    ``pos_kernel`` and ``pos_engines`` and below ``pos_services``.  The
    kernel and the engines MUST NEVER import from ``pos_config``; the
    service layer passes the relevant values into them.

Resolution order:
    1. ``path`` argument, when given.
    2. ``POS_CONFIG_PATH`` environment variable, when set and non-empty.
    3. The packaged default, ``pos_config/sets/default.yaml``.

Failure modes:
    - ``FileNotFoundError`` -- the resolved file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``InvalidConfigError`` -- a value or key was rejected.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``POS_CONFIG_TRACE`` log entry with the source path and the SHA-256
    checksum of the loaded document, which ties every sale and count back
    to the settings that governed it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pos_config.loader import compute_checksum, load_yaml_file, parse_config
from pos_config.schema import PosConfig

_logger = logging.getLogger("pos_kernel.config")

CONFIG_PATH_ENV = "POS_CONFIG_PATH"

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def resolve_config_path(path: Path | str | None = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def get_active_config(path: Path | str | None = None) -> PosConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned ``PosConfig`` has passed field validation.
        - A ``POS_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - No caching across calls; callers hold the returned config.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        InvalidConfigError: If a value or key is rejected.
    """
    source = resolve_config_path(path)
    data = load_yaml_file(source)
    config = parse_config(data)
    checksum = compute_checksum(data)

    _logger.info(
        "POS_CONFIG_TRACE",
        extra={
            "trace_type": "POS_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": checksum,
            "money_places": config.money_places,
            "log_level": config.log_level,
            "strict_references": config.strict_references,
            "tax_count": len(config.taxes),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "PosConfig",
    "get_active_config",
    "resolve_config_path",
]
