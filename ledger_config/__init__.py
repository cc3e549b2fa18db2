"""
ledger_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_ledger_config()``.  Returns a frozen ``LedgerConfig`` whose
    ``kernel`` member is handed to the kernel services.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``yaml.YAMLError`` -- override file is not valid YAML.
    - ``KeyError`` / ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_ledger_config()`` call emits a
    ``LEDGER_CONFIG_TRACE`` log entry with the config id, version and
    checksum of the merged document.
"""

from __future__ import annotations

from pathlib import Path

from ledger_config.loader import load_config
from ledger_config.schema import LedgerConfig, SeverityThresholds
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_ledger_config(path: Path | str | None = None) -> LedgerConfig:
    """
    Load the defaults, overlaid with ``path`` when given.

    Args:
        path: Optional YAML override file.  Keys it omits keep their
            default values.
    """
    config = load_config(Path(path) if path is not None else None)
    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path) if path is not None else "defaults",
        },
    )
    return config


__all__ = ["LedgerConfig", "SeverityThresholds", "get_ledger_config"]
