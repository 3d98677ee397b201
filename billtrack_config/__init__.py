"""
billtrack_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains rate
    allow-lists and batch limits.  No other component reads configuration
    files or environment variables.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``yaml.YAMLError`` / ``ValueError`` / ``KeyError`` -- malformed file.

Audit relevance:
    Every successful load emits a ``config_loaded`` log entry with the
    config_id, version and checksum.
"""

from __future__ import annotations

from pathlib import Path

from billtrack_config.loader import load_engine_config
from billtrack_config.schema import (
    ApprovalPolicy,
    EngineConfig,
    SettlementPolicy,
    TaxPolicy,
)
from billtrack_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | None = None) -> EngineConfig:
    """Load the engine configuration (the packaged defaults when ``path`` is None)."""
    config = load_engine_config(path or DEFAULT_CONFIG_PATH)
    _logger.info(
        "config_loaded",
        extra={
            "config_id": config.config_id,
            "version": config.version,
            "checksum": config.checksum,
            "vat_rates": sorted(str(r) for r in config.tax.vat_rates),
            "withholding_rates": sorted(str(r) for r in config.tax.withholding_rates),
        },
    )
    return config


__all__ = [
    "ApprovalPolicy",
    "DEFAULT_CONFIG_PATH",
    "EngineConfig",
    "SettlementPolicy",
    "TaxPolicy",
    "get_active_config",
]
