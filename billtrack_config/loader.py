"""
Configuration Loader (``billtrack_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into the frozen ``billtrack_config.schema``
dataclasses.  Runtime callers go through ``billtrack_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` from the schema or decimal parsing.

Audit relevance
---------------
``compute_checksum`` fingerprints the parsed document so logs can tie any
computed amount back to the rate table that governed it.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billtrack_config.schema import (
    ApprovalPolicy,
    EngineConfig,
    SettlementPolicy,
    TaxPolicy,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _decimal(value: Any, where: str) -> Decimal:
    if isinstance(value, float):
        # YAML floats are written as strings in config to keep them exact.
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{where}: {value!r} is not a number") from exc


def parse_tax_policy(data: dict[str, Any]) -> TaxPolicy:
    return TaxPolicy(
        vat_rates=frozenset(_decimal(r, "tax.vat_rates") for r in data["vat_rates"]),
        withholding_rates=frozenset(
            _decimal(r, "tax.withholding_rates") for r in data["withholding_rates"]
        ),
        withholding_categories={
            str(name).upper(): _decimal(rate, f"tax.withholding_categories.{name}")
            for name, rate in (data.get("withholding_categories") or {}).items()
        },
    )


def parse_approval_policy(data: dict[str, Any]) -> ApprovalPolicy:
    return ApprovalPolicy(max_batch_size=int(data.get("max_batch_size", 50)))


def parse_settlement_policy(data: dict[str, Any]) -> SettlementPolicy:
    return SettlementPolicy(
        max_batch_size=int(data.get("max_batch_size", 50)),
        payout_description_prefix=str(
            data.get("payout_description_prefix", "Reimbursement payout")
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration document."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        tax=parse_tax_policy(data["tax"]),
        approval=parse_approval_policy(data.get("approval") or {}),
        settlement=parse_settlement_policy(data.get("settlement") or {}),
        checksum=compute_checksum(data),
    )


def load_engine_config(path: Path) -> EngineConfig:
    return parse_engine_config(load_yaml_file(path))
