"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into the frozen dataclasses
of ``ledger_config.schema``.  Runtime callers go through
``ledger_config.get_ledger_config()``.

Invariants enforced
-------------------
* Override files are merged over ``defaults.yaml`` key by key; a missing
  key keeps its default, an unknown key is an error.
* Money-like values are parsed as ``Decimal`` from their string form.
* ``compute_checksum`` is deterministic for identical merged documents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or wrong shape  -> ``KeyError`` / ``ValueError``.
* Non-positive tolerance or timeout  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LedgerConfig, SeverityThresholds
from ledger_kernel.domain.settings import AccountCodes, KernelSettings

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_ACCOUNT_ROLES = frozenset(AccountCodes.__dataclass_fields__)
_SEVERITY_KEYS = frozenset(SeverityThresholds.__dataclass_fields__)
_TOP_LEVEL_KEYS = frozenset(
    {
        "config_id",
        "version",
        "balance_epsilon",
        "transaction_timeout_seconds",
        "idempotency_ttl_hours",
        "account_codes",
        "severity",
    }
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML node must be a mapping")
    return data


def parse_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: not a decimal: {value!r}") from exc


def parse_account_codes(data: dict[str, Any]) -> AccountCodes:
    unknown = set(data) - _ACCOUNT_ROLES
    if unknown:
        raise KeyError(f"Unknown account roles: {sorted(unknown)}")
    return AccountCodes(**{role: str(code) for role, code in data.items()})


def parse_severity(data: dict[str, Any]) -> SeverityThresholds:
    unknown = set(data) - _SEVERITY_KEYS
    if unknown:
        raise KeyError(f"Unknown severity keys: {sorted(unknown)}")
    return SeverityThresholds(
        **{key: parse_decimal(value, key) for key, value in data.items()}
    )


def merge_documents(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Key-by-key merge; nested mappings merge one level deep."""
    unknown = set(override) - _TOP_LEVEL_KEYS
    if unknown:
        raise KeyError(f"Unknown configuration keys: {sorted(unknown)}")
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = {**base[key], **value}
        else:
            merged[key] = value
    return merged


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Build a LedgerConfig from a fully merged document.

    Raises:
        KeyError: If a required key is missing.
        ValueError: If a value is out of range.
    """
    epsilon = parse_decimal(data["balance_epsilon"], "balance_epsilon")
    if epsilon <= 0:
        raise ValueError(f"balance_epsilon must be positive, got {epsilon}")

    timeout = float(data["transaction_timeout_seconds"])
    if timeout <= 0:
        raise ValueError(f"transaction_timeout_seconds must be positive, got {timeout}")

    ttl_hours = int(data["idempotency_ttl_hours"])
    if ttl_hours <= 0:
        raise ValueError(f"idempotency_ttl_hours must be positive, got {ttl_hours}")

    kernel = KernelSettings(
        balance_epsilon=epsilon,
        transaction_timeout_seconds=timeout,
        idempotency_ttl_hours=ttl_hours,
        account_codes=parse_account_codes(data.get("account_codes") or {}),
    )
    return LedgerConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        kernel=kernel,
        severity=parse_severity(data.get("severity") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path | None = None) -> LedgerConfig:
    """Defaults, optionally overlaid with the file at ``path``."""
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = merge_documents(data, load_yaml_file(Path(path)))
    return parse_config(data)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
