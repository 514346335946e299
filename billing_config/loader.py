"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Load YAML files and parse the merged mapping into a validated
``BillingConfig``.  The single public entry point for runtime config is
``billing_config.get_active_config()``; services never call this directly.

Invariants enforced
-------------------
* Unknown keys are rejected, so a misspelt key never silently falls back to
  a default.
* Rates and counts are range-checked; rounding and allocation order names
  must be known.
* Every error is a ``ConfigurationError`` naming the offending key.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import decimal
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import BillingConfig
from billing_engines.allocation import AllocationOrder
from billing_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_KNOWN_KEYS = frozenset({
    "gst_rate",
    "kg_per_bag",
    "money_decimal_places",
    "rounding_mode",
    "allocation_order",
    "lock_timeout_seconds",
    "database_url",
})

_ROUNDING_MODES = frozenset({
    decimal.ROUND_HALF_UP,
    decimal.ROUND_HALF_EVEN,
    decimal.ROUND_HALF_DOWN,
    decimal.ROUND_UP,
    decimal.ROUND_DOWN,
    decimal.ROUND_CEILING,
    decimal.ROUND_FLOOR,
    decimal.ROUND_05UP,
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("<root>", f"{path} must contain a mapping")
    return data


def _parse_decimal(data: dict[str, Any], key: str) -> Decimal:
    raw = data[key]
    if isinstance(raw, bool):
        raise ConfigurationError(key, f"expected a number, got {raw!r}")
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise ConfigurationError(key, f"expected a number, got {raw!r}") from None
    if not value.is_finite():
        raise ConfigurationError(key, f"must be finite, got {raw!r}")
    return value


def _parse_int(data: dict[str, Any], key: str) -> int:
    raw = data[key]
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigurationError(key, f"expected an integer, got {raw!r}")
    return raw


def parse_config(data: dict[str, Any], source: str = "<memory>") -> BillingConfig:
    """Validate a merged mapping and build the BillingConfig."""
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigurationError(unknown[0], "unknown configuration key")

    missing = sorted(_KNOWN_KEYS - set(data))
    if missing:
        raise ConfigurationError(missing[0], "required configuration key is missing")

    gst_rate = _parse_decimal(data, "gst_rate")
    if gst_rate < 0 or gst_rate >= 1:
        raise ConfigurationError("gst_rate", f"must be in [0, 1), got {gst_rate}")

    kg_per_bag = _parse_decimal(data, "kg_per_bag")
    if kg_per_bag <= 0:
        raise ConfigurationError("kg_per_bag", f"must be positive, got {kg_per_bag}")

    places = _parse_int(data, "money_decimal_places")
    if not 0 <= places <= 6:
        raise ConfigurationError("money_decimal_places", f"must be between 0 and 6, got {places}")

    rounding_mode = str(data["rounding_mode"])
    if rounding_mode not in _ROUNDING_MODES:
        raise ConfigurationError("rounding_mode", f"unknown rounding mode {rounding_mode!r}")

    try:
        order = AllocationOrder(str(data["allocation_order"]))
    except ValueError:
        raise ConfigurationError(
            "allocation_order", f"unknown allocation order {data['allocation_order']!r}"
        ) from None

    timeout = _parse_decimal(data, "lock_timeout_seconds")
    if timeout <= 0:
        raise ConfigurationError("lock_timeout_seconds", f"must be positive, got {timeout}")

    database_url = data["database_url"]
    if not isinstance(database_url, str) or not database_url:
        raise ConfigurationError("database_url", "must be a non-empty string")

    return BillingConfig(
        gst_rate=gst_rate,
        kg_per_bag=kg_per_bag,
        money_decimal_places=places,
        rounding_mode=rounding_mode,
        allocation_order=order,
        lock_timeout_seconds=float(timeout),
        database_url=database_url,
        source=source,
    )


def load_config(path: Path | None = None) -> BillingConfig:
    """Packaged defaults overlaid with the optional site file at ``path``."""
    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)
    if path is not None:
        overrides = load_yaml_file(Path(path))
        unknown = sorted(set(overrides) - _KNOWN_KEYS)
        if unknown:
            raise ConfigurationError(unknown[0], f"unknown configuration key in {path}")
        data.update(overrides)
        source = str(path)
    return parse_config(data, source=source)
