"""
billing_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- YAML-backed, validated at load time.  Sits above
    ``billing_kernel`` and ``billing_engines`` and below
    ``billing_modules``.  The kernel MUST NEVER import from
    ``billing_config``.

Failure modes:
    - ``FileNotFoundError`` for a missing site file.
    - ``ConfigurationError`` for invalid values or unknown keys.

Audit relevance:
    Every load emits a ``BILLING_CONFIG_TRACE`` log entry with the source
    and the effective values.
"""

from __future__ import annotations

import threading
from pathlib import Path

from billing_config.loader import load_config
from billing_config.schema import BillingConfig
from billing_kernel.db.engine import init_engine_from_url
from billing_kernel.logging_config import get_logger

_logger = get_logger("config")

_cache: dict[str | None, BillingConfig] = {}
_cache_lock = threading.Lock()


def get_active_config(path: Path | str | None = None) -> BillingConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned config has passed validation.
        - Repeated calls with the same ``path`` return the same object.
    """
    key = str(path) if path is not None else None
    with _cache_lock:
        config = _cache.get(key)
        if config is not None:
            return config

        config = load_config(Path(path) if path is not None else None)
        _cache[key] = config

    _logger.info("BILLING_CONFIG_TRACE", extra={
        "trace_type": "BILLING_CONFIG_TRACE",
        "source": config.source,
        "gst_rate": str(config.gst_rate),
        "money_decimal_places": config.money_decimal_places,
        "rounding_mode": config.rounding_mode,
        "allocation_order": config.allocation_order.value,
        "lock_timeout_seconds": config.lock_timeout_seconds,
        "database_dialect": config.database_url.split(":", 1)[0],
    })
    return config


def init_engine(path: Path | str | None = None, echo: bool = False):
    """Initialize the kernel engine from the active config's ``database_url``."""
    return init_engine_from_url(get_active_config(path).database_url, echo=echo)


def reset_active_config() -> None:
    """Drop cached configs.  FOR TESTING ONLY."""
    with _cache_lock:
        _cache.clear()


__all__ = ["BillingConfig", "get_active_config", "init_engine", "reset_active_config"]
