# src/entity_store/settings.py
"""
Process-wide settings for the entity store.

The time zone configured here is the one every timestamp is written in and
read back with, so it has to match the zone the database uses for its own
defaults (e.g. ``CURRENT_TIMESTAMP`` columns).

Settings are read once from the environment:

- ``ENTITY_STORE_TIMEZONE``: IANA zone name (default ``UTC``).
- ``ENTITY_STORE_LOG_QUERIES``: when truthy, every statement and its bound
  parameters are logged at DEBUG level.

Applications that configure themselves in code call :func:`configure`.
"""

import logging
import os
from datetime import tzinfo
from functools import lru_cache
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, field_validator

log = logging.getLogger(__name__)

TIMEZONE_ENV_VAR = "ENTITY_STORE_TIMEZONE"
LOG_QUERIES_ENV_VAR = "ENTITY_STORE_LOG_QUERIES"

_TRUTHY = {"1", "true", "yes", "on"}


class StoreSettings(BaseModel):
    """Validated settings shared by the conversion layer and the store handle."""

    model_config = ConfigDict(frozen=True)

    timezone: str = "UTC"
    log_queries: bool = False

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Invalid timezone string: {value}") from e
        return value

    @property
    def tzinfo(self) -> tzinfo:
        return ZoneInfo(self.timezone)


_overrides: Optional[StoreSettings] = None


@lru_cache(maxsize=1)
def _settings_from_env() -> StoreSettings:
    timezone = os.getenv(TIMEZONE_ENV_VAR)
    if not timezone:
        log.warning(f"{TIMEZONE_ENV_VAR} not defined, using UTC")
        timezone = "UTC"
    log_queries = os.getenv(LOG_QUERIES_ENV_VAR, "").strip().lower() in _TRUTHY
    return StoreSettings(timezone=timezone, log_queries=log_queries)


def get_settings() -> StoreSettings:
    """Returns the active settings (explicit configuration wins over the environment)."""
    if _overrides is not None:
        return _overrides
    return _settings_from_env()


def configure(**values: Any) -> StoreSettings:
    """
    Replaces the process-wide settings.

    Fields not given keep their current value. Raises pydantic's
    ``ValidationError`` for an unknown time zone.
    """
    global _overrides
    current = get_settings().model_dump()
    current.update(values)
    _overrides = StoreSettings(**current)
    log.info(f"Entity store settings configured: {_overrides!r}")
    return _overrides


def reset_settings() -> None:
    """Drops explicit configuration and forgets the cached environment values."""
    global _overrides
    _overrides = None
    _settings_from_env.cache_clear()
