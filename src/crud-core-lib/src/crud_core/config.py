"""
crud_core.config — Environment-driven settings for the CRUD handler.

All values are read once at cold start.  Invalid values raise ValueError so a
misconfigured function fails on its first invocation instead of serving
wrong status codes or unbounded calls.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum

_REGION_ENV = "AWS_REGION"
_CONNECT_TIMEOUT_ENV = "DDB_CONNECT_TIMEOUT_SECONDS"
_READ_TIMEOUT_ENV = "DDB_READ_TIMEOUT_SECONDS"
_ERROR_STATUS_MODE_ENV = "ERROR_STATUS_MODE"

DEFAULT_REGION = "eu-west-2"
DEFAULT_CONNECT_TIMEOUT_SECONDS = 2.0
DEFAULT_READ_TIMEOUT_SECONDS = 5.0


class ErrorStatusMode(StrEnum):
    """How error envelopes map onto HTTP status codes.

    mapped   — each error kind gets its own 4xx/5xx status.
    embedded — always 200 with the error kind in the body, for gateway
               integrations that only declare a single response code.
    """

    MAPPED = "mapped"
    EMBEDDED = "embedded"


@dataclass(frozen=True)
class Settings:
    region: str = DEFAULT_REGION
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    read_timeout: float = DEFAULT_READ_TIMEOUT_SECONDS
    error_status_mode: ErrorStatusMode = ErrorStatusMode.MAPPED

    @classmethod
    def from_env(cls) -> Settings:
        mode_raw = os.environ.get(_ERROR_STATUS_MODE_ENV, ErrorStatusMode.MAPPED.value)
        try:
            mode = ErrorStatusMode(mode_raw.strip().lower())
        except ValueError as exc:
            raise ValueError(
                f"{_ERROR_STATUS_MODE_ENV} must be one of: mapped, embedded"
            ) from exc
        return cls(
            region=os.environ.get(_REGION_ENV) or DEFAULT_REGION,
            connect_timeout=_positive_float(_CONNECT_TIMEOUT_ENV, DEFAULT_CONNECT_TIMEOUT_SECONDS),
            read_timeout=_positive_float(_READ_TIMEOUT_ENV, DEFAULT_READ_TIMEOUT_SECONDS),
            error_status_mode=mode,
        )


def _positive_float(env_name: str, default: float) -> float:
    raw = os.environ.get(env_name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{env_name} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{env_name} must be greater than zero")
    return value
