"""
Application settings.

Values come from the process environment, with a `.env` file in the project root
loaded first (python-dotenv). Settings are read once and cached; tests build
their own `Settings` instances directly.

Environment variables:
- LEAD_STORE_BACKEND: "supabase" (default) or "memory"
- SUPABASE_URL / SUPABASE_KEY: required for the supabase backend
- LOG_LEVEL: root log level (default INFO)
- COMMISSION_AGENCY_RATE: share of the final price paid as agreed commission (default 0.05)
- COMMISSION_SPOTTER_SHARE: spotter's share of the agreed commission (default 0.10)
- LEAD_REJECTION_POLICY: "close" (default) or "reopen"
- NOTIFICATION_MAX_ATTEMPTS: delivery attempts per update (default 3)
- NOTIFICATION_RETRY_BASE_DELAY: seconds before the first retry, doubled per attempt (default 0.5)
- NOTIFICATION_WORKERS: background delivery threads; 0 delivers inline (default 4)
- CORS_ORIGINS: comma separated origins (default "*")
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from domain.lifecycle import RejectionPolicy

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)

_BACKENDS = ("supabase", "memory")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default).strip()
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}")
    if not value.is_finite() or value < 0 or value > 1:
        raise ValueError(f"{name} must be between 0 and 1, got {raw!r}")
    return value


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    lead_store_backend: str = "supabase"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    log_level: str = "INFO"
    commission_agency_rate: Decimal = Decimal("0.05")
    commission_spotter_share: Decimal = Decimal("0.10")
    rejection_policy: RejectionPolicy = RejectionPolicy.CLOSE
    notification_max_attempts: int = 3
    notification_retry_base_delay: float = 0.5
    notification_workers: int = 4
    cors_origins: Tuple[str, ...] = ("*",)

    def __post_init__(self) -> None:
        if self.lead_store_backend not in _BACKENDS:
            raise ValueError(
                f"LEAD_STORE_BACKEND must be one of {', '.join(_BACKENDS)}, got {self.lead_store_backend!r}"
            )
        if self.notification_max_attempts < 1:
            raise ValueError("NOTIFICATION_MAX_ATTEMPTS must be >= 1")

    @property
    def uses_supabase(self) -> bool:
        return self.lead_store_backend == "supabase"


def load_settings() -> Settings:
    """Build Settings from the environment. Raises ValueError on invalid values."""

    policy_raw = os.getenv("LEAD_REJECTION_POLICY", RejectionPolicy.CLOSE.value).strip().lower()
    try:
        policy = RejectionPolicy(policy_raw)
    except ValueError:
        raise ValueError(f"LEAD_REJECTION_POLICY must be 'close' or 'reopen', got {policy_raw!r}")

    origins = tuple(
        origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()
    )

    return Settings(
        lead_store_backend=os.getenv("LEAD_STORE_BACKEND", "supabase").strip().lower(),
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_key=os.getenv("SUPABASE_KEY") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        commission_agency_rate=_env_decimal("COMMISSION_AGENCY_RATE", "0.05"),
        commission_spotter_share=_env_decimal("COMMISSION_SPOTTER_SHARE", "0.10"),
        rejection_policy=policy,
        notification_max_attempts=_env_int("NOTIFICATION_MAX_ATTEMPTS", 3, minimum=1),
        notification_retry_base_delay=_env_float("NOTIFICATION_RETRY_BASE_DELAY", 0.5),
        notification_workers=_env_int("NOTIFICATION_WORKERS", 4),
        cors_origins=origins or ("*",),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


__all__ = ["Settings", "get_settings", "load_settings"]
