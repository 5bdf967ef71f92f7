from __future__ import annotations

import os
from dataclasses import dataclass


def _csv(value: str) -> list[str]:
    items: list[str] = []
    for part in (value or "").split(","):
        item = part.strip()
        if item:
            items.append(item)
    return items


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_str(name: str, default: str) -> str:
    return str(os.getenv(name, default) or default)


LIVE_FETCH_MODES = {"batch", "partial"}


@dataclass(frozen=True)
class BaseConfig:
    ENV: str = "development"
    DEBUG: bool = False
    TESTING: bool = False

    APP_VERSION: str = "dev"
    TIMEZONE_DISPLAY: str = "Asia/Kolkata"

    # HRMS backend serving the action API (POST <base>/api).
    BACKEND_BASE_URL: str = "http://127.0.0.1:5002"
    BACKEND_TIMEOUT_SECONDS: float = 15.0

    SLA_DUE_SOON_MINUTES: int = 10
    SLA_TICK_INTERVAL_MS: int = 1000
    SLA_CONFIG_CACHE_TTL_SECONDS: int = 30

    LIVE_FETCH_MODE: str = "batch"
    LIVE_FETCH_MAX_WORKERS: int = 8
    STREAM_MAX_TICKS: int = 3600

    CORS_ORIGINS: list[str] | str = (
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000"
    )
    CORS_ALLOW_CREDENTIALS: bool = False

    LOG_LEVEL: str = "INFO"

    RATE_LIMIT_GLOBAL: str = "1200 per minute"
    RATE_LIMIT_DEFAULT: str = "300 per minute"

    TRUST_PROXY_HEADERS: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "APP_VERSION", _env_str("APP_VERSION", self.APP_VERSION))
        object.__setattr__(self, "TIMEZONE_DISPLAY", _env_str("TIMEZONE_DISPLAY", self.TIMEZONE_DISPLAY))

        object.__setattr__(
            self, "BACKEND_BASE_URL", _env_str("BACKEND_BASE_URL", self.BACKEND_BASE_URL).strip()
        )
        object.__setattr__(
            self,
            "BACKEND_TIMEOUT_SECONDS",
            max(1.0, _env_float("BACKEND_TIMEOUT_SECONDS", self.BACKEND_TIMEOUT_SECONDS)),
        )

        object.__setattr__(
            self, "SLA_DUE_SOON_MINUTES", max(0, _env_int("SLA_DUE_SOON_MINUTES", self.SLA_DUE_SOON_MINUTES))
        )
        object.__setattr__(
            self, "SLA_TICK_INTERVAL_MS", max(50, _env_int("SLA_TICK_INTERVAL_MS", self.SLA_TICK_INTERVAL_MS))
        )
        object.__setattr__(
            self,
            "SLA_CONFIG_CACHE_TTL_SECONDS",
            max(1, min(3600, _env_int("SLA_CONFIG_CACHE_TTL_SECONDS", self.SLA_CONFIG_CACHE_TTL_SECONDS))),
        )

        object.__setattr__(
            self, "LIVE_FETCH_MODE", _env_str("LIVE_FETCH_MODE", self.LIVE_FETCH_MODE).strip().lower()
        )
        object.__setattr__(
            self, "LIVE_FETCH_MAX_WORKERS", max(1, _env_int("LIVE_FETCH_MAX_WORKERS", self.LIVE_FETCH_MAX_WORKERS))
        )
        object.__setattr__(self, "STREAM_MAX_TICKS", max(1, _env_int("STREAM_MAX_TICKS", self.STREAM_MAX_TICKS)))

        cors_raw = os.getenv("CORS_ORIGINS")
        if cors_raw is not None:
            cors_raw = str(cors_raw or "").strip()
            if cors_raw == "*":
                object.__setattr__(self, "CORS_ORIGINS", "*")
            else:
                object.__setattr__(self, "CORS_ORIGINS", _csv(cors_raw))
        else:
            object.__setattr__(self, "CORS_ORIGINS", _csv(str(self.CORS_ORIGINS)))

        object.__setattr__(
            self, "CORS_ALLOW_CREDENTIALS", _env_bool("CORS_ALLOW_CREDENTIALS", self.CORS_ALLOW_CREDENTIALS)
        )

        object.__setattr__(self, "LOG_LEVEL", _env_str("LOG_LEVEL", self.LOG_LEVEL).upper())

        object.__setattr__(self, "RATE_LIMIT_GLOBAL", _env_str("RATE_LIMIT_GLOBAL", self.RATE_LIMIT_GLOBAL))
        object.__setattr__(self, "RATE_LIMIT_DEFAULT", _env_str("RATE_LIMIT_DEFAULT", self.RATE_LIMIT_DEFAULT))

        object.__setattr__(self, "TRUST_PROXY_HEADERS", _env_bool("TRUST_PROXY_HEADERS", self.TRUST_PROXY_HEADERS))

    @property
    def IS_PRODUCTION(self) -> bool:
        return str(self.ENV or "").lower() == "production"

    @property
    def DUE_SOON_MS(self) -> int:
        return int(self.SLA_DUE_SOON_MINUTES) * 60 * 1000

    def validate(self) -> None:
        if self.LIVE_FETCH_MODE not in LIVE_FETCH_MODES:
            raise RuntimeError("LIVE_FETCH_MODE must be batch|partial")
        if self.IS_PRODUCTION and not str(self.BACKEND_BASE_URL or "").strip():
            raise RuntimeError("BACKEND_BASE_URL must be set in production")
        if self.IS_PRODUCTION and self.CORS_ORIGINS == "*":
            raise RuntimeError("CORS_ORIGINS must not be '*' in production")


@dataclass(frozen=True)
class DevelopmentConfig(BaseConfig):
    ENV: str = "development"
    DEBUG: bool = True


@dataclass(frozen=True)
class ProductionConfig(BaseConfig):
    ENV: str = "production"
    DEBUG: bool = False


@dataclass(frozen=True)
class TestingConfig(BaseConfig):
    ENV: str = "testing"
    TESTING: bool = True


def get_config() -> BaseConfig:
    env = str(os.getenv("ENV") or os.getenv("APP_ENV") or "development").strip().lower()
    if env in {"prod", "production"}:
        cfg: BaseConfig = ProductionConfig()
    elif env in {"test", "testing"}:
        cfg = TestingConfig()
    else:
        cfg = DevelopmentConfig()

    cfg.validate()
    return cfg
