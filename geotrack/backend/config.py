"""
backend/config.py

Application configuration via Pydantic Settings.
All values can be overridden with environment variables or a .env file.

Quick start — create a .env file in your project root:
    PREDICTION_THRESHOLD=0.8
    ENABLE_REAL_TIME_ALERTS=true
    HIGH_RISK_COUNTRIES=North Korea,Iran
    DB_PATH=data/geotrack.db

`Settings` is read once at startup.  The subset that can change while the
service runs lives in `DetectionConfig`, which is passed explicitly into the
tracker / scorer / pipeline constructors and replaced via
`ClassificationPipeline.reconfigure()`.
"""

from __future__ import annotations

import json
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_SAFE_COUNTRIES: list[str] = [
    "United States",
    "Canada",
    "United Kingdom",
    "Germany",
    "France",
    "Netherlands",
    "Ireland",
    "Sweden",
    "Switzerland",
    "Japan",
    "Australia",
    "Singapore",
]

DEFAULT_HIGH_RISK_COUNTRIES: list[str] = [
    "North Korea",
    "Iran",
    "Syria",
    "Russia",
    "Belarus",
]

DEFAULT_SUSPICIOUS_TLDS: list[str] = [".tk", ".ml", ".ga", ".cf", ".xyz", ".top", ".cc"]


def _parse_str_list(v):
    """Accept a JSON array or a comma-separated string for list settings."""
    if isinstance(v, str):
        v = v.strip()
        if v.startswith("["):
            try:
                return json.loads(v)
            except ValueError:
                pass
        return [item.strip() for item in v.split(",") if item.strip()]
    return v


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Detection
    PREDICTION_THRESHOLD: float = 0.75
    ML_THRESHOLD: float = 0.75
    ENABLE_ANOMALY_DETECTION: bool = True
    ENABLE_REAL_TIME_ALERTS: bool = True
    ENABLE_IP_BLOCKING: bool = False   # intent is logged only, never enforced
    SAFE_COUNTRIES: Annotated[list[str], NoDecode] = DEFAULT_SAFE_COUNTRIES
    HIGH_RISK_COUNTRIES: Annotated[list[str], NoDecode] = DEFAULT_HIGH_RISK_COUNTRIES
    SUSPICIOUS_TLDS: Annotated[list[str], NoDecode] = DEFAULT_SUSPICIOUS_TLDS

    # Tracking
    WINDOW_SECONDS: int = 300
    UNEXPECTED_IP_MIN_CONNECTIONS: int = 10
    SUSPICIOUS_SET_THRESHOLD: int = 5
    MAX_TRACKED_DOMAINS: int = 10_000

    # History / ledger
    HISTORY_SIZE: int = 100
    LEDGER_CAPACITY: int = 100

    # Geo resolver
    USE_MULTIPLE_APIS: bool = True
    GEO_RETRY_ATTEMPTS: int = 2
    GEO_RETRY_BACKOFF_SECONDS: float = 1.0
    GEO_TIMEOUT_SECONDS: float = 5.0
    GEO_CACHE_TTL_SECONDS: int = 3_600
    GEO_CACHE_SIZE: int = 5_000

    # Queues
    EVENT_QUEUE_SIZE: int = 1_000

    # Storage
    DB_PATH: str = "data/geotrack.db"
    PERSIST_INTERVAL_SECONDS: int = 30

    # API
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("SAFE_COUNTRIES", "HIGH_RISK_COUNTRIES", "SUSPICIOUS_TLDS", mode="before")
    @classmethod
    def parse_lists(cls, v):
        return _parse_str_list(v)


class DetectionConfig(BaseModel):
    """
    Runtime-mutable detection options.

    Instances are frozen; use `updated()` to derive a new one.  Unknown keys
    are rejected so a typo in a settings update never silently does nothing.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    prediction_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    ml_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    enable_anomaly_detection: bool = True
    enable_real_time_alerts: bool = True
    enable_ip_blocking: bool = False
    safe_countries: list[str] = Field(default_factory=lambda: list(DEFAULT_SAFE_COUNTRIES))
    high_risk_countries: list[str] = Field(default_factory=lambda: list(DEFAULT_HIGH_RISK_COUNTRIES))
    suspicious_tlds: list[str] = Field(default_factory=lambda: list(DEFAULT_SUSPICIOUS_TLDS))
    use_multiple_apis: bool = True

    @field_validator("safe_countries", "high_risk_countries", "suspicious_tlds", mode="before")
    @classmethod
    def parse_lists(cls, v):
        return _parse_str_list(v)

    @field_validator("suspicious_tlds")
    @classmethod
    def normalise_tlds(cls, v: list[str]) -> list[str]:
        # ".TK", "tk" and ".tk" all mean the same suffix
        return ["." + t.lower().lstrip(".") for t in v if t.strip(".")]

    @classmethod
    def from_settings(cls, s: Settings) -> "DetectionConfig":
        return cls(
            prediction_threshold=s.PREDICTION_THRESHOLD,
            ml_threshold=s.ML_THRESHOLD,
            enable_anomaly_detection=s.ENABLE_ANOMALY_DETECTION,
            enable_real_time_alerts=s.ENABLE_REAL_TIME_ALERTS,
            enable_ip_blocking=s.ENABLE_IP_BLOCKING,
            safe_countries=s.SAFE_COUNTRIES,
            high_risk_countries=s.HIGH_RISK_COUNTRIES,
            suspicious_tlds=s.SUSPICIOUS_TLDS,
            use_multiple_apis=s.USE_MULTIPLE_APIS,
        )

    def updated(self, **changes) -> "DetectionConfig":
        """Return a validated copy with *changes* applied."""
        merged = self.model_dump()
        merged.update(changes)
        return DetectionConfig.model_validate(merged)


settings = Settings()
