"""
api/serializers.py

Request / response models for the REST surface.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ObservationRequest(BaseModel):
    """One completed web request as reported by the browser extension."""

    model_config = ConfigDict(populate_by_name=True)

    ip: str
    domain: str | None = None
    url: str | None = None
    tab_id: int = Field(default=-1, alias="tabId")
    timestamp: float | None = Field(default=None, allow_inf_nan=False)
    response_headers: list[dict[str, Any]] | dict[str, str] | None = Field(
        default=None, alias="responseHeaders"
    )


class ConnectionResponse(BaseModel):
    ip: str
    domain: str
    tab_id: int
    timestamp: float
    reroute_target: str | None = None
    score: float
    factors: list[str]
    is_anomaly: bool
    ml_prediction: float | None = None
    ml_override: bool = False
    connection_count: int
    is_first_party: bool
    city: str | None = None
    country: str | None = None
    geo_source: str | None = None
    classified_at: float

    @classmethod
    def from_dict(cls, d: dict) -> "ConnectionResponse":
        return cls(**d)


class QueuedResponse(BaseModel):
    queued: bool
    ip: str
    domain: str


class ConnectionListResponse(BaseModel):
    items: list[ConnectionResponse]
    total: int


class BlockResponse(BaseModel):
    timestamp: float
    payload: dict
    previous_hash: str
    hash: str


class LedgerResponse(BaseModel):
    blocks: list[BlockResponse]
    length: int
    capacity: int
    tip: str


class VerifyResponse(BaseModel):
    valid: bool
    length: int


class ConfigResponse(BaseModel):
    prediction_threshold: float
    ml_threshold: float
    enable_anomaly_detection: bool
    enable_real_time_alerts: bool
    enable_ip_blocking: bool
    safe_countries: list[str]
    high_risk_countries: list[str]
    suspicious_tlds: list[str]
    use_multiple_apis: bool


class ConfigUpdateRequest(BaseModel):
    """Partial update — only provided fields change."""

    prediction_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    ml_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    enable_anomaly_detection: bool | None = None
    enable_real_time_alerts: bool | None = None
    enable_ip_blocking: bool | None = None
    safe_countries: list[str] | None = None
    high_risk_countries: list[str] | None = None
    suspicious_tlds: list[str] | None = None
    use_multiple_apis: bool | None = None


class StatsResponse(BaseModel):
    metrics: dict[str, int]
    pipeline: dict
    ws_connections: dict[str, int]


class AuditRequest(BaseModel):
    """Identifies the history entry to audit by its classification time."""

    classified_at: float = Field(allow_inf_nan=False)


class TabClearedResponse(BaseModel):
    tab_id: int
    removed: int
