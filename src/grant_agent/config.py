"""Configuration models for the grant agent."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Configures the turn loop, its timeouts and the user-facing failure text."""

    history_window: int = Field(default=10, ge=1)
    selection_timeout_seconds: float | None = Field(default=None, gt=0.0)
    synthesis_timeout_seconds: float | None = Field(default=None, gt=0.0)
    tool_timeout_seconds: float | None = Field(default=None, gt=0.0)
    error_message: str = "Sorry, an error occurred: {message}. Please try again."


class GatewayConfig(BaseModel):
    """Configures the chat model behind the model gateway."""

    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    grounding_enabled: bool = True


class CacheConfig(BaseModel):
    """Bounds the request cache shared by the discovery sources."""

    max_entries: int = Field(default=256, ge=1)
    ttl_seconds: float = Field(default=3600.0, gt=0.0)


class DiscoveryConfig(BaseModel):
    """Configures external funding searches and result ranking."""

    top_n: int = Field(default=15, ge=1)
    max_retries: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    national_page_size: int = Field(default=100, ge=1)
    eu_page_size: int = Field(default=50, ge=1)
    eu_max_pages: int = Field(default=30, ge=1)
    default_window_days: int = Field(default=365, ge=1)
    tender_window_days: int = Field(default=7, ge=1)
    short_keyword_threshold: int = Field(default=3, ge=1)


class ValidationConfig(BaseModel):
    """Thresholds used by eligibility validation and its score corrections."""

    min_description_length: int = Field(default=50, ge=1)
    domain_ceiling: float = 30.0
    domain_overall_ceiling: float = 25.0
    domain_mid_threshold: float = 40.0
    overall_mid_threshold: float = 40.0
    domain_margin: float = 15.0
    high_overall_threshold: float = 80.0
    mismatch_overall_ceiling: float = 40.0
    recompute_tolerance: float = Field(default=5.0, ge=0.0)
