"""
Runtime configuration.

Every tunable the engines use lives on ``Settings``. Nothing reads the
process environment at import time: the server calls ``Settings.from_env()``
once at startup and hands the instance to ``build_engine``. Tests construct
``Settings(...)`` directly.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

RXNORM_BASE_URL = "https://rxnav.nlm.nih.gov/REST"
OPENFDA_BASE_URL = "https://api.fda.gov"
ADVISORY_MODEL = "claude-sonnet-4-6"

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    # Upstream catalogs
    rxnorm_base_url: str = RXNORM_BASE_URL
    openfda_base_url: str = OPENFDA_BASE_URL
    openfda_api_key: Optional[str] = None
    http_timeout_s: float = Field(default=10.0, gt=0)
    package_search_limit: int = Field(default=100, ge=1, le=1000)

    # Retry / backoff (delay = base * multiplier^(attempt-1))
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay_s: float = Field(default=1.0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1)

    # Name resolution
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    low_confidence_warning: float = Field(default=0.8, ge=0.0, le=1.0)
    spelling_penalty: float = Field(default=0.9, ge=0.0, le=1.0)
    max_alternatives: int = Field(default=4, ge=0)
    approximate_max_entries: int = Field(default=10, ge=1)

    # Package optimization
    max_waste_percentage: float = Field(default=20.0, gt=0, le=100)
    prefer_single_package: bool = True
    max_recommendation_alternatives: int = Field(default=3, ge=0)

    # Advisory (LLM) layer
    advisory_enabled: bool = False
    anthropic_api_key: Optional[str] = None
    advisory_model: str = ADVISORY_MODEL
    advisory_max_tokens: int = Field(default=2000, ge=1)
    advisory_temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    advisory_timeout_s: float = Field(default=30.0, gt=0)
    circuit_failure_threshold: int = Field(default=3, ge=1)
    circuit_reset_timeout_s: float = Field(default=300.0, gt=0)

    # Cache
    cache_enabled: bool = True
    cache_ttl_s: int = Field(default=86400, ge=1)

    @property
    def advisory_configured(self) -> bool:
        return self.advisory_enabled and bool(self.anthropic_api_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.
        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        def put(key: str, name: str, cast=str) -> None:
            raw = env.get(name)
            if raw is None or raw == "":
                return
            values[key] = cast(raw)

        put("rxnorm_base_url", "RXNORM_BASE_URL")
        put("openfda_base_url", "FDA_BASE_URL")
        put("openfda_api_key", "FDA_API_KEY")
        put("http_timeout_s", "API_TIMEOUT_S", float)
        put("max_retries", "MAX_RETRIES", int)
        put("retry_base_delay_s", "RETRY_BASE_DELAY_S", float)
        put("min_confidence", "MIN_CONFIDENCE", float)
        put("max_waste_percentage", "MAX_WASTE_PERCENTAGE", float)
        put("advisory_enabled", "FEATURE_ADVISORY", lambda v: v.strip().lower() in _TRUTHY)
        put("anthropic_api_key", "ANTHROPIC_API_KEY")
        put("advisory_model", "ADVISORY_MODEL")
        put("advisory_timeout_s", "ADVISORY_TIMEOUT_S", float)
        put("cache_enabled", "CACHE_ENABLED", lambda v: v.strip().lower() in _TRUTHY)
        put("cache_ttl_s", "CACHE_TTL_S", int)
        return cls(**values)
