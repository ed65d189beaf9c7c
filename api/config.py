"""
Configuration for the matching engine.

Settings come from environment variables (optionally loaded from a .env
file) and are validated into a MatchingConfig at startup. Invalid settings
raise InvalidConfiguration so the service never starts with weights that do
not sum to one or a tier ladder with gaps.

Scoring weights are read from WEIGHT_* variables and tier thresholds from
TIER_* variables; every other field maps to its upper-cased name.
"""

import logging
from enum import Enum

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from api.errors import InvalidConfiguration
from api.models import QualityTier

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-6


def _settings(env_prefix: str = "") -> SettingsConfigDict:
    return SettingsConfigDict(
        env_prefix=env_prefix,
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )


class ScoringWeights(BaseSettings):
    """Weights of the five recommendation score terms; must sum to 1."""

    model_config = _settings("WEIGHT_")

    similarity: float = Field(0.35, ge=0, le=1)
    subject: float = Field(0.25, ge=0, le=1)
    salary: float = Field(0.15, ge=0, le=1)
    profile_quality: float = Field(0.15, ge=0, le=1)
    experience: float = Field(0.10, ge=0, le=1)

    @model_validator(mode="after")
    def _check_sum(self):
        total = (
            self.similarity
            + self.subject
            + self.salary
            + self.profile_quality
            + self.experience
        )
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.6f}")
        return self


class TierThresholds(BaseSettings):
    """
    Quality tier ladder on the 0-100 recommendation score.

    A score at or above ``excellent`` is EXCELLENT, at or above ``great`` is
    GREAT, at or above ``good`` is GOOD, anything lower is FAIR.
    """

    model_config = _settings("TIER_")

    excellent: int = Field(85, ge=0, le=100)
    great: int = Field(70, ge=0, le=100)
    good: int = Field(55, ge=0, le=100)

    @model_validator(mode="after")
    def _check_monotonic(self):
        if not (self.excellent > self.great > self.good):
            raise ValueError(
                "Tier thresholds must be strictly decreasing: "
                f"excellent={self.excellent}, great={self.great}, good={self.good}"
            )
        return self

    def tier_for(self, score: int) -> QualityTier:
        if score >= self.excellent:
            return QualityTier.EXCELLENT
        if score >= self.great:
            return QualityTier.GREAT
        if score >= self.good:
            return QualityTier.GOOD
        return QualityTier.FAIR


class MissingVisaPolicy(str, Enum):
    """What to do when a candidate has no cached verdict for a country."""

    ALLOW = "allow"
    DENY = "deny"


class StoreBackend(str, Enum):
    MEMORY = "memory"
    WEAVIATE = "weaviate"


class CacheBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


class MatchingConfig(BaseSettings):
    """Validated engine configuration."""

    model_config = _settings()

    vector_dimension: int = Field(384, gt=0)

    min_similarity: float = Field(0.85, ge=0, le=1)
    candidate_min_similarity: float = Field(0.80, ge=0, le=1)
    hybrid_min_similarity: float = Field(0.75, ge=0, le=1)
    max_candidates: int = Field(20, gt=0)
    max_opportunities: int = Field(10, gt=0)
    hybrid_search_limit: int = Field(50, gt=0)

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    tiers: TierThresholds = Field(default_factory=TierThresholds)
    missing_visa_policy: MissingVisaPolicy = MissingVisaPolicy.ALLOW

    cache_ttl_seconds: int = Field(3600, gt=0)
    dedup_lookback_days: float = Field(7, gt=0)

    batch_size: int = Field(5, gt=0)
    max_parallelism: int = Field(5, gt=0)
    batch_delay_seconds: float = Field(2.0, ge=0)

    request_timeout_seconds: float = Field(10.0, gt=0)
    retry_attempts: int = Field(3, ge=1)
    retry_backoff_seconds: float = Field(0.5, ge=0)

    store_backend: StoreBackend = StoreBackend.MEMORY
    weaviate_url: str = "http://localhost:8080"
    cache_backend: CacheBackend = CacheBackend.MEMORY
    redis_url: str = "redis://localhost:6379/0"

    data_dir: str = Field("data", description="Directory /ingest/from-json reads")

    @field_validator(
        "missing_visa_policy", "store_backend", "cache_backend", mode="before"
    )
    @classmethod
    def _lower_case_choice(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


def load_config() -> MatchingConfig:
    """
    Build and validate the engine configuration from the environment.

    Returns:
        Validated MatchingConfig

    Raises:
        InvalidConfiguration: If any setting fails validation
    """
    try:
        config = MatchingConfig()
    except ValidationError as e:
        raise InvalidConfiguration(f"Invalid matching configuration: {e}")

    logger.info(
        f"Loaded matching config: store={config.store_backend.value}, "
        f"cache={config.cache_backend.value}, dim={config.vector_dimension}"
    )
    return config
