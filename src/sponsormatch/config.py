from __future__ import annotations

import math
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sponsormatch.pipeline.errors import ConfigurationError

DEFAULT_KNOWLEDGE_BASE_PATH = str(Path(__file__).resolve().parent / "data" / "advertisers.json")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "SponsorMatch"
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Providers
    OPENAI_API_KEY: str = ""
    CLASSIFIER_MODEL: str = "gpt-4o"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    CLASSIFICATION_TIMEOUT_S: float = 10.0
    EMBEDDING_TIMEOUT_S: float = 5.0

    # Scoring
    MIN_CONFIDENCE_THRESHOLD: float = 0.65
    MIN_MAPPING_SCORE: float = 40
    MAX_MAPPING_RESULTS: int = 3
    SEMANTIC_ANALYSIS_ENABLED: bool = True
    SCORE_ALL_MATCHES: bool = False

    KNOWLEDGE_BASE_PATH: str = DEFAULT_KNOWLEDGE_BASE_PATH
    DECISION_LOG_PATH: str = ""

    @field_validator("MIN_CONFIDENCE_THRESHOLD")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("MIN_CONFIDENCE_THRESHOLD must be within [0, 1].")
        return v

    @field_validator("MIN_MAPPING_SCORE")
    @classmethod
    def validate_min_score(cls, v: float) -> float:
        if not math.isfinite(v) or v < 0:
            raise ValueError("MIN_MAPPING_SCORE must be finite and non-negative.")
        return v

    @field_validator("MAX_MAPPING_RESULTS")
    @classmethod
    def validate_max_results(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_MAPPING_RESULTS must be at least 1.")
        return v

    @field_validator("CLASSIFICATION_TIMEOUT_S", "EMBEDDING_TIMEOUT_S")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError("Provider timeouts must be finite and positive.")
        return v


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, turning validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


@lru_cache
def get_settings() -> Settings:
    return load_settings()
