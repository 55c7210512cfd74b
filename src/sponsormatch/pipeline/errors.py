# src/sponsormatch/pipeline/errors.py
from __future__ import annotations


class PipelineError(Exception):
    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code


class ClassificationError(PipelineError):
    """Provider unavailable, malformed response, or empty input. Recovered as NO_AD."""

    def __init__(self, message: str = "") -> None:
        super().__init__("CLASSIFICATION_FAILED", message)


class EmbeddingError(PipelineError):
    """Embedding provider unavailable or timed out. Recovered by dropping the semantic factor."""

    def __init__(self, message: str = "") -> None:
        super().__init__("EMBEDDING_FAILED", message)


class ConfigurationError(PipelineError):
    """Invalid thresholds, weights or limits. Fatal at startup."""

    def __init__(self, message: str = "") -> None:
        super().__init__("INVALID_CONFIGURATION", message)
