"""Error taxonomy shared by the retrieval, generation and conversation services."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ErrorInfo:
    """Structured error payload surfaced to callers."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class ServiceError(Exception):
    """Base exception carrying structured error information."""

    kind = "service_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error = ErrorInfo(
            code=code or self.kind.upper(),
            message=message,
            details=details or {}
        )
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "code": self.error.code,
            "message": self.error.message,
            "details": self.error.details,
        }


class EmbeddingError(ServiceError):
    """Embedding service failed to produce a vector."""
    kind = "embedding_error"


class RetrievalError(ServiceError):
    """Candidate ranking service failed."""
    kind = "retrieval_error"


class GenerationError(ServiceError):
    """Text generation failed (rate limit, auth, timeout, malformed response...)."""
    kind = "generation_error"


class NotFound(ServiceError):
    """Conversation id is unknown or has expired."""
    kind = "not_found"


class InvalidCandidateScore(ServiceError):
    """A candidate similarity score fell outside [0, 1]."""
    kind = "invalid_candidate_score"


class ConfigurationError(ServiceError):
    """Service was constructed with inconsistent settings."""
    kind = "configuration_error"
