"""Candidate and decision data models."""
from dataclasses import dataclass
from typing import Optional


class Strategy:
    """Retrieval trust strategies produced by the retrieval policy."""
    STRICT_RETRIEVAL = "strict_retrieval"
    HYBRID_RETRIEVAL = "hybrid_retrieval"
    GENERATION_ONLY = "generation_only"

    ALL = (STRICT_RETRIEVAL, HYBRID_RETRIEVAL, GENERATION_ONLY)


@dataclass(frozen=True)
class Candidate:
    """Retrieved passage with its similarity score."""
    content: str
    score: float  # 0.0 to 1.0, higher is more similar
    passage_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"content": self.content, "score": self.score, "passage_id": self.passage_id}


@dataclass(frozen=True)
class Decision:
    """
    Retrieval policy outcome for one question.

    Attributes:
        strategy: One of Strategy.ALL
        confidence: Top score for retrieval strategies, fixed fallback otherwise
    """
    strategy: str
    confidence: float


@dataclass(frozen=True)
class ComposedPrompt:
    """Prompt pair handed to the generation service."""
    behavior_instructions: str
    user_instructions: str
