"""
Retrieval policy for RefDesk RAG service.

Classifies how far retrieved passages can be trusted, using only the ranked
candidate list for the current question:

0. No candidates → generation_only at the fallback confidence
1. Top score >= high threshold and clear lead over runner-up → strict_retrieval
2. Top score >= low threshold (or strict rejected for ambiguity) → hybrid_retrieval
3. Otherwise → generation_only at the fallback confidence
"""
import logging
from typing import Sequence

from models.candidate import Candidate, Decision, Strategy
from services.errors import ConfigurationError, InvalidCandidateScore

logger = logging.getLogger(__name__)


class RetrievalPolicy:
    """Deterministic trust classifier over ranked candidates."""

    def __init__(
        self,
        high_threshold: float = 0.90,
        low_threshold: float = 0.85,
        min_gap_for_strict: float = 0.05,
        fallback_confidence: float = 0.3
    ):
        """
        Initialize the policy.

        Args:
            high_threshold: Minimum top score for strict retrieval
            low_threshold: Minimum top score for hybrid retrieval
            min_gap_for_strict: Minimum lead of top over second score for strict retrieval
            fallback_confidence: Confidence reported with generation_only

        Raises:
            ConfigurationError: If thresholds are misordered or out of range
        """
        for name, value in (
            ("high_threshold", high_threshold),
            ("low_threshold", low_threshold),
            ("min_gap_for_strict", min_gap_for_strict),
            ("fallback_confidence", fallback_confidence),
        ):
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(
                    f"{name} must be within [0, 1], got {value}",
                    details={name: value}
                )

        if low_threshold >= high_threshold:
            raise ConfigurationError(
                f"low_threshold ({low_threshold}) must be below high_threshold ({high_threshold})",
                details={"low_threshold": low_threshold, "high_threshold": high_threshold}
            )

        self.high_threshold = high_threshold
        self.low_threshold = low_threshold
        self.min_gap_for_strict = min_gap_for_strict
        self.fallback_confidence = fallback_confidence

    def decide(self, candidates: Sequence[Candidate]) -> Decision:
        """
        Classify retrieval trust for one question.

        Args:
            candidates: Candidates sorted by descending score, possibly empty

        Returns:
            Decision with strategy and confidence

        Raises:
            InvalidCandidateScore: If any score lies outside [0, 1]
        """
        self._validate_scores(candidates)

        if not candidates:
            logger.info("No candidates retrieved, falling back to generation only")
            return Decision(strategy=Strategy.GENERATION_ONLY, confidence=self.fallback_confidence)

        top_score = candidates[0].score

        # Only the top two are compared; a close runner-up means an ambiguous match
        low_discrimination = (
            len(candidates) >= 2
            and (top_score - candidates[1].score) < self.min_gap_for_strict
        )

        if top_score >= self.high_threshold and not low_discrimination:
            decision = Decision(strategy=Strategy.STRICT_RETRIEVAL, confidence=top_score)
        elif top_score >= self.low_threshold:
            decision = Decision(strategy=Strategy.HYBRID_RETRIEVAL, confidence=top_score)
        else:
            decision = Decision(strategy=Strategy.GENERATION_ONLY, confidence=self.fallback_confidence)

        logger.info(
            f"Decision: {decision.strategy} (top score: {top_score:.3f}, "
            f"low discrimination: {low_discrimination})"
        )
        return decision

    def _validate_scores(self, candidates: Sequence[Candidate]) -> None:
        for position, candidate in enumerate(candidates, start=1):
            if not 0.0 <= candidate.score <= 1.0:
                raise InvalidCandidateScore(
                    f"Candidate {position} has score {candidate.score} outside [0, 1]",
                    details={"position": position, "score": candidate.score}
                )
