"""Prompt composition for each retrieval strategy."""
from typing import Sequence

from models.candidate import Candidate, ComposedPrompt, Decision, Strategy

REFUSAL_PHRASE = "The provided resources do not contain this information."
SUPPLEMENT_MARKER = "[Supplemented from general knowledge]"
NO_RESOURCE_PLACEHOLDER = "(No matching resource found)"
HISTORY_DISCLAIMER = (
    "The following is the earlier conversation, provided for reference only. "
    "Its correctness is not guaranteed."
)

BASE_BEHAVIOR = (
    "You are a professional, honest assistant that follows instructions exactly. "
    "Answers must be extremely concise and only state the essential point."
)

BEHAVIOR_TEMPLATES = {
    Strategy.STRICT_RETRIEVAL: (
        f"{BASE_BEHAVIOR}\n"
        "[STRICT MODE]\n"
        "1. Use only content that appears verbatim in the provided resources.\n"
        "2. Do not guess, infer, add general knowledge, paraphrase or expand.\n"
        "3. If the resources do not contain the complete answer, reply exactly: "
        f"'{REFUSAL_PHRASE}'\n"
        "4. Answer in a single sentence with no explanation, prefix or filler."
    ),
    Strategy.HYBRID_RETRIEVAL: (
        f"{BASE_BEHAVIOR}\n"
        "[HYBRID MODE]\n"
        "1. Prefer the wording of the provided resources.\n"
        "2. If the resources are incomplete, you may add general knowledge, but you must "
        f"mark it with {SUPPLEMENT_MARKER}.\n"
        "3. If the resources are unrelated, begin with: 'Not covered by the resources; "
        "answering from general knowledge:'\n"
        "4. Keep the whole answer to one sentence where possible."
    ),
    Strategy.GENERATION_ONLY: (
        f"{BASE_BEHAVIOR}\n"
        "Answer the question directly in one concise, accurate sentence with no extra text."
    ),
}

QUESTION_HEADERS = {
    Strategy.STRICT_RETRIEVAL: "Answer the following question using only the resource above, verbatim:",
    Strategy.HYBRID_RETRIEVAL: "Answer the following question using the resource above:",
}


def format_context(candidates: Sequence[Candidate]) -> str:
    """Render candidates in ranked order with their 1-based position and score."""
    if not candidates:
        return NO_RESOURCE_PLACEHOLDER

    return "\n\n".join(
        f"Resource {position} (similarity {candidate.score:.4f}): {candidate.content}"
        for position, candidate in enumerate(candidates, start=1)
    )


class PromptComposer:
    """Builds behavior and user instructions that encode retrieval trust."""

    def compose(
        self,
        decision: Decision,
        question: str,
        candidates: Sequence[Candidate]
    ) -> ComposedPrompt:
        """
        Compose the prompt pair for a decision.

        Args:
            decision: Policy decision for the question
            question: Literal user question
            candidates: Ranked candidates the decision was made on

        Returns:
            ComposedPrompt with behavior and user instructions

        Raises:
            ValueError: If the decision strategy has no template
        """
        if decision.strategy not in BEHAVIOR_TEMPLATES:
            raise ValueError(f"Unknown retrieval strategy: {decision.strategy!r}")

        behavior = BEHAVIOR_TEMPLATES[decision.strategy]

        if decision.strategy == Strategy.GENERATION_ONLY:
            return ComposedPrompt(behavior_instructions=behavior, user_instructions=question)

        top_score = candidates[0].score if candidates else 0.0
        user_instructions = (
            f"Top similarity score: {top_score:.3f} (max 1.0)\n\n"
            f"Reference resources:\n{format_context(candidates)}\n\n"
            f"{QUESTION_HEADERS[decision.strategy]}\n{question}"
        )
        return ComposedPrompt(behavior_instructions=behavior, user_instructions=user_instructions)
