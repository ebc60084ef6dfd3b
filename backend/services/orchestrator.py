"""
Answer pipelines for RefDesk RAG service.

Single-turn and multi-turn flows share the same retrieval steps:
1. Embed the question
2. Rank stored passages against the query vector
3. Classify retrieval trust with RetrievalPolicy
4. Compose behavior and user instructions with PromptComposer
5. Generate the answer

Multi-turn answers additionally record the literal question and answer in the
ConversationStore; the composed, context-augmented prompt is never persisted.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from models.candidate import Candidate, ComposedPrompt, Decision
from models.conversation import ASSISTANT_ROLE, USER_ROLE, Turn
from services.conversation_store import ConversationStore
from services.decision_logger import DecisionLogger
from services.embedding_model import EmbeddingModel
from services.errors import NotFound
from services.llm_client import LLMClient, LLMResponse
from services.prompt_composer import HISTORY_DISCLAIMER, PromptComposer
from services.retrieval_policy import RetrievalPolicy
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class AnswerResult:
    """Generated answer with the decision it was produced under."""
    answer: str
    strategy: str
    confidence: float
    candidates: List[Candidate]
    model_used: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: int = 0
    prompt_tokens_estimate: Optional[int] = None
    conversation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "strategy": self.strategy,
            "confidence": self.confidence,
            "candidates": [c.to_dict() for c in self.candidates],
            "model_used": self.model_used,
            "tokens": {
                "input": self.usage.get("prompt_tokens", 0),
                "output": self.usage.get("completion_tokens", 0),
                "total": self.usage.get("total_tokens", 0),
            },
            "prompt_tokens_estimate": self.prompt_tokens_estimate,
            "latency_ms": self.latency_ms,
            "conversation_id": self.conversation_id,
        }


class Orchestrator:
    """Wires retrieval, policy, composition, generation and conversation state."""

    def __init__(
        self,
        embedding_model: EmbeddingModel,
        vector_store: VectorStore,
        llm_client: LLMClient,
        conversation_store: ConversationStore,
        policy: RetrievalPolicy,
        composer: Optional[PromptComposer] = None,
        top_k: int = 3,
        decision_logger: Optional[DecisionLogger] = None,
        encoder=None
    ):
        """
        Initialize the orchestrator.

        Args:
            embedding_model: Embeds questions
            vector_store: Ranks stored passages against a query vector
            llm_client: Generates answers from role-tagged messages
            conversation_store: Owns multi-turn conversation state
            policy: Retrieval trust classifier
            composer: Prompt composer (a default one is created if omitted)
            top_k: Number of candidates requested per question
            decision_logger: Optional JSONL audit trail
            encoder: Optional tiktoken encoding for outbound prompt size estimates
        """
        if top_k <= 0:
            raise ValueError("top_k must be positive")

        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.llm_client = llm_client
        self.conversation_store = conversation_store
        self.policy = policy
        self.composer = composer or PromptComposer()
        self.top_k = top_k
        self.decision_logger = decision_logger
        self.encoder = encoder

    def answer_once(self, question: str, model: Optional[str] = None) -> AnswerResult:
        """
        Answer a question without touching conversation state.

        Raises:
            ValueError: If the question is empty
            EmbeddingError, RetrievalError, GenerationError: Propagated unchanged
        """
        start_time = time.time()
        question = self._require_question(question)

        candidates, decision = self._retrieve_and_decide(question)
        prompt = self.composer.compose(decision, question, candidates)

        messages = [
            {"role": "system", "content": prompt.behavior_instructions},
            {"role": "user", "content": prompt.user_instructions},
        ]
        llm_response = self.llm_client.generate(messages, model=self.llm_client.resolve_model(model))

        return self._finish(question, decision, candidates, messages, llm_response, start_time)

    def answer_in_session(
        self,
        conversation_id: str,
        question: str,
        model: Optional[str] = None
    ) -> AnswerResult:
        """
        Answer a question as the next turn of a conversation.

        The literal question is recorded before anything else can fail, so an
        interrupted call leaves a user turn with no assistant reply. That is a
        valid conversation state. Calls for the same conversation are serialized.

        Raises:
            ValueError: If the conversation id or question is empty
            EmbeddingError, RetrievalError, GenerationError: Propagated unchanged
        """
        start_time = time.time()
        question = self._require_question(question)
        if not conversation_id or not conversation_id.strip():
            raise ValueError("Conversation id cannot be empty")

        with self.conversation_store.lock(conversation_id):
            conversation = self.conversation_store.get_or_create(conversation_id)
            history = list(conversation.turns)

            self.conversation_store.append(conversation_id, USER_ROLE, question)

            candidates, decision = self._retrieve_and_decide(question)
            prompt = self.composer.compose(decision, question, candidates)

            messages = self._session_messages(prompt, history)
            llm_response = self.llm_client.generate(messages, model=self.llm_client.resolve_model(model))

            self.conversation_store.append(
                conversation_id,
                ASSISTANT_ROLE,
                llm_response.text,
                usage=llm_response.usage()
            )

        return self._finish(
            question, decision, candidates, messages, llm_response, start_time,
            conversation_id=conversation_id
        )

    def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        conversation = self.conversation_store.get(conversation_id)
        if conversation is None:
            raise NotFound(
                f"Conversation {conversation_id} not found",
                details={"conversation_id": conversation_id}
            )
        return conversation.to_dict()

    def clear_conversation(self, conversation_id: str) -> Dict[str, Any]:
        conversation = self.conversation_store.clear(conversation_id)
        return {
            "conversation_id": conversation.conversation_id,
            "turn_count": conversation.turn_count,
            "total_tokens": conversation.total_tokens,
        }

    def delete_conversation(self, conversation_id: str) -> Dict[str, Any]:
        if not self.conversation_store.delete(conversation_id):
            raise NotFound(
                f"Conversation {conversation_id} not found",
                details={"conversation_id": conversation_id}
            )
        return {"conversation_id": conversation_id, "deleted": True}

    def list_conversations(self) -> List[Dict[str, Any]]:
        return [summary.to_dict() for summary in self.conversation_store.list()]

    def _retrieve_and_decide(self, question: str) -> Tuple[List[Candidate], Decision]:
        query_embedding = self.embedding_model.embed_text(question)
        candidates = self.vector_store.search(query_embedding, top_k=self.top_k)
        decision = self.policy.decide(candidates)
        return candidates, decision

    @staticmethod
    def _session_messages(prompt: ComposedPrompt, history: List[Turn]) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": prompt.behavior_instructions}]
        if history:
            messages.append({"role": "system", "content": HISTORY_DISCLAIMER})
            messages.extend({"role": turn.role, "content": turn.content} for turn in history)
        messages.append({"role": "user", "content": prompt.user_instructions})
        return messages

    def _estimate_prompt_tokens(self, messages: List[Dict[str, str]]) -> Optional[int]:
        if self.encoder is None:
            return None
        return sum(
            len(self.encoder.encode(message["content"], disallowed_special=()))
            for message in messages
        )

    def _finish(
        self,
        question: str,
        decision: Decision,
        candidates: List[Candidate],
        messages: List[Dict[str, str]],
        llm_response: LLMResponse,
        start_time: float,
        conversation_id: Optional[str] = None
    ) -> AnswerResult:
        latency_ms = int((time.time() - start_time) * 1000)
        top_score = candidates[0].score if candidates else None

        logger.info(
            f"Answered with {decision.strategy} in {latency_ms}ms",
            extra={
                "strategy": decision.strategy,
                "confidence": decision.confidence,
                "top_score": top_score,
                "conversation_id": conversation_id,
            }
        )

        if self.decision_logger is not None:
            self.decision_logger.log_decision(
                question=question,
                strategy=decision.strategy,
                confidence=decision.confidence,
                top_score=top_score,
                candidates_retrieved=len(candidates),
                model_used=llm_response.model_used,
                tokens_input=llm_response.tokens_input,
                tokens_output=llm_response.tokens_output,
                latency_ms=latency_ms,
                conversation_id=conversation_id
            )

        return AnswerResult(
            answer=llm_response.text,
            strategy=decision.strategy,
            confidence=decision.confidence,
            candidates=list(candidates),
            model_used=llm_response.model_used,
            usage=llm_response.usage(),
            latency_ms=latency_ms,
            prompt_tokens_estimate=self._estimate_prompt_tokens(messages),
            conversation_id=conversation_id
        )

    @staticmethod
    def _require_question(question: str) -> str:
        if not question or not question.strip():
            raise ValueError("Question cannot be empty")
        return question
