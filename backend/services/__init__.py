"""Services for RefDesk RAG service."""
from .errors import (
    ConfigurationError,
    EmbeddingError,
    ErrorInfo,
    GenerationError,
    InvalidCandidateScore,
    NotFound,
    RetrievalError,
    ServiceError,
)
from .retrieval_policy import RetrievalPolicy
from .prompt_composer import PromptComposer
from .conversation_backends import (
    ConversationBackend,
    InMemoryConversationBackend,
    SupabaseConversationBackend,
)
from .conversation_store import ConversationStore
from .embedding_model import EmbeddingModel
from .vector_store import VectorStore
from .llm_client import LLMClient, LLMResponse
from .decision_logger import DecisionLogger
from .orchestrator import AnswerResult, Orchestrator

__all__ = ['ServiceError', 'ErrorInfo', 'EmbeddingError', 'RetrievalError', 'GenerationError', 'NotFound', 'InvalidCandidateScore', 'ConfigurationError', 'RetrievalPolicy', 'PromptComposer', 'ConversationBackend', 'InMemoryConversationBackend', 'SupabaseConversationBackend', 'ConversationStore', 'EmbeddingModel', 'VectorStore', 'LLMClient', 'LLMResponse', 'DecisionLogger', 'AnswerResult', 'Orchestrator']
