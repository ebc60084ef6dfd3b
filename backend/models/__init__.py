"""Data models for RefDesk RAG service."""
from .candidate import Candidate, ComposedPrompt, Decision, Strategy
from .conversation import Conversation, ConversationSummary, Turn
from .api import (
    AnswerResponse,
    CandidateOut,
    ConversationListResponse,
    ConversationResponse,
    ConversationSummaryOut,
    QueryRequest,
    TokenUsage,
    TurnOut,
)

__all__ = [
    "Candidate",
    "ComposedPrompt",
    "Decision",
    "Strategy",
    "Conversation",
    "ConversationSummary",
    "Turn",
    "AnswerResponse",
    "CandidateOut",
    "ConversationListResponse",
    "ConversationResponse",
    "ConversationSummaryOut",
    "QueryRequest",
    "TokenUsage",
    "TurnOut",
]
