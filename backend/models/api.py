"""API request and response models."""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    """Question submitted to /query or a session query endpoint."""
    question: str = Field(..., min_length=1, description="User question")
    model: Optional[str] = Field(None, description="Key from the available models list")


class CandidateOut(BaseModel):
    content: str
    score: float
    passage_id: Optional[str] = None


class TokenUsage(BaseModel):
    input: int
    output: int
    total: int


class AnswerResponse(BaseModel):
    """Answer with decision metadata."""
    answer: str
    strategy: str
    confidence: float
    candidates: List[CandidateOut]
    model_used: str
    tokens: TokenUsage
    prompt_tokens_estimate: Optional[int] = None
    latency_ms: int
    conversation_id: Optional[str] = None


class TurnOut(BaseModel):
    role: str
    content: str
    recorded_at: str
    usage: Optional[Dict[str, Any]] = None


class ConversationResponse(BaseModel):
    conversation_id: str
    turns: List[TurnOut]
    created_at: str
    last_accessed_at: str
    turn_count: int
    total_tokens: int


class ConversationSummaryOut(BaseModel):
    conversation_id: str
    turn_count: int
    total_tokens: int
    created_at: str
    last_accessed_at: str


class ConversationListResponse(BaseModel):
    sessions: List[ConversationSummaryOut]
    total_sessions: int
    config: Dict[str, int]
