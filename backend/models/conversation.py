"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
ROLES = (USER_ROLE, ASSISTANT_ROLE)


@dataclass(frozen=True)
class Turn:
    """Represents a single role-tagged message in a conversation."""
    role: str
    content: str
    recorded_at: datetime
    usage: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "recorded_at": self.recorded_at.isoformat(),
            "usage": self.usage,
        }


@dataclass
class Conversation:
    """Represents a multi-turn conversation."""
    conversation_id: str
    created_at: datetime
    last_accessed_at: datetime
    turns: List[Turn] = field(default_factory=list)
    turn_count: int = 0
    total_tokens: int = 0

    def is_expired(self, timeout: timedelta, now: datetime) -> bool:
        return now - self.last_accessed_at > timeout

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "turns": [turn.to_dict() for turn in self.turns],
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "turn_count": self.turn_count,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ConversationSummary:
    """Conversation counters and timestamps without turn bodies."""
    conversation_id: str
    turn_count: int
    total_tokens: int
    created_at: datetime
    last_accessed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "turn_count": self.turn_count,
            "total_tokens": self.total_tokens,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
        }
