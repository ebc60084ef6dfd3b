"""Conversation store for multi-turn conversation support."""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

from models.conversation import ROLES, Conversation, ConversationSummary, Turn
from services.conversation_backends import ConversationBackend, parse_timestamp
from services.errors import ConfigurationError, NotFound

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationStore:
    """
    Owns the conversation lifecycle: create, read, append, clear, delete and expire.

    Expiry is evaluated lazily against last_accessed_at on every access, so an
    expired conversation is absent immediately even if the backend has not yet
    removed it. Operations on the same id are serialized by a per-id lock.
    """

    def __init__(
        self,
        backend: ConversationBackend,
        session_timeout_seconds: int = 24 * 60 * 60,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the store.

        Args:
            backend: Durable key-value backend for conversation records
            session_timeout_seconds: Idle time after which a conversation expires
            clock: Returns the current timezone-aware UTC time

        Raises:
            ConfigurationError: If the timeout is not positive
        """
        if session_timeout_seconds <= 0:
            raise ConfigurationError(
                f"session_timeout_seconds must be positive, got {session_timeout_seconds}",
                details={"session_timeout_seconds": session_timeout_seconds}
            )

        self.backend = backend
        self.session_timeout = timedelta(seconds=session_timeout_seconds)
        self._clock = clock or _utcnow
        # TODO: evict per-id locks for conversations that have been deleted or expired
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        logger.info(f"ConversationStore initialized (timeout: {session_timeout_seconds}s)")

    @contextmanager
    def lock(self, conversation_id: str) -> Iterator[None]:
        """Hold the per-conversation lock; re-entrant for the holding thread."""
        with self._locks_guard:
            id_lock = self._locks.setdefault(conversation_id, threading.RLock())
        with id_lock:
            yield

    def get_or_create(self, conversation_id: str) -> Conversation:
        """
        Get a live conversation, refreshing last access, or create an empty one.

        Args:
            conversation_id: Externally supplied conversation ID

        Returns:
            Conversation object
        """
        with self.lock(conversation_id):
            now = self._clock()
            conversation = self._load_live(conversation_id, now)

            if conversation is not None:
                conversation.last_accessed_at = now
                self.backend.save(self._to_record(conversation))
                logger.debug(f"Retrieved conversation {conversation_id} with {conversation.turn_count} turns")
                return conversation

            stored = self.backend.insert_if_absent(self._to_record(Conversation(
                conversation_id=conversation_id,
                created_at=now,
                last_accessed_at=now
            )))
            logger.info("Created new conversation", extra={"conversation_id": conversation_id})
            return self._from_record(stored)

    def get(self, conversation_id: str) -> Optional[Conversation]:
        """Look up a live conversation; returns None if absent or expired."""
        with self.lock(conversation_id):
            now = self._clock()
            conversation = self._load_live(conversation_id, now)
            if conversation is None:
                return None

            conversation.last_accessed_at = now
            self.backend.save(self._to_record(conversation))
            return conversation

    def append(
        self,
        conversation_id: str,
        role: str,
        content: str,
        usage: Optional[Dict[str, Any]] = None
    ) -> Conversation:
        """
        Append one turn and update counters.

        Args:
            conversation_id: ID of an existing conversation
            role: "user" or "assistant"
            content: Literal message text
            usage: Optional token accounting; an integer total_tokens is aggregated

        Returns:
            Updated conversation

        Raises:
            ValueError: If role is not recognized
            NotFound: If the conversation does not exist or has expired
        """
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")

        with self.lock(conversation_id):
            now = self._clock()
            conversation = self._require_live(conversation_id, now)

            conversation.turns.append(Turn(role=role, content=content, recorded_at=now, usage=usage))
            conversation.turn_count = len(conversation.turns)
            conversation.total_tokens += self._usage_tokens(usage)
            conversation.last_accessed_at = now

            self.backend.save(self._to_record(conversation))
            logger.debug(f"Appended {role} turn to conversation {conversation_id}")
            return conversation

    def clear(self, conversation_id: str) -> Conversation:
        """
        Drop all turns and zero counters, keeping the conversation itself.

        Raises:
            NotFound: If the conversation does not exist or has expired
        """
        with self.lock(conversation_id):
            now = self._clock()
            conversation = self._require_live(conversation_id, now)

            conversation.turns = []
            conversation.turn_count = 0
            conversation.total_tokens = 0
            conversation.last_accessed_at = now

            self.backend.save(self._to_record(conversation))
            logger.info("Cleared conversation history", extra={"conversation_id": conversation_id})
            return conversation

    def delete(self, conversation_id: str) -> bool:
        """Remove a conversation entirely; returns whether a live one was removed."""
        with self.lock(conversation_id):
            if self._load_live(conversation_id, self._clock()) is None:
                return False

            deleted = self.backend.delete(conversation_id)
            if deleted:
                logger.info("Deleted conversation", extra={"conversation_id": conversation_id})
            return deleted

    def list(self) -> List[ConversationSummary]:
        """Summaries of all live conversations, without turn bodies."""
        now = self._clock()
        summaries = []
        for row in self.backend.list_all():
            last_accessed_at = parse_timestamp(row["last_accessed_at"])
            if now - last_accessed_at > self.session_timeout:
                continue
            summaries.append(ConversationSummary(
                conversation_id=row["conversation_id"],
                turn_count=row.get("turn_count") or 0,
                total_tokens=row.get("total_tokens") or 0,
                created_at=parse_timestamp(row["created_at"]),
                last_accessed_at=last_accessed_at
            ))
        return summaries

    def count(self) -> int:
        """Number of live conversations, counted by the backend."""
        return self.backend.count_live(self._clock() - self.session_timeout)

    def purge_expired(self) -> int:
        """Physically delete every expired conversation from the backend."""
        cutoff = self._clock() - self.session_timeout
        removed = self.backend.delete_expired(cutoff)
        if removed:
            logger.info(f"Purged {removed} expired conversations")
        return removed

    def _load_live(self, conversation_id: str, now: datetime) -> Optional[Conversation]:
        record = self.backend.load(conversation_id)
        if record is None:
            return None

        conversation = self._from_record(record)
        if conversation.is_expired(self.session_timeout, now):
            self.backend.delete(conversation_id)
            logger.info("Expired conversation removed", extra={"conversation_id": conversation_id})
            return None

        return conversation

    def _require_live(self, conversation_id: str, now: datetime) -> Conversation:
        conversation = self._load_live(conversation_id, now)
        if conversation is None:
            raise NotFound(
                f"Conversation {conversation_id} not found",
                details={"conversation_id": conversation_id}
            )
        return conversation

    @staticmethod
    def _usage_tokens(usage: Optional[Dict[str, Any]]) -> int:
        if not usage:
            return 0
        total = usage.get("total_tokens")
        if isinstance(total, int) and not isinstance(total, bool):
            return total
        return 0

    @staticmethod
    def _to_record(conversation: Conversation) -> Dict[str, Any]:
        return conversation.to_dict()

    @staticmethod
    def _from_record(record: Dict[str, Any]) -> Conversation:
        turns = [
            Turn(
                role=t["role"],
                content=t["content"],
                recorded_at=parse_timestamp(t["recorded_at"]),
                usage=t.get("usage")
            )
            for t in record.get("turns") or []
        ]
        return Conversation(
            conversation_id=record["conversation_id"],
            created_at=parse_timestamp(record["created_at"]),
            last_accessed_at=parse_timestamp(record["last_accessed_at"]),
            turns=turns,
            turn_count=record.get("turn_count") or len(turns),
            total_tokens=record.get("total_tokens") or 0
        )
