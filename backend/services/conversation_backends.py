"""Durable key-value backends for conversation records."""
import copy
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional
from supabase import create_client, Client

from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ("conversation_id", "turn_count", "total_tokens", "created_at", "last_accessed_at")


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO-8601 timestamp, handling Supabase's variable precision.

    Supabase can return timestamps with varying microsecond precision,
    which Python's fromisoformat() can't always handle. This function
    normalizes the timestamp format.

    Args:
        timestamp_str: Timestamp string

    Returns:
        datetime object
    """
    # Replace 'Z' with '+00:00' for timezone
    timestamp_str = timestamp_str.replace("Z", "+00:00")

    # Handle microseconds with more or fewer than 6 digits
    # Format: 2026-02-21T02:08:26.18976+00:00
    if "." in timestamp_str:
        date_part, fraction = timestamp_str.split(".", 1)
        tz = ""
        for sign in ("+", "-"):
            if sign in fraction:
                fraction, tz_rest = fraction.split(sign, 1)
                tz = f"{sign}{tz_rest}"
                break
        fraction = fraction[:6].ljust(6, "0")
        timestamp_str = f"{date_part}.{fraction}{tz}"

    return datetime.fromisoformat(timestamp_str)


class ConversationBackend:
    """
    Storage contract used by ConversationStore.

    Records are JSON-friendly dicts with keys conversation_id, turns,
    created_at, last_accessed_at, turn_count and total_tokens.
    """

    def load(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def insert_if_absent(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Atomically insert the record unless the id exists; return the stored record."""
        raise NotImplementedError

    def save(self, record: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, conversation_id: str) -> bool:
        raise NotImplementedError

    def list_all(self) -> List[Dict[str, Any]]:
        """Return summary columns for every stored record."""
        raise NotImplementedError

    def count_live(self, cutoff: datetime) -> int:
        """Count records last accessed at or after cutoff."""
        raise NotImplementedError

    def delete_expired(self, cutoff: datetime) -> int:
        """Delete records last accessed before cutoff; return how many were removed."""
        raise NotImplementedError


class InMemoryConversationBackend(ConversationBackend):
    """Process-local backend for development and tests."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(conversation_id)
            return copy.deepcopy(record) if record is not None else None

    def insert_if_absent(self, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = self._records.setdefault(record["conversation_id"], copy.deepcopy(record))
            return copy.deepcopy(stored)

    def save(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self._records[record["conversation_id"]] = copy.deepcopy(record)

    def delete(self, conversation_id: str) -> bool:
        with self._lock:
            return self._records.pop(conversation_id, None) is not None

    def list_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [
                {column: record[column] for column in SUMMARY_COLUMNS}
                for record in self._records.values()
            ]
        return sorted(rows, key=lambda row: parse_timestamp(row["last_accessed_at"]), reverse=True)

    def count_live(self, cutoff: datetime) -> int:
        with self._lock:
            return sum(
                1 for record in self._records.values()
                if parse_timestamp(record["last_accessed_at"]) >= cutoff
            )

    def delete_expired(self, cutoff: datetime) -> int:
        with self._lock:
            expired = [
                conversation_id
                for conversation_id, record in self._records.items()
                if parse_timestamp(record["last_accessed_at"]) < cutoff
            ]
            for conversation_id in expired:
                del self._records[conversation_id]
            return len(expired)


class SupabaseConversationBackend(ConversationBackend):
    """Conversation records stored in a Supabase PostgreSQL table."""

    def __init__(
        self,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = "conversations"
    ):
        """
        Initialize the backend with a Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Table holding one row per conversation

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.table_name = table_name
        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info(f"SupabaseConversationBackend initialized with table: {table_name}")

    def load(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.client.table(self.table_name)
            .select("*")
            .eq("conversation_id", conversation_id)
            .execute()
        )
        return result.data[0] if result.data else None

    def insert_if_absent(self, record: Dict[str, Any]) -> Dict[str, Any]:
        # ignore_duplicates turns the upsert into INSERT ... ON CONFLICT DO NOTHING
        self.client.table(self.table_name).upsert(
            record,
            on_conflict="conversation_id",
            ignore_duplicates=True
        ).execute()

        stored = self.load(record["conversation_id"])
        if stored is None:
            raise RuntimeError(f"Conversation {record['conversation_id']} missing after insert")
        return stored

    def save(self, record: Dict[str, Any]) -> None:
        fields = {key: value for key, value in record.items() if key != "conversation_id"}
        (
            self.client.table(self.table_name)
            .update(fields)
            .eq("conversation_id", record["conversation_id"])
            .execute()
        )

    def delete(self, conversation_id: str) -> bool:
        result = (
            self.client.table(self.table_name)
            .delete()
            .eq("conversation_id", conversation_id)
            .execute()
        )
        return bool(result.data)

    def list_all(self) -> List[Dict[str, Any]]:
        result = (
            self.client.table(self.table_name)
            .select(",".join(SUMMARY_COLUMNS))
            .order("last_accessed_at", desc=True)
            .execute()
        )
        return result.data or []

    def delete_expired(self, cutoff: datetime) -> int:
        result = (
            self.client.table(self.table_name)
            .delete()
            .lt("last_accessed_at", cutoff.isoformat())
            .execute()
        )
        return len(result.data or [])

    def count_live(self, cutoff: datetime) -> int:
        result = (
            self.client.table(self.table_name)
            .select("conversation_id", count="exact")
            .gte("last_accessed_at", cutoff.isoformat())
            .execute()
        )
        return result.count if result.count is not None else 0
