"""Unit tests for conversation backends."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from services.conversation_backends import (
    InMemoryConversationBackend,
    SupabaseConversationBackend,
    parse_timestamp,
)


def make_record(conversation_id="conv-1", last_accessed_at="2026-01-01T12:00:00+00:00"):
    return {
        "conversation_id": conversation_id,
        "turns": [],
        "created_at": "2026-01-01T12:00:00+00:00",
        "last_accessed_at": last_accessed_at,
        "turn_count": 0,
        "total_tokens": 0,
    }


class TestParseTimestamp:
    """Timestamp normalization for Supabase precision quirks."""

    def test_five_digit_microseconds(self):
        parsed = parse_timestamp("2026-02-21T02:08:26.18976+00:00")

        assert parsed == datetime(2026, 2, 21, 2, 8, 26, 189760, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        parsed = parse_timestamp("2026-02-21T02:08:26Z")

        assert parsed.tzinfo is not None
        assert parsed.second == 26

    def test_nanosecond_precision_truncated(self):
        parsed = parse_timestamp("2026-02-21T02:08:26.123456789+00:00")

        assert parsed.microsecond == 123456


class TestInMemoryConversationBackend:

    def test_insert_if_absent_keeps_first(self):
        backend = InMemoryConversationBackend()
        first = make_record()
        second = dict(make_record(), turn_count=99)

        backend.insert_if_absent(first)
        stored = backend.insert_if_absent(second)

        assert stored["turn_count"] == 0

    def test_returned_records_are_copies(self):
        backend = InMemoryConversationBackend()
        backend.save(make_record())

        loaded = backend.load("conv-1")
        loaded["turns"].append({"role": "user"})

        assert backend.load("conv-1")["turns"] == []

    def test_delete_expired(self):
        backend = InMemoryConversationBackend()
        backend.save(make_record("old", "2026-01-01T00:00:00+00:00"))
        backend.save(make_record("new", "2026-01-01T12:00:00+00:00"))

        removed = backend.delete_expired(datetime(2026, 1, 1, 6, 0, tzinfo=timezone.utc))

        assert removed == 1
        assert backend.load("old") is None
        assert backend.load("new") is not None

    def test_count_live(self):
        backend = InMemoryConversationBackend()
        backend.save(make_record("old", "2026-01-01T00:00:00+00:00"))
        backend.save(make_record("edge", "2026-01-01T06:00:00+00:00"))
        backend.save(make_record("new", "2026-01-01T12:00:00+00:00"))

        assert backend.count_live(datetime(2026, 1, 1, 6, 0, tzinfo=timezone.utc)) == 2


class TestSupabaseConversationBackend:

    @pytest.fixture
    def mock_client(self):
        with patch('services.conversation_backends.create_client') as mock_create_client:
            client = MagicMock()
            mock_create_client.return_value = client
            yield client

    @pytest.fixture
    def backend(self, mock_client):
        return SupabaseConversationBackend(supabase_url="https://test.supabase.co", supabase_key="test_key")

    def test_initialization_without_credentials(self):
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            SupabaseConversationBackend(supabase_url=None, supabase_key="key")

    def test_load_existing(self, backend, mock_client):
        record = make_record()
        mock_client.table.return_value.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[record])

        assert backend.load("conv-1") == record
        mock_client.table.assert_called_with("conversations")

    def test_load_missing(self, backend, mock_client):
        mock_client.table.return_value.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

        assert backend.load("missing") is None

    def test_insert_if_absent_uses_conflict_free_upsert(self, backend, mock_client):
        record = make_record()
        table = mock_client.table.return_value
        table.select.return_value.eq.return_value.execute.return_value = MagicMock(data=[record])

        stored = backend.insert_if_absent(record)

        table.upsert.assert_called_once_with(record, on_conflict="conversation_id", ignore_duplicates=True)
        assert stored == record

    def test_save_updates_by_id(self, backend, mock_client):
        record = make_record()
        table = mock_client.table.return_value

        backend.save(record)

        fields = table.update.call_args[0][0]
        assert "conversation_id" not in fields
        assert fields["turn_count"] == 0
        table.update.return_value.eq.assert_called_once_with("conversation_id", "conv-1")

    def test_delete_reports_removed_rows(self, backend, mock_client):
        table = mock_client.table.return_value
        table.delete.return_value.eq.return_value.execute.return_value = MagicMock(data=[make_record()])

        assert backend.delete("conv-1") is True

        table.delete.return_value.eq.return_value.execute.return_value = MagicMock(data=[])
        assert backend.delete("conv-1") is False

    def test_delete_expired_uses_cutoff(self, backend, mock_client):
        table = mock_client.table.return_value
        table.delete.return_value.lt.return_value.execute.return_value = MagicMock(data=[{}, {}])
        cutoff = datetime(2026, 1, 1, tzinfo=timezone.utc)

        assert backend.delete_expired(cutoff) == 2
        table.delete.return_value.lt.assert_called_once_with("last_accessed_at", cutoff.isoformat())

    def test_count_live_is_server_side(self, backend, mock_client):
        table = mock_client.table.return_value
        table.select.return_value.gte.return_value.execute.return_value = MagicMock(count=3)
        cutoff = datetime(2026, 1, 1, tzinfo=timezone.utc)

        assert backend.count_live(cutoff) == 3
        table.select.assert_called_once_with("conversation_id", count="exact")
        table.select.return_value.gte.assert_called_once_with("last_accessed_at", cutoff.isoformat())

    def test_count_live_none_is_zero(self, backend, mock_client):
        table = mock_client.table.return_value
        table.select.return_value.gte.return_value.execute.return_value = MagicMock(count=None)

        assert backend.count_live(datetime(2026, 1, 1, tzinfo=timezone.utc)) == 0
