"""Integration tests for the HTTP endpoints."""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import Mock, patch
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from models.candidate import Candidate
from services.errors import (
    EmbeddingError,
    GenerationError,
    InvalidCandidateScore,
    NotFound,
    RetrievalError,
)
from services.orchestrator import AnswerResult


@pytest.fixture
def client():
    """Create a test client with mocked services."""
    # Import after path is set
    from main import app

    # Mock the startup event to avoid initializing real services
    with patch('main.startup_event'):
        client = TestClient(app)

        # Manually set the global services to mocks
        import main
        main.orchestrator = Mock()
        main.llm_client = Mock()
        main.conversation_store = Mock()
        main.decision_logger = Mock()

        yield client


@pytest.fixture
def answer_result():
    return AnswerResult(
        answer="Refunds take 5 business days.",
        strategy="strict_retrieval",
        confidence=0.95,
        candidates=[Candidate(content="Refunds take 5 business days.", score=0.95, passage_id="p1")],
        model_used="llama-3.3-70b-versatile",
        usage={"prompt_tokens": 100, "completion_tokens": 20, "total_tokens": 120},
        latency_ms=500,
        prompt_tokens_estimate=95
    )


def conversation_dict(conversation_id="conv-1"):
    return {
        "conversation_id": conversation_id,
        "turns": [
            {"role": "user", "content": "Q?", "recorded_at": "2026-01-01T12:00:00+00:00", "usage": None},
            {
                "role": "assistant",
                "content": "A.",
                "recorded_at": "2026-01-01T12:00:01+00:00",
                "usage": {"total_tokens": 120},
            },
        ],
        "created_at": "2026-01-01T12:00:00+00:00",
        "last_accessed_at": "2026-01-01T12:00:01+00:00",
        "turn_count": 2,
        "total_tokens": 120,
    }


def test_root_and_health(client):
    import main
    main.conversation_store.count.return_value = 4

    assert client.get("/").json()["status"] == "ok"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["active_sessions"] == 4
    assert set(health["api_keys_configured"]) == {"groq", "huggingface"}


def test_models(client):
    import main
    main.llm_client.available.return_value = {
        "available_models": ["llama"],
        "default_model": "llama-3.3-70b-versatile",
        "models": {"llama": "llama-3.3-70b-versatile"},
    }

    response = client.get("/models")

    assert response.status_code == 200
    assert response.json()["available_models"] == ["llama"]


def test_query_success(client, answer_result):
    import main
    main.orchestrator.answer_once.return_value = answer_result

    response = client.post("/query", json={"question": "How long do refunds take?"})

    assert response.status_code == 200
    data = response.json()
    assert data["answer"] == "Refunds take 5 business days."
    assert data["strategy"] == "strict_retrieval"
    assert data["confidence"] == 0.95
    assert data["candidates"][0] == {"content": "Refunds take 5 business days.", "score": 0.95, "passage_id": "p1"}
    assert data["tokens"] == {"input": 100, "output": 20, "total": 120}
    assert data["conversation_id"] is None
    main.orchestrator.answer_once.assert_called_once_with("How long do refunds take?", model=None)


def test_query_with_model(client, answer_result):
    import main
    main.orchestrator.answer_once.return_value = answer_result

    client.post("/query", json={"question": "Q?", "model": "gemma"})

    main.orchestrator.answer_once.assert_called_once_with("Q?", model="gemma")


def test_query_empty_question_rejected(client):
    response = client.post("/query", json={"question": ""})

    assert response.status_code == 422


def test_query_whitespace_question_rejected(client):
    import main
    main.orchestrator.answer_once.side_effect = ValueError("Question cannot be empty")

    response = client.post("/query", json={"question": "   "})

    assert response.status_code == 422
    assert response.json()["error"]["kind"] == "validation_error"


def test_session_query(client, answer_result):
    import main
    answer_result.conversation_id = "conv-1"
    main.orchestrator.answer_in_session.return_value = answer_result

    response = client.post("/sessions/conv-1/query", json={"question": "How long do refunds take?"})

    assert response.status_code == 200
    assert response.json()["conversation_id"] == "conv-1"
    main.orchestrator.answer_in_session.assert_called_once_with(
        "conv-1", "How long do refunds take?", model=None
    )


@pytest.mark.parametrize("error, status_code, code", [
    (EmbeddingError("down", code="RETRIES_EXHAUSTED"), 503, "RETRIES_EXHAUSTED"),
    (RetrievalError("offline", code="SEARCH_FAILED"), 503, "SEARCH_FAILED"),
    (GenerationError("rate limited", code="RATE_LIMIT_ERROR"), 503, "RATE_LIMIT_ERROR"),
    (GenerationError("timed out", code="TIMEOUT_ERROR"), 504, "TIMEOUT_ERROR"),
    (InvalidCandidateScore("score 1.2 out of range"), 502, "INVALID_CANDIDATE_SCORE"),
])
def test_query_error_mapping(client, error, status_code, code):
    import main
    main.orchestrator.answer_once.side_effect = error

    response = client.post("/query", json={"question": "Q?"})

    assert response.status_code == status_code
    body = response.json()["error"]
    assert body["code"] == code
    assert body["kind"] == error.kind


def test_list_sessions(client):
    import main
    main.orchestrator.list_conversations.return_value = [{
        "conversation_id": "conv-1",
        "turn_count": 2,
        "total_tokens": 120,
        "created_at": "2026-01-01T12:00:00+00:00",
        "last_accessed_at": "2026-01-01T12:00:01+00:00",
    }]

    response = client.get("/sessions")

    assert response.status_code == 200
    data = response.json()
    assert data["total_sessions"] == 1
    assert data["sessions"][0]["conversation_id"] == "conv-1"
    assert data["config"]["max_messages_per_session"] == 50
    assert data["config"]["session_timeout_seconds"] == 86400


def test_get_session(client):
    import main
    main.orchestrator.get_conversation.return_value = conversation_dict()

    response = client.get("/sessions/conv-1")

    assert response.status_code == 200
    data = response.json()
    assert [t["role"] for t in data["turns"]] == ["user", "assistant"]
    assert data["total_tokens"] == 120


def test_get_missing_session(client):
    import main
    main.orchestrator.get_conversation.side_effect = NotFound(
        "Conversation missing not found", details={"conversation_id": "missing"}
    )

    response = client.get("/sessions/missing")

    assert response.status_code == 404
    assert response.json()["error"]["details"]["conversation_id"] == "missing"


def test_clear_session(client):
    import main
    main.orchestrator.clear_conversation.return_value = {
        "conversation_id": "conv-1", "turn_count": 0, "total_tokens": 0
    }

    response = client.delete("/sessions/conv-1")

    assert response.status_code == 200
    assert response.json() == {
        "message": "Session history cleared",
        "conversation_id": "conv-1",
        "turn_count": 0,
        "total_tokens": 0,
    }


def test_destroy_session(client):
    import main
    main.orchestrator.delete_conversation.return_value = {"conversation_id": "conv-1", "deleted": True}

    response = client.delete("/sessions/conv-1/destroy")

    assert response.status_code == 200
    assert response.json() == {"message": "Session destroyed", "conversation_id": "conv-1"}


def test_destroy_missing_session(client):
    import main
    main.orchestrator.delete_conversation.side_effect = NotFound("Conversation conv-9 not found")

    response = client.delete("/sessions/conv-9/destroy")

    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "not_found"
