"""
Test suite for the REST surface.

The app is built with ``create_app()``; ``TestClient`` is used without a
``with`` block so the lifespan (and the real service graph) never runs.
Every service is swapped in through ``app.dependency_overrides``.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from newsbot.config.prompt_templates import DEGRADED_RESPONSE
from newsbot.src.api.dependencies import get_chat_service, get_refresh_worker, get_retrieval_service, get_session_store, get_vector_store
from newsbot.src.api.main import create_app
from newsbot.src.core.exceptions import DownstreamUnavailable
from newsbot.src.core.models import ChatTurn, ConversationMessage, SearchResponse, SessionInfo

SESSION_ID = "session-1234567890"
ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


def _session_info(message_count: int = 0, stored_messages: int | None = None) -> SessionInfo:
    now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
    stored = message_count if stored_messages is None else stored_messages
    return SessionInfo(id=SESSION_ID, created_at=now, last_activity=now, message_count=message_count, stored_messages=stored)


@pytest.fixture
def chat_service():
    """Chat service double returning a fixed RAG turn."""
    mock = MagicMock()
    user = ConversationMessage(id="u1", role="user", content="What is the latest on the RBI?")
    reply = ConversationMessage(id="a1", role="assistant", content="The RBI held rates.", metadata={"rag_used": True})
    mock.process_message = AsyncMock(return_value=ChatTurn(session_id=SESSION_ID, user_message=user, message=reply, rag_context={"sources": [{"title": "RBI holds rates"}], "session_info": {"conversation_length": 1, "context_managed": False}}))
    mock.get_stats.return_value = {"generator": {"model": "gemini-test"}}
    return mock


@pytest.fixture
def sessions():
    mock = MagicMock()
    mock.get_session = AsyncMock(return_value=_session_info(2))
    mock.create_session = AsyncMock(return_value=_session_info())
    mock.get_history = AsyncMock(return_value=[])
    mock.delete_session = AsyncMock(return_value=True)
    mock.clear_history = AsyncMock(return_value=True)
    mock.count_active_sessions = AsyncMock(return_value=5)
    mock.ping = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def retrieval():
    mock = MagicMock()
    mock.search_documents = AsyncMock(return_value=SearchResponse(query="fed", processed_query="fed", results=[], total_found=0, search_time_ms=3.2))
    mock.clear_cache = AsyncMock(return_value=3)
    mock.get_stats.return_value = {"searches": 1, "cache_hits": 0}
    return mock


@pytest.fixture
def vector_store():
    mock = MagicMock()
    mock.count.return_value = 42
    mock.delete_by_filter.return_value = 4
    return mock


@pytest.fixture
def worker():
    mock = MagicMock()
    mock.running = False
    mock.refresh_once = AsyncMock(return_value={"status": "completed", "articles_kept": 3, "chunks_stored": 9})
    mock.get_stats.return_value = {"running": False, "last_summary": None}
    return mock


@pytest.fixture
def client(chat_service, sessions, retrieval, vector_store, worker):
    """TestClient with every service dependency overridden."""
    app = create_app()
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    app.dependency_overrides[get_session_store] = lambda: sessions
    app.dependency_overrides[get_retrieval_service] = lambda: retrieval
    app.dependency_overrides[get_vector_store] = lambda: vector_store
    app.dependency_overrides[get_refresh_worker] = lambda: worker
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestChatEndpoint:
    def test_chat_turn(self, client: TestClient, chat_service, sessions) -> None:
        # Arrange
        sessions.get_session.side_effect = [None, _session_info(2)]

        # Act
        response = client.post("/api/chat", json={"message": "  What is the latest on the RBI?  ", "sessionId": SESSION_ID})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["session_id"] == SESSION_ID
        assert body["message"]["content"] == "The RBI held rates."
        assert body["rag_context"] == {"sources": [{"title": "RBI holds rates"}]}
        assert body["session_info"]["message_count"] == 2
        assert body["session_info"]["conversation_length"] == 1
        assert body["processing_error"] is None
        sessions.create_session.assert_awaited_once_with(session_id=SESSION_ID)
        args = chat_service.process_message.await_args.args
        assert args[:2] == (SESSION_ID, "What is the latest on the RBI?")

    def test_new_session_id_is_generated(self, client: TestClient, chat_service) -> None:
        response = client.post("/api/chat", json={"message": "Hello"})

        assert response.status_code == 200
        assert len(response.json()["session_id"]) == 36

    def test_chat_options_are_forwarded(self, client: TestClient, chat_service) -> None:
        client.post("/api/chat", json={"message": "Hello", "options": {"useRAG": False, "maxContext": 5}})

        options = chat_service.process_message.await_args.args[2]
        assert options.use_rag is False
        assert options.max_context == 5

    @pytest.mark.parametrize("message", ["", "   ", "x" * 2001])
    def test_invalid_message_is_a_400(self, client: TestClient, chat_service, message: str) -> None:
        response = client.post("/api/chat", json={"message": message})

        assert response.status_code == 400
        assert response.json()["error"]["error"] == "INVALID_INPUT"
        chat_service.process_message.assert_not_awaited()

    def test_downstream_failure_still_answers(self, client: TestClient, chat_service) -> None:
        # Arrange
        chat_service.process_message.side_effect = DownstreamUnavailable("session_store", "session_store failed: ServerSelectionTimeoutError")

        # Act
        response = client.post("/api/chat", json={"message": "Hello", "sessionId": SESSION_ID})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["message"]["content"] == DEGRADED_RESPONSE
        assert body["message"]["metadata"]["degraded"] is True
        assert body["processing_error"] == "DOWNSTREAM_UNAVAILABLE"

    def test_unexpected_failure_still_answers(self, client: TestClient, chat_service) -> None:
        chat_service.process_message.side_effect = RuntimeError("boom")

        response = client.post("/api/chat", json={"message": "Hello", "sessionId": SESSION_ID})

        assert response.status_code == 200
        assert response.json()["processing_error"] == "INTERNAL_ERROR"


class TestSessionEndpoints:
    def test_history_page(self, client: TestClient, sessions) -> None:
        # Arrange
        sessions.get_session.return_value = _session_info(4)
        sessions.get_history.return_value = [ConversationMessage(id="m3", role="user", content="Any update?"), ConversationMessage(id="m4", role="assistant", content="Yes.")]

        # Act
        response = client.get(f"/api/chat/{SESSION_ID}/history", params={"limit": 2})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert [m["id"] for m in body["messages"]] == ["m3", "m4"]
        assert body["pagination"] == {"limit": 2, "offset": 0, "total": 4, "has_more": True}
        sessions.get_history.assert_awaited_once_with(SESSION_ID, limit=2, offset=0)

    def test_history_has_more_follows_stored_messages(self, client: TestClient, sessions) -> None:
        # Arrange
        sessions.get_session.return_value = _session_info(60, stored_messages=50)
        sessions.get_history.return_value = [ConversationMessage(id="m1", role="user", content="First kept"), ConversationMessage(id="m2", role="assistant", content="Second kept")]

        # Act
        response = client.get(f"/api/chat/{SESSION_ID}/history", params={"limit": 2, "offset": 48})

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"limit": 2, "offset": 48, "total": 50, "has_more": False}
        assert body["session_info"]["message_count"] == 60

    def test_history_limit_is_bounded(self, client: TestClient) -> None:
        assert client.get(f"/api/chat/{SESSION_ID}/history", params={"limit": 500}).status_code == 422

    def test_unknown_session_is_a_404(self, client: TestClient, sessions) -> None:
        sessions.get_session.return_value = None

        response = client.get(f"/api/chat/{SESSION_ID}/history")

        assert response.status_code == 404
        assert response.json()["error"]["error"] == "SESSION_NOT_FOUND"

    def test_malformed_session_id_is_a_400(self, client: TestClient) -> None:
        assert client.get("/api/chat/short/history").status_code == 400

    def test_delete_session(self, client: TestClient) -> None:
        response = client.delete(f"/api/chat/{SESSION_ID}")

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        assert response.json()["messages_deleted"] == 2

    def test_clear_session(self, client: TestClient, sessions) -> None:
        response = client.post(f"/api/chat/{SESSION_ID}/clear")

        assert response.status_code == 200
        assert response.json()["messages_cleared"] == 2
        sessions.clear_history.assert_awaited_once_with(SESSION_ID)


class TestSearchEndpoint:
    def test_top_k_is_clamped(self, client: TestClient, retrieval) -> None:
        response = client.post("/api/search", json={"query": " fed ", "options": {"topK": 50}})

        assert response.status_code == 200
        query, options = retrieval.search_documents.await_args.args
        assert query == "fed"
        assert options.top_k == 20

    def test_empty_query_is_a_400(self, client: TestClient) -> None:
        assert client.post("/api/search", json={"query": "   "}).status_code == 400

    def test_over_long_query_is_a_400(self, client: TestClient) -> None:
        assert client.post("/api/search", json={"query": "q" * 501}).status_code == 400

    def test_downstream_errors_map_to_status(self, client: TestClient, retrieval) -> None:
        retrieval.search_documents.side_effect = DownstreamUnavailable("embedding", "embedding failed")

        response = client.post("/api/search", json={"query": "fed"})

        assert response.status_code == 503
        assert response.json()["error"]["details"] == {"stage": "embedding"}

    def test_stats(self, client: TestClient) -> None:
        assert client.get("/api/search/stats").json() == {"searches": 1, "cache_hits": 0}


class TestHealthEndpoint:
    def test_all_components_ready(self, client: TestClient) -> None:
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["components"]["vector_store"] == {"ready": True, "rows": 42}

    def test_session_store_outage_is_degraded(self, client: TestClient, sessions) -> None:
        sessions.ping.side_effect = ConnectionError("mongo down")

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["components"]["session_store"]["ready"] is False


class TestAdminEndpoints:
    @pytest.mark.parametrize("headers", [{}, {"X-Admin-Key": "wrong-key"}])
    def test_admin_key_is_required(self, client: TestClient, worker, headers) -> None:
        response = client.post("/api/admin/refresh", headers=headers)

        assert response.status_code == 401
        worker.refresh_once.assert_not_awaited()

    def test_manual_refresh(self, client: TestClient, worker) -> None:
        response = client.post("/api/admin/refresh", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["chunks_stored"] == 9
        worker.refresh_once.assert_awaited_once()

    def test_clear_cache(self, client: TestClient) -> None:
        response = client.delete("/api/admin/cache", headers=ADMIN_HEADERS)

        assert response.json() == {"cleared": 3}

    def test_stats(self, client: TestClient) -> None:
        body = client.get("/api/admin/stats", headers=ADMIN_HEADERS).json()

        assert body["generator"] == {"model": "gemini-test"}
        assert body["sessions"]["active"] == 5
        assert body["refresh"] == {"running": False, "last_summary": None}

    def test_delete_article(self, client: TestClient, vector_store, retrieval) -> None:
        # Act
        response = client.delete("/api/admin/articles/reuters-fed-0612", headers=ADMIN_HEADERS)

        # Assert
        assert response.status_code == 200
        assert response.json() == {"article_id": "reuters-fed-0612", "chunks_deleted": 4, "cache_cleared": 3}
        vector_store.delete_by_filter.assert_called_once_with("article_id = 'reuters-fed-0612'")
        retrieval.clear_cache.assert_awaited_once()

    def test_delete_article_quotes_the_id(self, client: TestClient, vector_store) -> None:
        client.delete("/api/admin/articles/o'brien-interview", headers=ADMIN_HEADERS)

        vector_store.delete_by_filter.assert_called_once_with("article_id = 'o''brien-interview'")

    def test_delete_unknown_article_is_a_404(self, client: TestClient, vector_store, retrieval) -> None:
        vector_store.delete_by_filter.return_value = 0

        response = client.delete("/api/admin/articles/missing", headers=ADMIN_HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["error"] == "ARTICLE_NOT_FOUND"
        retrieval.clear_cache.assert_not_awaited()

    def test_delete_article_requires_admin_key(self, client: TestClient, vector_store) -> None:
        response = client.delete("/api/admin/articles/reuters-fed-0612")

        assert response.status_code == 401
        vector_store.delete_by_filter.assert_not_called()
