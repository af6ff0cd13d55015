"""
Test suite for MongoSessionStore and SearchCache against a mocked motor
collection.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from newsbot.src.database.session_store import MongoSessionStore, SearchCache


@pytest.fixture
def collection():
    """Motor collection double: every coroutine method is an AsyncMock."""
    mock = MagicMock()
    for name in ("find_one", "replace_one", "update_one", "delete_one", "delete_many", "count_documents", "create_index"):
        setattr(mock, name, AsyncMock())
    return mock


@pytest.fixture
def store(collection) -> MongoSessionStore:
    return MongoSessionStore(collection=collection, ttl_hours=24, max_history=50)


def _session_doc(session_id: str = "session-123456", messages: list | None = None) -> dict:
    now = datetime.now(timezone.utc)
    return {"_id": session_id, "messages": messages or [], "message_count": len(messages or []), "metadata": {}, "created_at": now, "last_activity": now, "expires_at": now + timedelta(hours=24)}


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_session_generates_id_and_ttl(self, store: MongoSessionStore, collection) -> None:
        # Act
        info = await store.create_session({"client": "web"})

        # Assert
        query, doc = collection.replace_one.await_args.args
        assert query == {"_id": info.id}
        assert collection.replace_one.await_args.kwargs == {"upsert": True}
        assert doc["messages"] == []
        assert doc["expires_at"] - doc["created_at"] == timedelta(hours=24)
        assert info.metadata == {"client": "web"}
        assert len(info.id) == 36

    @pytest.mark.asyncio
    async def test_create_session_with_explicit_id(self, store: MongoSessionStore) -> None:
        info = await store.create_session(session_id="session-abcdef")

        assert info.id == "session-abcdef"

    @pytest.mark.asyncio
    async def test_get_session_filters_expired_documents(self, store: MongoSessionStore, collection) -> None:
        collection.find_one.return_value = _session_doc()

        info = await store.get_session("session-123456")

        query = collection.find_one.await_args.args[0]
        assert query["_id"] == "session-123456"
        assert "$gt" in query["expires_at"]
        assert info is not None and info.id == "session-123456"

    @pytest.mark.asyncio
    async def test_get_session_reports_stored_messages_after_trimming(self, store: MongoSessionStore, collection) -> None:
        # Arrange
        doc = _session_doc()
        del doc["messages"]
        doc.update(message_count=60, stored_messages=50)
        collection.find_one.return_value = doc

        # Act
        info = await store.get_session("session-123456")

        # Assert
        projection = collection.find_one.await_args.args[1]
        assert "messages" not in projection
        assert projection["stored_messages"] == {"$size": {"$ifNull": ["$messages", []]}}
        assert info.message_count == 60
        assert info.stored_messages == 50

    @pytest.mark.asyncio
    async def test_unknown_session(self, store: MongoSessionStore, collection) -> None:
        collection.find_one.return_value = None

        assert await store.get_session("missing-session") is None
        assert await store.get_history("missing-session") == []

    @pytest.mark.asyncio
    async def test_delete_and_clear_report_outcome(self, store: MongoSessionStore, collection) -> None:
        collection.delete_one.return_value = MagicMock(deleted_count=1)
        collection.update_one.return_value = MagicMock(matched_count=0)

        assert await store.delete_session("session-123456") is True
        assert await store.clear_history("session-123456") is False

    @pytest.mark.asyncio
    async def test_count_active_sessions(self, store: MongoSessionStore, collection) -> None:
        collection.count_documents.return_value = 3

        assert await store.count_active_sessions() == 3


class TestHistory:
    @pytest.mark.asyncio
    async def test_limit_and_offset_count_from_newest(self, store: MongoSessionStore, collection, make_message) -> None:
        # Arrange
        messages = [make_message("user" if i % 2 == 0 else "assistant", f"message {i}").model_dump() for i in range(5)]
        collection.find_one.return_value = _session_doc(messages=messages)

        # Act
        history = await store.get_history("session-123456", limit=2, offset=1)

        # Assert
        assert [m.content for m in history] == ["message 2", "message 3"]

    @pytest.mark.asyncio
    async def test_no_limit_returns_everything_oldest_first(self, store: MongoSessionStore, collection, make_message) -> None:
        messages = [make_message("user", f"message {i}").model_dump() for i in range(3)]
        collection.find_one.return_value = _session_doc(messages=messages)

        history = await store.get_history("session-123456")

        assert [m.content for m in history] == ["message 0", "message 1", "message 2"]

    @pytest.mark.asyncio
    async def test_add_messages_is_one_atomic_update(self, store: MongoSessionStore, collection, make_message) -> None:
        # Act
        await store.add_messages("session-123456", [make_message("user", "hi"), make_message("assistant", "hello")])

        # Assert
        collection.update_one.assert_awaited_once()
        query, update = collection.update_one.await_args.args
        assert query == {"_id": "session-123456"}
        assert len(update["$push"]["messages"]["$each"]) == 2
        assert update["$push"]["messages"]["$slice"] == -50
        assert update["$inc"] == {"message_count": 2}
        assert collection.update_one.await_args.kwargs == {"upsert": True}

    @pytest.mark.asyncio
    async def test_add_no_messages_is_a_no_op(self, store: MongoSessionStore, collection) -> None:
        await store.add_messages("session-123456", [])

        collection.update_one.assert_not_awaited()


class TestSearchCache:
    @pytest.mark.asyncio
    async def test_round_trip(self, collection) -> None:
        cache = SearchCache(collection=collection, ttl_seconds=300)

        await cache.set("search:abc", {"results": []})
        query, doc = collection.replace_one.await_args.args
        collection.find_one.return_value = doc

        assert query == {"_id": "search:abc"}
        assert await cache.get("search:abc") == {"results": []}

    @pytest.mark.asyncio
    async def test_miss(self, collection) -> None:
        collection.find_one.return_value = None

        assert await SearchCache(collection=collection).get("search:none") is None

    @pytest.mark.asyncio
    async def test_clear_returns_deleted_count(self, collection) -> None:
        collection.delete_many.return_value = MagicMock(deleted_count=7)

        assert await SearchCache(collection=collection).clear() == 7
