"""
NewsBot - MongoDB Session & Cache Store
=========================================
Async persistence backed by ``motor``.

``MongoSessionStore``
    One document per chat session::

        {
            "_id": str,                       # session id
            "messages": [ConversationMessage, ...],
            "message_count": int,
            "metadata": {...},
            "created_at": datetime,
            "last_activity": datetime,
            "expires_at": datetime            # TTL index
        }

    Sessions expire ``SESSION_TTL_HOURS`` after their last activity
    (MongoDB TTL monitor plus an explicit ``expires_at`` check on read).
    ``add_messages`` appends a whole turn in one ``update_one``:
    ``$push`` with ``$each`` + ``$slice`` trims history to
    ``MAX_CONVERSATION_HISTORY`` and ``$inc`` bumps the counter.
    ``message_count`` therefore counts every message ever added, while
    ``SessionInfo.stored_messages`` is what is actually kept.

``SearchCache``
    Key → result document with its own TTL collection.

Usage:
    store = MongoSessionStore()
    await store.ensure_indexes()
    info = await store.create_session()
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import motor.motor_asyncio

from newsbot.config.settings import settings
from newsbot.src.core.models import ConversationMessage, MetadataValue, SessionInfo
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)

SessionDocument = dict[str, Any]

# Session fields without the message list; ``stored_messages`` is the list length after ``$slice``
_INFO_PROJECTION = {"created_at": 1, "last_activity": 1, "message_count": 1, "metadata": 1, "stored_messages": {"$size": {"$ifNull": ["$messages", []]}}}


# ══════════════════════════════════════════════════════════════════════
#  MONGODB SINGLETON CLIENT
# ══════════════════════════════════════════════════════════════════════

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value(), tz_aware=True)
        logger.info("MongoDB async client created (singleton).")
    return _mongo_client


def get_database() -> motor.motor_asyncio.AsyncIOMotorDatabase:
    return get_mongo_client()[settings.MONGO_DB_NAME]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════
#  SESSIONS
# ══════════════════════════════════════════════════════════════════════


class MongoSessionStore:
    """
    Parameters
    ----------
    collection
        Optional motor collection (tests inject a mock).  Defaults to
        ``<MONGO_DB_NAME>.sessions``.
    ttl_hours
        Inactivity window before a session expires.
    max_history
        Messages kept per session; older ones are trimmed on append.
    """

    __slots__ = ("_collection", "ttl", "max_history")

    def __init__(self, collection: Any | None = None, ttl_hours: int | None = None, max_history: int | None = None) -> None:
        self._collection = collection if collection is not None else get_database()["sessions"]
        self.ttl = timedelta(hours=ttl_hours or settings.SESSION_TTL_HOURS)
        self.max_history = max_history or settings.MAX_CONVERSATION_HISTORY


    async def ensure_indexes(self) -> None:
        await self._collection.create_index("expires_at", expireAfterSeconds=0)
        logger.info("[SESSION] TTL index ensured on 'sessions.expires_at'.")


    async def ping(self) -> bool:
        """True when the collection answers a trivial query."""
        await self._collection.find_one({}, {"_id": 1})
        return True


    async def create_session(self, metadata: dict[str, MetadataValue] | None = None, session_id: str | None = None) -> SessionInfo:
        """Start a session; a fresh uuid4 id is generated unless *session_id* is given."""
        now = _utcnow()
        session_id = session_id or str(uuid.uuid4())
        doc: SessionDocument = {"_id": session_id, "messages": [], "message_count": 0, "metadata": metadata or {}, "created_at": now, "last_activity": now, "expires_at": now + self.ttl}
        await self._collection.replace_one({"_id": session_id}, doc, upsert=True)
        logger.info("[SESSION] Created session %s", session_id)
        return self._to_info(doc)


    async def get_session(self, session_id: str) -> SessionInfo | None:
        doc = await self._collection.find_one({"_id": session_id, "expires_at": {"$gt": _utcnow()}}, _INFO_PROJECTION)
        return self._to_info(doc) if doc else None


    async def delete_session(self, session_id: str) -> bool:
        result = await self._collection.delete_one({"_id": session_id})
        deleted = result.deleted_count > 0
        logger.info("[SESSION] Delete session %s → %s", session_id, deleted)
        return deleted


    async def clear_history(self, session_id: str) -> bool:
        """Drop all messages but keep the session alive."""
        now = _utcnow()
        result = await self._collection.update_one({"_id": session_id, "expires_at": {"$gt": now}}, {"$set": {"messages": [], "message_count": 0, "last_activity": now, "expires_at": now + self.ttl}})
        return result.matched_count > 0


    async def get_history(self, session_id: str, limit: int | None = None, offset: int = 0) -> list[ConversationMessage]:
        """
        Return up to *limit* messages, oldest first, skipping the
        newest *offset* messages.  Unknown sessions yield ``[]``.
        """
        doc = await self._collection.find_one({"_id": session_id, "expires_at": {"$gt": _utcnow()}}, {"messages": 1})
        if doc is None:
            return []

        messages = doc.get("messages", [])
        stop = max(0, len(messages) - offset)
        start = 0 if limit is None else max(0, stop - limit)
        return [ConversationMessage.model_validate(m) for m in messages[start:stop]]


    async def add_messages(self, session_id: str, messages: Sequence[ConversationMessage]) -> None:
        """
        Append *messages* atomically, trimming to ``max_history`` and
        extending the session TTL.  Creates the session if needed.
        """
        if not messages:
            return
        now = _utcnow()
        docs = [m.model_dump() for m in messages]
        await self._collection.update_one(
            {"_id": session_id},
            {
                "$push": {"messages": {"$each": docs, "$slice": -self.max_history}},
                "$inc": {"message_count": len(docs)},
                "$set": {"last_activity": now, "expires_at": now + self.ttl},
                "$setOnInsert": {"created_at": now, "metadata": {}},
            },
            upsert=True,
        )
        logger.debug("[SESSION] Appended %d message(s) to %s", len(docs), session_id)


    async def count_active_sessions(self) -> int:
        return await self._collection.count_documents({"expires_at": {"$gt": _utcnow()}})


    @staticmethod
    def _to_info(doc: SessionDocument) -> SessionInfo:
        return SessionInfo(id=doc["_id"], created_at=doc["created_at"], last_activity=doc["last_activity"], message_count=doc.get("message_count", 0), stored_messages=doc.get("stored_messages", len(doc.get("messages", []))), metadata=doc.get("metadata", {}))


# ══════════════════════════════════════════════════════════════════════
#  SEARCH CACHE
# ══════════════════════════════════════════════════════════════════════


class SearchCache:
    """TTL key/value cache for search responses."""

    __slots__ = ("_collection", "ttl_seconds")

    def __init__(self, collection: Any | None = None, ttl_seconds: int | None = None) -> None:
        self._collection = collection if collection is not None else get_database()["search_cache"]
        self.ttl_seconds = ttl_seconds or settings.SEARCH_CACHE_TTL_SECONDS


    async def ensure_indexes(self) -> None:
        await self._collection.create_index("expires_at", expireAfterSeconds=0)


    async def get(self, key: str) -> dict[str, Any] | None:
        doc = await self._collection.find_one({"_id": key, "expires_at": {"$gt": _utcnow()}})
        return doc["value"] if doc else None


    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        expires_at = _utcnow() + timedelta(seconds=ttl_seconds or self.ttl_seconds)
        await self._collection.replace_one({"_id": key}, {"_id": key, "value": value, "expires_at": expires_at}, upsert=True)


    async def clear(self) -> int:
        result = await self._collection.delete_many({})
        logger.info("[CACHE] Cleared %d cached search result(s).", result.deleted_count)
        return result.deleted_count
