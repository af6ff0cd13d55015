"""
Shared pytest fixtures for the NewsBot test suite.

Required settings are seeded into the environment *before* any
``newsbot`` module is imported, so ``Settings()`` never needs a real
``.env`` file, API key or MongoDB instance.
"""

import os

os.environ.setdefault("GOOGLE_API_KEY", "test-google-api-key")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("ENV", "dev")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from newsbot.src.core.models import Article, ConversationMessage, SearchHit  # noqa: E402


@pytest.fixture
def make_hit():
    """Factory for vector-store hits with a title, text and score."""

    def _make(hit_id: str, title: str, score: float, text: str = "", chunk_type: str = "content", **payload) -> SearchHit:
        body = {"title": title, "text": text or f"{title}. Full story text.", "chunk_type": chunk_type, "source": "Reuters", "category": "business", "url": f"https://news.example/{hit_id}", "published_date": "2024-05-01"}
        body.update(payload)
        return SearchHit(id=hit_id, score=score, payload=body)

    return _make


@pytest.fixture
def make_message():
    """Factory for conversation messages spaced one minute apart."""
    base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(role: str, content: str) -> ConversationMessage:
        counter["n"] += 1
        return ConversationMessage(id=f"m{counter['n']}", role=role, content=content, timestamp=base + timedelta(minutes=counter["n"]))

    return _make


@pytest.fixture
def sample_article() -> Article:
    """A realistic multi-paragraph article."""
    paragraphs = [
        "The Reserve Bank of India kept its benchmark repo rate unchanged at 6.5 percent on Friday, extending its pause for a seventh straight meeting as policymakers weighed sticky food inflation against signs of slowing growth.",
        "Governor Shaktikanta Das said the monetary policy committee remained focused on bringing headline inflation durably down to its 4 percent target. He added that the central bank would stay watchful of global commodity prices and the monsoon outlook.",
        "Economists had widely expected the decision. Most analysts now see the first rate cut arriving late in the year at the earliest, depending on how quickly vegetable prices ease after the summer heatwave.",
        "Bond yields edged lower after the announcement while the rupee was little changed against the dollar. Equity markets extended gains led by banking stocks.",
    ]
    return Article(title="RBI holds repo rate steady for seventh meeting", content="\n\n".join(paragraphs), summary="The central bank kept rates unchanged.", source="Economic Times", category="business", published_date="2024-06-07T10:00:00Z", url="https://news.example/rbi-holds")
