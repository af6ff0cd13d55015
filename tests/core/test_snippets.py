"""
Test suite for snippet generation and source attribution.
"""

from newsbot.src.core.models import RankedResult
from newsbot.src.core.snippets import generate_snippet, relevance_context, source_attribution

FILLER = "Lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor. " * 4


class TestGenerateSnippet:
    def test_short_content_is_returned_whole(self) -> None:
        assert generate_snippet("Markets closed higher today.", "markets") == "Markets closed higher today."

    def test_no_match_anchors_at_start(self) -> None:
        content = FILLER + "Tail sentence."

        snippet = generate_snippet(content, "cricket", max_length=60)

        assert snippet.startswith("Lorem ipsum")
        assert snippet.endswith("...")
        assert len(snippet) <= 63

    def test_prefers_dense_cluster_over_first_match(self) -> None:
        # Arrange: "rates" appears alone early, and together with "fed" and "hike" later
        content = "Mortgage rates were discussed briefly. " + FILLER + "The Fed announced a rate hike as rates kept climbing and the fed chair spoke. " + FILLER

        # Act
        snippet = generate_snippet(content, "fed rates hike", max_length=160)

        # Assert
        assert "Fed announced a rate hike" in snippet
        assert "Mortgage" not in snippet

    def test_trims_partial_words_and_appends_ellipsis(self) -> None:
        content = FILLER + "Inflation eased to four percent in May according to data released today. " + FILLER

        snippet = generate_snippet(content, "inflation", max_length=120)

        body = snippet.removesuffix("...")
        assert snippet.endswith("...")
        assert body.split()[0] in content.split()
        assert body.split()[-1] in content.split()
        assert "Inflation eased" in snippet

    def test_empty_content(self) -> None:
        assert generate_snippet("", "anything") == ""


class TestRelevanceAndAttribution:
    def test_relevance_context_lists_matched_terms(self) -> None:
        context = relevance_context("The Sensex rose 500 points.", 0.91, "content", "sensex nifty")

        assert context.matched_terms == ["sensex"]
        assert context.score_explanation == "Similarity score: 0.91"
        assert context.content_type == "content"

    def test_source_attribution_uses_metadata(self) -> None:
        result = RankedResult(id="r1", score=0.8, content="Body text", chunk_type="content", metadata={"title": "Budget 2024", "source": "Mint", "url": "https://x", "published_date": "2024-02-01", "category": "economy"}, snippet="Budget snippet")

        attribution = source_attribution(result)

        assert attribution == {"title": "Budget 2024", "source": "Mint", "url": "https://x", "published_date": "2024-02-01", "relevance_score": 0.8, "content_snippet": "Budget snippet", "category": "economy"}

    def test_source_attribution_defaults(self) -> None:
        result = RankedResult(id="r1", score=0.5, content="Body text", chunk_type="content")

        attribution = source_attribution(result)

        assert attribution["title"] == "Unknown Title"
        assert attribution["source"] == "Unknown Source"
        assert attribution["category"] == "unknown"
        assert attribution["content_snippet"] == "Body text"
