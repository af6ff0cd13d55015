"""
NewsBot - Prompt Templates & Intent Vocabulary
================================================
Centralised prompt management and the word lists that drive the
heuristic stages of the pipeline.  Everything here is *data*: the
classes in ``newsbot.src.core`` receive these values as constructor
defaults, so each list can be swapped or unit-tested independently of
pipeline control flow.

Exports
-------
SYSTEM_PROMPT, RAG_PROMPT_TEMPLATE, SIMPLE_SYSTEM_PROMPT, SIMPLE_PROMPT_TEMPLATE,
FALLBACK_NOTICE, NO_CONTEXT_RESPONSE, DEGRADED_RESPONSE, CONTEXT_BLOCK_TEMPLATE,
NO_NEWS_CONTEXT, NO_HISTORY,
INFORMATION_KEYWORDS, QUESTION_PATTERNS, FOLLOW_UP_PATTERNS, ENTITY_QUERY_PREFIX,
STOP_WORDS, ABBREVIATIONS.
"""

# ══════════════════════════════════════════════════════════════════════
#  SYSTEM PROMPTS
# ══════════════════════════════════════════════════════════════════════

SYSTEM_PROMPT: str = """You are an AI assistant specialized in providing accurate, helpful responses based on news articles and information. Your role is to:

1. Answer questions using the provided context from news articles
2. Be factual and cite your sources when possible
3. If the context doesn't contain relevant information, clearly state that
4. Provide concise, well-structured responses
5. Consider the conversation history for context

Guidelines:
- Use information from the provided contexts to answer questions
- If multiple sources are provided, synthesize the information
- Be honest about limitations in the available information
- Maintain a helpful and professional tone
- For follow-up questions, consider the conversation context"""

SIMPLE_SYSTEM_PROMPT: str = "You are a helpful AI assistant. Provide clear, accurate, and helpful responses to user questions. If you don't have specific information about current events or news, acknowledge that limitation."


# ══════════════════════════════════════════════════════════════════════
#  PROMPT TEMPLATES
# ══════════════════════════════════════════════════════════════════════

CONTEXT_BLOCK_TEMPLATE: str = """[Source {index}: {source} - {title}]
Published: {published_date}
Relevance Score: {score:.3f}
Content: {content}"""

NO_NEWS_CONTEXT: str = "(No relevant news context found for this query.)"

NO_HISTORY: str = "(No previous conversation.)"

RAG_PROMPT_TEMPLATE: str = """══════════════════════════════════════════
CONVERSATION HISTORY
══════════════════════════════════════════
{history}

══════════════════════════════════════════
RELEVANT NEWS CONTEXT
══════════════════════════════════════════
{context}

══════════════════════════════════════════
USER QUESTION
══════════════════════════════════════════
{question}

──────────────────────────────────────────
Please provide a helpful response based on the available context and conversation history.
If you're citing specific information, mention which source it comes from.

RESPONSE:"""

SIMPLE_PROMPT_TEMPLATE: str = """CONVERSATION HISTORY:
{history}

USER QUESTION: {question}

RESPONSE:"""


# ══════════════════════════════════════════════════════════════════════
#  FALLBACK / DEGRADED RESPONSES
# ══════════════════════════════════════════════════════════════════════

FALLBACK_NOTICE: str = "\n\n*Note: I don't have specific current news information about this topic. My response is based on general knowledge.*"

NO_CONTEXT_RESPONSE: str = "I'm sorry, but I don't have enough relevant information to answer your question properly. Could you try rephrasing your question or asking about something else?"

DEGRADED_RESPONSE: str = "I'm experiencing some technical difficulties. Please try again later."


# ══════════════════════════════════════════════════════════════════════
#  INTENT DETECTION — information-seeking vocabulary
# ══════════════════════════════════════════════════════════════════════
# Used by IntentClassifier.  Matching is case-insensitive substring /
# regex search against the user message.

INFORMATION_KEYWORDS: tuple[str, ...] = (
    "news", "latest", "recent", "update", "what happened", "tell me about",
    "information", "details", "when did", "where is", "who is", "how many",
    "explain", "describe", "summary", "report", "article", "story",
    "technology", "business", "politics", "economy", "india", "indian",
)

QUESTION_PATTERNS: tuple[str, ...] = (
    r"what is|what are|what was|what were",
    r"who is|who are|who was|who were",
    r"when did|when was|when will",
    r"where is|where are|where was",
    r"how many|how much|how often",
    r"tell me|show me|explain",
    r"latest.*news|recent.*news",
    r"what.*happened|what.*happening",
)

# Follow-up detection for query enhancement (anchored where the phrase
# must open the message).
FOLLOW_UP_PATTERNS: tuple[str, ...] = (
    r"^(what about|how about|and what|tell me more about that|tell me more|more details about|anything else)",
    r"^(also,|additionally,|furthermore,|moreover,)",
    r"^(can you|could you|would you|will you)",
    r"(more information|more details|elaborate|expand)",
)

# Chat clients send "Tell me about: <headline>" when a user clicks an
# article card.  Such turns name a specific entity.
ENTITY_QUERY_PREFIX: str = "Tell me about:"


# ══════════════════════════════════════════════════════════════════════
#  QUERY NORMALISATION
# ══════════════════════════════════════════════════════════════════════

STOP_WORDS: frozenset[str] = frozenset({
    "the", "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might", "must",
    "can", "shall", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "about", "what", "where", "when", "why", "how", "who",
})

ABBREVIATIONS: dict[str, str] = {
    "ai": "artificial intelligence",
    "ml": "machine learning",
}
