"""
NewsBot - Search Filter Builder
=================================
Translates ``SearchFilters`` into a LanceDB SQL ``WHERE`` expression.

Each populated dimension becomes one parenthesised clause; clauses are
AND-ed.  Multi-valued dimensions (sources, categories) match any of
their values.  When nothing is populated the builder returns ``None``
so the caller searches without a filter instead of with an empty one.

Example::

    build_filter(SearchFilters(sources=["BBC", "Reuters"], content_type="content"))
    → "(source IN ('BBC', 'Reuters')) AND (chunk_type = 'content')"
"""

from __future__ import annotations

from newsbot.src.core.models import SearchFilters


def quote(value: str) -> str:
    """SQL string literal with embedded quotes doubled."""
    return "'" + str(value).replace("'", "''") + "'"


def _in_clause(column: str, values: list[str]) -> str:
    return f"{column} IN ({', '.join(quote(v) for v in values)})"


def build_filter(filters: SearchFilters | None) -> str | None:
    """Return the ``WHERE`` expression for *filters*, or ``None`` for no filter."""
    if filters is None:
        return None

    clauses: list[str] = []

    if filters.sources:
        clauses.append(_in_clause("source", filters.sources))
    if filters.categories:
        clauses.append(_in_clause("category", filters.categories))

    date_bounds: list[str] = []
    if filters.date_from:
        date_bounds.append(f"published_date >= {quote(filters.date_from)}")
    if filters.date_to:
        date_bounds.append(f"published_date <= {quote(filters.date_to)}")
    if date_bounds:
        clauses.append(" AND ".join(date_bounds))

    if filters.content_type:
        clauses.append(f"chunk_type = {quote(filters.content_type)}")

    if not clauses:
        return None
    return " AND ".join(f"({clause})" for clause in clauses)
