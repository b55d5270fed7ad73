"""Query planner: free text or citizen stories → ranked provisions."""

import logging

import mlflow
from mlflow.entities import SpanType

from codetrace.config import settings
from codetrace.core.types import SearchResult, Source
from codetrace.retrieval.expansion import expand
from codetrace.storage.store import ProvisionStore

logger = logging.getLogger(__name__)


def clamp_limit(limit: int | None, default: int | None = None) -> int:
    """Apply the default limit and keep it within [1, search_max_limit]."""
    if limit is None:
        limit = default if default is not None else settings.search_default_limit
    return max(1, min(int(limit), settings.search_max_limit))


@mlflow.trace(name="provision_search", span_type=SpanType.RETRIEVER)
async def search_provisions(
    store: ProvisionStore,
    query: str,
    source: str | Source | None = None,
    limit: int | None = None,
) -> list[SearchResult]:
    """Ranked keyword search, optionally restricted to one source."""
    results = await store.search(query, limit=clamp_limit(limit), source=source)
    logger.info("Search %r returned %d provisions", query, len(results))
    return results


@mlflow.trace(name="story_trace", span_type=SpanType.RETRIEVER)
async def trace_story(
    store: ProvisionStore,
    story: str,
    source: str | Source | None = None,
    limit: int | None = None,
) -> tuple[str, list[SearchResult]]:
    """Expand a citizen story into legal terms and search on them.

    Returns the expansion string and the matching provisions. When nothing
    in the story maps to legal vocabulary the search is skipped.
    """
    terms = expand(story)
    if not terms:
        logger.info("No legal vocabulary found in story, skipping search")
        return "", []

    results = await store.search(
        terms,
        limit=clamp_limit(limit, default=settings.story_search_limit),
        source=source,
    )
    logger.info("Story expanded to %r, %d provisions", terms, len(results))
    return terms, results
