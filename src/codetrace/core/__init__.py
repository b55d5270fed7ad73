"""Core domain types shared across all codetrace modules."""

from codetrace.core.types import (
    ChapterUnit,
    CodeStats,
    IngestionReport,
    Provision,
    SearchResult,
    Segment,
    Source,
    SourceConfig,
    UnitOutcome,
    UnitState,
)

__all__ = [
    "ChapterUnit",
    "CodeStats",
    "IngestionReport",
    "Provision",
    "SearchResult",
    "Segment",
    "Source",
    "SourceConfig",
    "UnitOutcome",
    "UnitState",
]
