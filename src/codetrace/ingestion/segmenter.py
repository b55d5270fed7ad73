"""Raw chapter text → provision candidates.

Heading conventions differ between documents (and between PDFs of the same
code), so no single parser works everywhere. Instead every boundary rule is
tried against the chapter and the one producing the most segments, short of
obvious over-segmentation, wins. Chapters where nothing applies are chunked
by size with overlap.
"""

import logging
import re
from dataclasses import dataclass

from codetrace.core.types import Segment

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 3000
MIN_CONTENT_LENGTH = 50
MIN_SEGMENT_LENGTH = 30
MAX_SEGMENTS = 200

# Single-segment chapters longer than this fall back to size chunking
CHUNK_THRESHOLD = 2000
CHUNK_SIZE = 1500
CHUNK_OVERLAP = 200

MAX_TITLE_LENGTH = 120

SECTION_ID_PATTERN = re.compile(r"^§?\s*(\d[\d\-–.]*)")


@dataclass(frozen=True)
class BoundaryRule:
    """A zero-width split point; the boundary text stays with the following segment."""

    name: str
    pattern: re.Pattern
    priority: int


BOUNDARY_RULES: tuple[BoundaryRule, ...] = (
    # § 591-2.1, § 841-4
    BoundaryRule("section_symbol", re.compile(r"(?=§\s*\d+[-–]\d+)"), priority=1),
    # ARTICLE I, ARTICLE IV
    BoundaryRule("article_header", re.compile(r"(?=ARTICLE\s+[IVXLC]+\b)", re.IGNORECASE), priority=2),
    # 15.10.40, 5.10.40.70; splits only where the number starts
    BoundaryRule("dotted_path", re.compile(r"(?<![\d.])(?=\d+\.\d+\.\d+)"), priority=3),
    # (1) Every owner ... at the start of a line
    BoundaryRule("parenthesized_item", re.compile(r"(?=\n\s*\(\d+\)\s+[A-Z])"), priority=4),
)


def split_on_rule(text: str, rule: BoundaryRule) -> list[str]:
    """Split text at every match of the rule, dropping noise fragments."""
    return [part for part in rule.pattern.split(text) if len(part.strip()) > MIN_SEGMENT_LENGTH]


def _is_improvement(count: int, best: int) -> bool:
    return best < count < MAX_SEGMENTS


def select_segments(text: str, rules: tuple[BoundaryRule, ...] = BOUNDARY_RULES) -> tuple[str | None, list[str]]:
    """Pick the rule whose split gives the most plausible granularity.

    Returns the winning rule name (None for the whole-document baseline)
    and its segments.
    """
    chosen: str | None = None
    segments = [text]

    for rule in sorted(rules, key=lambda r: r.priority):
        parts = split_on_rule(text, rule)
        if _is_improvement(len(parts), len(segments)):
            chosen, segments = rule.name, parts

    return chosen, segments


def chunk_by_size(text: str, size: int = CHUNK_SIZE, overlap: int = CHUNK_OVERLAP) -> list[str]:
    """Fixed-size windows; consecutive windows share ``overlap`` characters."""
    chunks = []
    start = 0
    while start < len(text):
        end = min(start + size, len(text))
        chunks.append(text[start:end])
        start = end - overlap
        if start >= len(text) - overlap:
            break
    return chunks


def _section_id(content: str) -> str | None:
    match = SECTION_ID_PATTERN.match(content)
    if not match:
        return None
    return match.group(1).rstrip(".-–") or None


def _title(content: str) -> str | None:
    first_line = content.split("\n", 1)[0].strip()
    if first_line and len(first_line) < MAX_TITLE_LENGTH:
        return first_line
    return None


def segment_chapter(text: str | None, chapter: str) -> list[Segment]:
    """Split a chapter's extracted text into provision candidates.

    Every returned segment carries a reference unique within the chapter:
    ``{chapter}-{section}`` when a section number starts the text, otherwise
    ``{chapter} (Part n)`` with n the 1-based segment position. A section
    number seen earlier in the chapter (a table of contents listing every
    section before the body) gets ``{chapter}-{section} (Part n)``.
    """
    if not text or len(text.strip()) < MIN_CONTENT_LENGTH:
        logger.warning("No usable text for %s (%d chars)", chapter, len(text or ""))
        return []

    rule_name, parts = select_segments(text)

    if len(parts) <= 1 and len(text) > CHUNK_THRESHOLD:
        parts = chunk_by_size(text)
        rule_name = "fixed_size"

    segments: list[Segment] = []
    taken: set[str] = set()
    for position, part in enumerate(parts, start=1):
        content = part.strip()
        section = _section_id(content)
        content = content[:MAX_CONTENT_LENGTH]
        if len(content) < MIN_CONTENT_LENGTH:
            continue
        if section is None:
            reference = f"{chapter} (Part {position})"
        elif f"{chapter}-{section}" in taken:
            reference = f"{chapter}-{section} (Part {position})"
        else:
            reference = f"{chapter}-{section}"
        taken.add(reference)

        segments.append(
            Segment(
                position=position,
                reference=reference,
                section=section,
                section_title=_title(content),
                content=content,
            )
        )

    logger.info(
        "Segmented %s into %d provisions (rule=%s)",
        chapter,
        len(segments),
        rule_name or "whole_document",
    )
    return segments
