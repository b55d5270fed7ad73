"""Source catalog → ingestion units.

Document-based sources (zoning by-law, official plan) list their PDFs in
SOURCE_CATALOG directly. The municipal code is discovered from its index page:
each row links a "Chapter N" PDF with the chapter title in the next cell.
"""

import logging
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from codetrace.core.types import MUNICODE_BASE_URL, ChapterUnit, SourceConfig

logger = logging.getLogger(__name__)

CHAPTER_LINK_PATTERN = re.compile(r"Chapter\s+(\d+)", re.IGNORECASE)


@dataclass
class ChapterListing:
    """A chapter found on the municipal code index page."""

    number: int
    title: str
    url: str


def _absolute_url(href: str, base_url: str = MUNICODE_BASE_URL) -> str:
    if href.startswith("http"):
        return href
    return base_url + href.rsplit("/", 1)[-1]


def parse_chapter_index(html: str, base_url: str = MUNICODE_BASE_URL) -> list[ChapterListing]:
    """Find chapter PDFs on the municipal code index page."""
    soup = BeautifulSoup(html, "html.parser")
    chapters: list[ChapterListing] = []
    seen: set[int] = set()

    for link in soup.find_all("a", href=True):
        href = link["href"].strip()
        text = link.get_text(strip=True)
        match = CHAPTER_LINK_PATTERN.search(text)
        if not match or not href.lower().endswith(".pdf"):
            continue

        number = int(match.group(1))
        if number in seen:
            continue
        seen.add(number)

        title = text
        row = link.find_parent("tr")
        if row is not None:
            cells = row.find_all("td")
            if len(cells) > 1 and cells[1].get_text(strip=True):
                title = cells[1].get_text(strip=True)

        chapters.append(ChapterListing(number=number, title=title, url=_absolute_url(href, base_url)))

    logger.info("Found %d chapters on index page", len(chapters))
    return chapters


def chapter_units(
    config: SourceConfig,
    listings: list[ChapterListing],
    all_chapters: bool = False,
) -> list[ChapterUnit]:
    """Turn index-page listings into units, keeping priority chapters unless widened."""
    if not all_chapters:
        priority = set(config.priority_chapters)
        listings = [c for c in listings if c.number in priority]

    return [
        ChapterUnit(
            source=config.source,
            chapter=f"Chapter {c.number}",
            chapter_title=c.title,
            url=c.url,
        )
        for c in listings
    ]


def document_units(config: SourceConfig) -> list[ChapterUnit]:
    """Units for a source whose documents are listed in the catalog."""
    return [
        ChapterUnit(
            source=config.source,
            chapter=doc.chapter,
            chapter_title=f"{config.chapter_title_prefix}{doc.title}",
            url=doc.url,
        )
        for doc in config.documents
    ]
