"""Ingestion pipeline: fetch → segment → tag → store → record.

Walks the source catalog one chapter at a time. Each chapter is a unit of
work that either ends ``recorded`` (provisions and ingestion marker committed
together) or is left unrecorded so the next run retries it. Chapters already
recorded are skipped, so an interrupted run can simply be started again.

Failures are per unit: a dead link or an unreadable PDF is logged and the run
moves on to the next chapter.
"""

import asyncio
import logging
import time

import mlflow
from mlflow.entities import SpanType

from codetrace.config import settings
from codetrace.core.errors import AcquisitionError, DocumentParseError
from codetrace.core.types import (
    SOURCE_CATALOG,
    ChapterUnit,
    IngestionReport,
    Provision,
    Source,
    SourceConfig,
    UnitOutcome,
    UnitState,
)
from codetrace.ingestion.catalog import chapter_units, document_units, parse_chapter_index
from codetrace.ingestion.keywords import extract_keywords
from codetrace.ingestion.segmenter import segment_chapter
from codetrace.observability.logging import correlation_scope
from codetrace.storage.store import ProvisionStore

logger = logging.getLogger(__name__)


def _fail(outcome: UnitOutcome, error: str) -> None:
    outcome.failed_at = outcome.state
    outcome.state = UnitState.FAILED
    outcome.error = error


def build_provisions(unit: ChapterUnit, text: str) -> list[Provision]:
    """Segment a chapter's text and tag each segment."""
    return [
        Provision(
            source=unit.source.value,
            chapter=unit.chapter,
            chapter_title=unit.chapter_title,
            section=segment.section,
            reference=segment.reference,
            section_title=segment.section_title,
            content=segment.content,
            keywords=extract_keywords(segment.content),
            source_url=unit.url,
        )
        for segment in segment_chapter(text, unit.chapter)
    ]


class IngestionCoordinator:
    """Drives segmentation and indexing over the source catalog.

    ``fetcher`` is anything with ``fetch_text(url)`` and ``fetch_page(url)``
    coroutines, normally a DocumentFetcher.
    """

    def __init__(
        self,
        store: ProvisionStore,
        fetcher,
        delay_seconds: float | None = None,
        catalog: dict[Source, SourceConfig] | None = None,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.delay_seconds = settings.politeness_delay_seconds if delay_seconds is None else delay_seconds
        self.catalog = catalog if catalog is not None else SOURCE_CATALOG

    # -- single unit -------------------------------------------------------

    @mlflow.trace(name="ingest_unit", span_type=SpanType.CHAIN)
    async def ingest_unit(self, unit: ChapterUnit) -> UnitOutcome:
        """Take one chapter from pending to recorded, or report why not."""
        outcome = UnitOutcome(unit=unit)
        log_extra = {"source": unit.source.value, "chapter": unit.chapter}
        started = time.perf_counter()

        try:
            if await self.store.is_ingested(unit.source, unit.chapter):
                outcome.state = UnitState.RECORDED
                outcome.skipped = True
                logger.info("%s (%s) already indexed", unit.chapter, unit.chapter_title, extra=log_extra)
                return outcome

            text = await self.fetcher.fetch_text(unit.url)
            outcome.state = UnitState.FETCHED

            provisions = build_provisions(unit, text)
            outcome.state = UnitState.SEGMENTED

            if not provisions:
                logger.warning(
                    "%s (%s) produced no provisions", unit.chapter, unit.chapter_title, extra=log_extra
                )
                return outcome

            count = await self.store.bulk_insert(provisions, record=(unit.source.value, unit.chapter))
            outcome.provisions = count
            outcome.state = UnitState.RECORDED

        except DocumentParseError as e:
            _fail(outcome, str(e))
            logger.warning("%s could not be parsed: %s", unit.chapter, e, extra=log_extra)
        except AcquisitionError as e:
            _fail(outcome, str(e))
            logger.error("%s could not be fetched: %s", unit.chapter, e, extra=log_extra)
        except Exception as e:
            _fail(outcome, f"{type(e).__name__}: {e}")
            logger.exception("Failed to ingest %s", unit.chapter, extra=log_extra)
        else:
            logger.info(
                "%s (%s): %d provisions indexed",
                unit.chapter,
                unit.chapter_title,
                outcome.provisions,
                extra={
                    **log_extra,
                    "state": outcome.state.value,
                    "provisions": outcome.provisions,
                    "duration_ms": round((time.perf_counter() - started) * 1000),
                },
            )

        return outcome

    # -- batches -----------------------------------------------------------

    async def ingest_units(self, units: list[ChapterUnit]) -> IngestionReport:
        """Ingest units sequentially, pausing between network-bound units."""
        report = IngestionReport()
        for unit in units:
            outcome = await self.ingest_unit(unit)
            report.outcomes.append(outcome)
            if not outcome.skipped and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)
        return report

    async def resolve_units(self, source: Source, all_chapters: bool = False) -> list[ChapterUnit]:
        """List the units of a source; municipal code chapters come from its index page."""
        config = self.catalog[source]
        if config.index_url:
            html = await self.fetcher.fetch_page(config.index_url)
            units = chapter_units(config, parse_chapter_index(html), all_chapters=all_chapters)
        else:
            units = document_units(config)

        logger.info(
            "%s: %d %s units",
            config.name,
            len(units),
            "total" if all_chapters else "priority",
            extra={"source": source.value},
        )
        return units

    async def ingest_source(self, source: str | Source, all_chapters: bool = False) -> IngestionReport:
        """Ingest every unit of one source. An unreachable index page yields an empty report."""
        source = Source.parse(source)
        logger.info("=== Ingesting %s ===", self.catalog[source].name)

        try:
            units = await self.resolve_units(source, all_chapters=all_chapters)
        except AcquisitionError as e:
            logger.error("Could not list units for %s: %s", source.value, e, extra={"source": source.value})
            return IngestionReport()

        report = await self.ingest_units(units)
        logger.info(
            "%s: %d provisions indexed, %d skipped, %d failed",
            self.catalog[source].name,
            report.total_provisions,
            len(report.skipped),
            len(report.failed),
            extra={"source": source.value},
        )
        return report

    async def ingest_all(self, all_chapters: bool = False) -> IngestionReport:
        """Ingest every source in the catalog."""
        with correlation_scope():
            report = IngestionReport()
            for source in self.catalog:
                report = report.merge(await self.ingest_source(source, all_chapters=all_chapters))

            logger.info(
                "Ingestion complete: %d provisions across %d recorded units (%d failed)",
                report.total_provisions,
                len(report.recorded),
                len(report.failed),
            )
        return report
