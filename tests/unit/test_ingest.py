"""Tests for the ingestion coordinator: per-unit states and failure isolation."""

from unittest.mock import AsyncMock, patch

import pytest

from codetrace.core.errors import AcquisitionError, DocumentParseError, UnknownSourceError
from codetrace.core.types import (
    ChapterUnit,
    DocumentRef,
    IngestionReport,
    Source,
    SourceConfig,
    UnitOutcome,
    UnitState,
)
from codetrace.pipeline.ingest import IngestionCoordinator, build_provisions

NOISE_TEXT = (
    "§ 591-2.1 No person shall make or cause noise after 11pm on any day.\n"
    "§ 591-2.2 Construction noise is prohibited before 7am on weekdays."
)
SNOW_TEXT = (
    "§ 719-1 Every owner shall remove snow and ice from the sidewalk within 12 hours.\n"
    "§ 719-2 No person shall deposit snow from private property onto a roadway."
)

INDEX_HTML = """
<html><body><table>
  <tr><td><a href="/legdocs/municode/1184_591.pdf">Chapter 591</a></td><td>Noise</td></tr>
  <tr><td><a href="1184_719.pdf">Chapter 719</a></td><td>Snow and Ice</td></tr>
  <tr><td><a href="1184_999.pdf">Chapter 999</a></td><td>Not a priority chapter</td></tr>
  <tr><td><a href="1184_591.pdf">Chapter 591</a></td><td>Noise (duplicate link)</td></tr>
</table></body></html>
"""


class FakeFetcher:
    """Serves canned text per URL; exceptions in the map are raised."""

    def __init__(self, documents: dict, pages: dict | None = None) -> None:
        self.documents = documents
        self.pages = pages or {}
        self.fetched: list[str] = []

    async def fetch_text(self, url: str) -> str:
        self.fetched.append(url)
        result = self.documents[url]
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_page(self, url: str) -> str:
        result = self.pages[url]
        if isinstance(result, Exception):
            raise result
        return result


def _unit(chapter: str, url: str, source: Source = Source.MUNICIPAL_CODE) -> ChapterUnit:
    return ChapterUnit(source=source, chapter=chapter, chapter_title=f"{chapter} title", url=url)


NOISE_UNIT = _unit("Chapter 591", "https://example.org/591.pdf")
SNOW_UNIT = _unit("Chapter 719", "https://example.org/719.pdf")


class TestBuildProvisions:
    def test_provisions_carry_unit_metadata_and_keywords(self):
        provisions = build_provisions(NOISE_UNIT, NOISE_TEXT)
        assert len(provisions) == 2
        for p in provisions:
            assert p.source == "municipal_code"
            assert p.chapter == "Chapter 591"
            assert p.chapter_title == "Chapter 591 title"
            assert p.source_url == "https://example.org/591.pdf"
            assert "noise" in p.keywords
            assert p.id is None

    def test_no_text(self):
        assert build_provisions(NOISE_UNIT, "") == []


class TestIngestUnit:
    async def test_unit_is_recorded(self, store):
        coordinator = IngestionCoordinator(store, FakeFetcher({NOISE_UNIT.url: NOISE_TEXT}), delay_seconds=0)
        outcome = await coordinator.ingest_unit(NOISE_UNIT)

        assert outcome.state is UnitState.RECORDED
        assert outcome.provisions == 2
        assert not outcome.skipped
        assert outcome.error is None
        assert await store.is_ingested("municipal_code", "Chapter 591")
        assert len(await store.search("noise")) == 2

    async def test_second_run_skips_without_fetching(self, store):
        fetcher = FakeFetcher({NOISE_UNIT.url: NOISE_TEXT})
        coordinator = IngestionCoordinator(store, fetcher, delay_seconds=0)
        await coordinator.ingest_unit(NOISE_UNIT)
        outcome = await coordinator.ingest_unit(NOISE_UNIT)

        assert outcome.state is UnitState.RECORDED
        assert outcome.skipped
        assert fetcher.fetched == [NOISE_UNIT.url]
        assert (await store.stats()).total_provisions == 2

    async def test_no_provisions_left_unrecorded(self, store):
        coordinator = IngestionCoordinator(store, FakeFetcher({NOISE_UNIT.url: "Page 1 of 1"}), delay_seconds=0)
        outcome = await coordinator.ingest_unit(NOISE_UNIT)

        assert outcome.state is UnitState.SEGMENTED
        assert outcome.provisions == 0
        assert not await store.is_ingested("municipal_code", "Chapter 591")

    async def test_acquisition_failure(self, store):
        error = AcquisitionError(NOISE_UNIT.url, 404)
        coordinator = IngestionCoordinator(store, FakeFetcher({NOISE_UNIT.url: error}), delay_seconds=0)
        outcome = await coordinator.ingest_unit(NOISE_UNIT)

        assert outcome.state is UnitState.FAILED
        assert outcome.failed_at is UnitState.PENDING
        assert "HTTP 404" in outcome.error
        assert not await store.is_ingested("municipal_code", "Chapter 591")

    async def test_parse_failure(self, store):
        error = DocumentParseError(NOISE_UNIT.url, "not a PDF")
        coordinator = IngestionCoordinator(store, FakeFetcher({NOISE_UNIT.url: error}), delay_seconds=0)
        outcome = await coordinator.ingest_unit(NOISE_UNIT)

        assert outcome.state is UnitState.FAILED
        assert "not a PDF" in outcome.error

    async def test_store_failure_leaves_nothing_behind(self, store):
        coordinator = IngestionCoordinator(store, FakeFetcher({NOISE_UNIT.url: NOISE_TEXT}), delay_seconds=0)
        with patch.object(store, "bulk_insert", AsyncMock(side_effect=RuntimeError("disk full"))):
            outcome = await coordinator.ingest_unit(NOISE_UNIT)

        assert outcome.state is UnitState.FAILED
        assert outcome.failed_at is UnitState.SEGMENTED
        assert outcome.error == "RuntimeError: disk full"
        assert not await store.is_ingested("municipal_code", "Chapter 591")

        # The unit is retried on the next run
        outcome = await coordinator.ingest_unit(NOISE_UNIT)
        assert outcome.state is UnitState.RECORDED


class TestIngestUnits:
    async def test_failure_does_not_stop_the_run(self, store):
        fetcher = FakeFetcher({
            NOISE_UNIT.url: AcquisitionError(NOISE_UNIT.url, None, "connection reset"),
            SNOW_UNIT.url: SNOW_TEXT,
        })
        report = await IngestionCoordinator(store, fetcher, delay_seconds=0).ingest_units([NOISE_UNIT, SNOW_UNIT])

        assert [o.state for o in report.outcomes] == [UnitState.FAILED, UnitState.RECORDED]
        assert len(report.failed) == 1
        assert len(report.recorded) == 1
        assert report.total_provisions == 2

    async def test_politeness_delay_between_fetches(self, store):
        fetcher = FakeFetcher({NOISE_UNIT.url: NOISE_TEXT, SNOW_UNIT.url: SNOW_TEXT})
        coordinator = IngestionCoordinator(store, fetcher, delay_seconds=0.5)

        with patch("codetrace.pipeline.ingest.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await coordinator.ingest_units([NOISE_UNIT, SNOW_UNIT])
            assert sleep.await_count == 2
            sleep.assert_awaited_with(0.5)

            # skipped units are not delayed
            sleep.reset_mock()
            report = await coordinator.ingest_units([NOISE_UNIT, SNOW_UNIT])
            assert sleep.await_count == 0
            assert len(report.skipped) == 2


class TestResolveUnits:
    async def test_priority_chapters_from_index_page(self, store):
        config = SourceConfig(
            source=Source.MUNICIPAL_CODE,
            name="Municipal Code",
            index_url="https://example.org/index.htm",
            priority_chapters=[591, 719],
        )
        fetcher = FakeFetcher({}, pages={config.index_url: INDEX_HTML})
        coordinator = IngestionCoordinator(store, fetcher, delay_seconds=0, catalog={Source.MUNICIPAL_CODE: config})

        units = await coordinator.resolve_units(Source.MUNICIPAL_CODE)
        assert [(u.chapter, u.chapter_title) for u in units] == [
            ("Chapter 591", "Noise"),
            ("Chapter 719", "Snow and Ice"),
        ]
        assert units[0].url == "https://www.toronto.ca/legdocs/municode/1184_591.pdf"

        widened = await coordinator.resolve_units(Source.MUNICIPAL_CODE, all_chapters=True)
        assert [u.chapter for u in widened] == ["Chapter 591", "Chapter 719", "Chapter 999"]

    async def test_document_sources(self, store):
        config = SourceConfig(
            source=Source.OFFICIAL_PLAN,
            name="Official Plan",
            chapter_title_prefix="OP - ",
            documents=[DocumentRef(url="https://example.org/op.pdf", chapter="Official Plan", title="Consolidated")],
        )
        coordinator = IngestionCoordinator(store, FakeFetcher({}), delay_seconds=0, catalog={Source.OFFICIAL_PLAN: config})

        units = await coordinator.resolve_units(Source.OFFICIAL_PLAN)
        assert units == [
            ChapterUnit(
                source=Source.OFFICIAL_PLAN,
                chapter="Official Plan",
                chapter_title="OP - Consolidated",
                url="https://example.org/op.pdf",
            )
        ]


class TestIngestSource:
    async def test_unknown_source(self, store):
        coordinator = IngestionCoordinator(store, FakeFetcher({}), delay_seconds=0)
        with pytest.raises(UnknownSourceError):
            await coordinator.ingest_source("bylaws_of_atlantis")

    async def test_unreachable_index_page(self, store):
        config = SourceConfig(
            source=Source.MUNICIPAL_CODE,
            name="Municipal Code",
            index_url="https://example.org/index.htm",
            priority_chapters=[591],
        )
        fetcher = FakeFetcher({}, pages={config.index_url: AcquisitionError(config.index_url, 503)})
        coordinator = IngestionCoordinator(store, fetcher, delay_seconds=0, catalog={Source.MUNICIPAL_CODE: config})

        report = await coordinator.ingest_source("municipal_code")
        assert report.outcomes == []

    async def test_ingest_all_merges_sources(self, store):
        catalog = {
            Source.OFFICIAL_PLAN: SourceConfig(
                source=Source.OFFICIAL_PLAN,
                name="Official Plan",
                documents=[DocumentRef(url="https://example.org/op.pdf", chapter="Official Plan", title="OP")],
            ),
            Source.ZONING_BYLAW: SourceConfig(
                source=Source.ZONING_BYLAW,
                name="Zoning",
                documents=[DocumentRef(url="https://example.org/zb.pdf", chapter="Zoning Vol. 1", title="Vol 1")],
            ),
        }
        fetcher = FakeFetcher({
            "https://example.org/op.pdf": NOISE_TEXT,
            "https://example.org/zb.pdf": DocumentParseError("https://example.org/zb.pdf", "encrypted"),
        })
        report = await IngestionCoordinator(store, fetcher, delay_seconds=0, catalog=catalog).ingest_all()

        assert len(report.outcomes) == 2
        assert len(report.recorded) == 1
        assert len(report.failed) == 1
        assert await store.is_ingested("official_plan", "Official Plan")
        assert {s.source for s in (await store.stats()).by_source} == {"official_plan"}


class TestIngestionReport:
    def test_counts(self):
        recorded = UnitOutcome(unit=NOISE_UNIT, state=UnitState.RECORDED, provisions=4)
        skipped = UnitOutcome(unit=SNOW_UNIT, state=UnitState.RECORDED, skipped=True)
        empty = UnitOutcome(unit=SNOW_UNIT, state=UnitState.SEGMENTED)
        failed = UnitOutcome(unit=SNOW_UNIT, state=UnitState.FAILED, failed_at=UnitState.PENDING)

        report = IngestionReport([recorded, skipped]).merge(IngestionReport([empty, failed]))
        assert report.total_provisions == 4
        assert report.recorded == [recorded]
        assert report.skipped == [skipped]
        assert report.empty == [empty]
        assert report.failed == [failed]
