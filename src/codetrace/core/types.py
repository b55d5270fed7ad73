"""Domain types for the codetrace legal search engine.

All shared dataclasses and type definitions live here to prevent
circular imports and establish a single source of truth for the
domain model. Every other module imports from here.
"""

from dataclasses import dataclass, field
from enum import Enum

from codetrace.core.errors import UnknownSourceError


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class Source(str, Enum):
    """Legal sources a provision can be extracted from."""

    MUNICIPAL_CODE = "municipal_code"
    ZONING_BYLAW = "zoning_bylaw"
    OFFICIAL_PLAN = "official_plan"
    TTC = "ttc"
    BUILDING_CODE = "building_code"

    @classmethod
    def parse(cls, value: "str | Source") -> "Source":
        """Coerce a source key into the enumeration, rejecting unknown keys."""
        try:
            return cls(value)
        except ValueError:
            known = ", ".join(s.value for s in cls)
            raise UnknownSourceError(f"Unknown source: {value!r}. Known sources: {known}") from None


# ---------------------------------------------------------------------------
# Provision types
# ---------------------------------------------------------------------------

@dataclass
class Segment:
    """A provision candidate cut from a chapter's raw text."""

    position: int
    reference: str
    section: str | None
    section_title: str | None
    content: str


@dataclass
class Provision:
    """One atomic, citable unit of legal text.

    ``id`` is assigned by the store on insert and never reused.
    ``section`` is the identifier recovered from the text (may be None);
    ``reference`` is always set, synthesized from the chapter when needed.
    """

    source: str
    chapter: str
    chapter_title: str
    reference: str
    content: str
    section: str | None = None
    section_title: str | None = None
    summary: str | None = None
    keywords: list[str] = field(default_factory=list)
    source_url: str | None = None
    id: int | None = None

    @property
    def title(self) -> str:
        return self.section_title or self.chapter_title


# ---------------------------------------------------------------------------
# Search types
# ---------------------------------------------------------------------------

@dataclass
class SearchResult:
    """A single provision returned by search, best match first."""

    id: int
    source: str
    chapter: str
    chapter_title: str
    reference: str
    title: str
    content: str
    summary: str | None
    source_url: str | None
    score: float


@dataclass
class SourceCount:
    source: str
    count: int


@dataclass
class ChapterCount:
    chapter: str
    chapter_title: str
    count: int


@dataclass
class CodeStats:
    """Aggregate counts over the committed provisions."""

    total_provisions: int
    by_source: list[SourceCount]
    top_chapters: list[ChapterCount]


# ---------------------------------------------------------------------------
# Catalog types
# ---------------------------------------------------------------------------

@dataclass
class DocumentRef:
    """A single source document that is ingested as one chapter."""

    url: str
    chapter: str
    title: str


@dataclass
class SourceConfig:
    """Where a source's documents live and which of them to ingest by default."""

    source: Source
    name: str
    index_url: str | None = None
    priority_chapters: list[int] = field(default_factory=list)
    documents: list[DocumentRef] = field(default_factory=list)
    chapter_title_prefix: str = ""


@dataclass
class ChapterUnit:
    """One unit of ingestion work: a (source, chapter) pair and its document."""

    source: Source
    chapter: str
    chapter_title: str
    url: str


# ---------------------------------------------------------------------------
# Ingestion state
# ---------------------------------------------------------------------------

class UnitState(str, Enum):
    """Per-unit lifecycle: pending → fetched → segmented → indexed → recorded.

    INDEXED and RECORDED commit in the same transaction, so a unit is never
    observed indexed without its ingestion marker. A unit left SEGMENTED
    produced no provisions.
    """

    PENDING = "pending"
    FETCHED = "fetched"
    SEGMENTED = "segmented"
    INDEXED = "indexed"
    RECORDED = "recorded"
    FAILED = "failed"


@dataclass
class UnitOutcome:
    unit: ChapterUnit
    state: UnitState = UnitState.PENDING
    provisions: int = 0
    skipped: bool = False
    error: str | None = None
    failed_at: UnitState | None = None


@dataclass
class IngestionReport:
    """Aggregate result of an ingestion run."""

    outcomes: list[UnitOutcome] = field(default_factory=list)

    @property
    def total_provisions(self) -> int:
        return sum(o.provisions for o in self.outcomes if o.state is UnitState.RECORDED and not o.skipped)

    @property
    def recorded(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.state is UnitState.RECORDED and not o.skipped]

    @property
    def skipped(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.skipped]

    @property
    def failed(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.state is UnitState.FAILED]

    @property
    def empty(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.state is UnitState.SEGMENTED]

    def merge(self, other: "IngestionReport") -> "IngestionReport":
        return IngestionReport(outcomes=self.outcomes + other.outcomes)


# ---------------------------------------------------------------------------
# Source catalog: the documents known to the ingester.
# Municipal code chapters are discovered from the index page at run time.
# ---------------------------------------------------------------------------

MUNICODE_BASE_URL = "https://www.toronto.ca/legdocs/municode/"

SOURCE_CATALOG: dict[Source, SourceConfig] = {
    Source.MUNICIPAL_CODE: SourceConfig(
        source=Source.MUNICIPAL_CODE,
        name="Toronto Municipal Code",
        index_url="https://www.toronto.ca/legdocs/bylaws/lawmcode.htm",
        # Citizen-facing chapters most likely to come up in stories
        priority_chapters=[
            349, 354, 363, 395, 415, 441, 447, 459, 469, 489, 492,
            510, 517, 523, 545, 547, 548, 553, 555, 591, 608, 611,
            612, 615, 629, 632, 636, 658, 673, 681, 693, 694, 719,
            738, 743, 767, 813, 841, 844, 849, 851, 880, 886, 903,
            910, 915, 918, 919, 925, 937, 950,
        ],
    ),
    Source.ZONING_BYLAW: SourceConfig(
        source=Source.ZONING_BYLAW,
        name="Zoning By-law 569-2013",
        chapter_title_prefix="Zoning By-law 569-2013 - ",
        documents=[
            DocumentRef(
                url="https://www.toronto.ca/legdocs/bylaws/2013/law0569-schedule-a-vol1-ch1-800.pdf",
                chapter="Zoning By-law 569-2013 Vol. 1",
                title="Chapters 1-800 (Administration, Zones, Parking, General Provisions, Definitions)",
            ),
            DocumentRef(
                url="https://www.toronto.ca/legdocs/bylaws/2013/law0569-schedule-a-vol2-ch900-part1.pdf",
                chapter="Zoning By-law 569-2013 Vol. 2",
                title="Exceptions Part 1",
            ),
            DocumentRef(
                url="https://www.toronto.ca/wp-content/uploads/2018/07/97ec-City-Planning-Zoning-Zoning-By-law-Part-1.pdf",
                chapter="Zoning By-law 569-2013 Consolidated",
                title="Office Consolidation (Chapters 1-80)",
            ),
        ],
    ),
    Source.OFFICIAL_PLAN: SourceConfig(
        source=Source.OFFICIAL_PLAN,
        name="Official Plan",
        documents=[
            DocumentRef(
                url="https://www.toronto.ca/wp-content/uploads/2019/06/8f06-OfficialPlanAODA_Compiled-3.0.pdf",
                chapter="Official Plan",
                title="Consolidated Official Plan",
            ),
        ],
    ),
}
