"""Provision store: authoritative records plus an FTS5 term index.

The store owns one async SQLite engine for its lifetime (``open``/``close``,
or ``async with``). Every write touches the ``provisions`` table and the
``provisions_fts`` index in the same transaction, so a reader sees either
both or neither. The index holds the stemmed analysis of each field, built
with the same tokenizer used for queries.

Search is keyword-based on purpose: in legal text the exact term carries the
meaning ("angular plane" is not a paraphrase of "height limit").
"""

import logging
from pathlib import Path

from sqlalchemy import and_, delete, desc, event, func, or_, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from codetrace.config import settings
from codetrace.core.errors import IndexConsistencyError
from codetrace.core.tokenizer import FTS_TOKENIZER, analyze, query_terms, stem
from codetrace.core.types import ChapterCount, CodeStats, Provision, SearchResult, Source, SourceCount
from codetrace.storage.models import Base, IngestionRecord, ProvisionRow

logger = logging.getLogger(__name__)

FTS_COLUMNS = ("chapter_title", "section_title", "content", "summary", "keywords")
# bm25 column weights, in FTS_COLUMNS order
FTS_WEIGHTS = (2.0, 2.0, 1.0, 1.0, 0.5)
KEYWORD_SEPARATOR = ", "
TOP_CHAPTERS_LIMIT = 20

_CREATE_FTS = (
    f"CREATE VIRTUAL TABLE IF NOT EXISTS provisions_fts "
    f"USING fts5({', '.join(FTS_COLUMNS)}, tokenize='{FTS_TOKENIZER}')"
)
_INSERT_FTS = text(
    "INSERT INTO provisions_fts(rowid, chapter_title, section_title, content, summary, keywords) "
    "VALUES (:rowid, :chapter_title, :section_title, :content, :summary, :keywords)"
)
_DELETE_FTS = text("DELETE FROM provisions_fts WHERE rowid = :rowid")

_RANKED_SEARCH = """
    SELECT p.id, p.source, p.chapter, p.chapter_title, p.reference, p.section_title,
           p.content, p.summary, p.source_url,
           bm25(provisions_fts, {weights}) AS rank
    FROM provisions_fts
    JOIN provisions p ON p.id = provisions_fts.rowid
    WHERE provisions_fts MATCH :match
    {source_filter}
    ORDER BY rank
    LIMIT :limit
"""


def _create_engine(database_url: str) -> AsyncEngine:
    url = make_url(database_url)
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(database_url, echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _record):
        # WAL: readers never block on the ingestion writer
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    return engine


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _index_params(row: ProvisionRow) -> dict:
    return {
        "rowid": row.id,
        "chapter_title": analyze(row.chapter_title),
        "section_title": analyze(row.section_title),
        "content": analyze(row.content),
        "summary": analyze(row.summary),
        "keywords": analyze(row.keywords),
    }


def _to_row(provision: Provision) -> ProvisionRow:
    if provision.id is not None:
        raise ValueError(f"Provision {provision.id} is already stored; ids are never reassigned")
    if not provision.content or not provision.content.strip():
        raise ValueError(f"Provision {provision.reference!r} has empty content")
    return ProvisionRow(
        source=Source.parse(provision.source).value,
        chapter=provision.chapter,
        chapter_title=provision.chapter_title or "",
        section=provision.section,
        reference=provision.reference,
        section_title=provision.section_title,
        content=provision.content,
        summary=provision.summary,
        keywords=KEYWORD_SEPARATOR.join(provision.keywords),
        source_url=provision.source_url,
    )


def _to_provision(row: ProvisionRow) -> Provision:
    return Provision(
        id=row.id,
        source=row.source,
        chapter=row.chapter,
        chapter_title=row.chapter_title,
        section=row.section,
        reference=row.reference,
        section_title=row.section_title,
        content=row.content,
        summary=row.summary,
        keywords=[k for k in (row.keywords or "").split(KEYWORD_SEPARATOR) if k],
        source_url=row.source_url,
    )


def _to_result(row, score: float) -> SearchResult:
    return SearchResult(
        id=row.id,
        source=row.source,
        chapter=row.chapter,
        chapter_title=row.chapter_title,
        reference=row.reference,
        title=row.section_title or row.chapter_title,
        content=row.content,
        summary=row.summary,
        source_url=row.source_url,
        score=score,
    )


class ProvisionStore:
    """Persistent provision records and their term index."""

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url or settings.database_url
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    # -- lifecycle ---------------------------------------------------------

    async def open(self) -> "ProvisionStore":
        """Create the engine and any missing tables. Idempotent."""
        if self._engine is not None:
            return self

        self._engine = _create_engine(self.database_url)
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text(_CREATE_FTS))

        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info("Provision store opened (%s)", self.database_url)
        return self

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    async def __aenter__(self) -> "ProvisionStore":
        return await self.open()

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _session(self) -> AsyncSession:
        if self._session_factory is None:
            raise RuntimeError("ProvisionStore is not open")
        return self._session_factory()

    # -- writes ------------------------------------------------------------

    async def insert(self, provision: Provision) -> int:
        """Store one provision and index it. Returns the new id."""
        async with self._session() as session, session.begin():
            row = _to_row(provision)
            session.add(row)
            await session.flush()
            await session.execute(_INSERT_FTS, _index_params(row))

        provision.id = row.id
        return row.id

    async def bulk_insert(
        self,
        provisions: list[Provision],
        *,
        record: tuple[str, str] | None = None,
    ) -> int:
        """Store and index a batch in one transaction.

        Any failing record aborts the whole batch and leaves the store
        unchanged. When ``record`` is a (source, chapter) pair, the ingestion
        marker is written after the provisions and commits only with them.
        """
        if not provisions:
            return 0

        async with self._session() as session, session.begin():
            rows = [_to_row(p) for p in provisions]
            session.add_all(rows)
            await session.flush()
            await session.execute(_INSERT_FTS, [_index_params(r) for r in rows])

            if record is not None:
                source, chapter = record
                session.add(
                    IngestionRecord(
                        source=Source.parse(source).value,
                        chapter=chapter,
                        provisions_count=len(rows),
                    )
                )

        for provision, row in zip(provisions, rows):
            provision.id = row.id

        logger.info("Stored %d provisions", len(rows))
        return len(rows)

    async def update_summary(self, provision_id: int, summary: str | None) -> bool:
        """Backfill the plain-language summary and re-index the provision."""
        async with self._session() as session, session.begin():
            row = await session.get(ProvisionRow, provision_id)
            if row is None:
                return False
            row.summary = summary
            await session.flush()
            await session.execute(_DELETE_FTS, {"rowid": row.id})
            await session.execute(_INSERT_FTS, _index_params(row))
        return True

    async def delete(self, provision_id: int) -> bool:
        """Remove a provision and its index entry. Repair tooling only."""
        async with self._session() as session, session.begin():
            result = await session.execute(delete(ProvisionRow).where(ProvisionRow.id == provision_id))
            if result.rowcount == 0:
                return False
            await session.execute(_DELETE_FTS, {"rowid": provision_id})
        logger.info("Deleted provision %d", provision_id)
        return True

    # -- reads -------------------------------------------------------------

    async def get(self, provision_id: int) -> Provision | None:
        async with self._session() as session:
            row = await session.get(ProvisionRow, provision_id)
            return _to_provision(row) if row is not None else None

    async def search(
        self,
        query: str,
        *,
        limit: int = 5,
        source: str | Source | None = None,
    ) -> list[SearchResult]:
        """Ranked keyword search over titles, content, summary and keywords.

        Terms are OR-combined for recall. If the FTS engine rejects the
        query, falls back to substring matching with the terms AND-combined.
        Never raises for odd query text; returns [] when nothing matches.
        """
        terms = query_terms(query)
        if not terms or limit <= 0:
            return []

        source_key = Source.parse(source).value if source else None

        try:
            results = await self._ranked_search(terms, limit, source_key)
        except OperationalError as e:
            logger.warning("Ranked search rejected %r, falling back to substring match: %s", query, e)
            return await self._substring_search(terms, limit, source_key)

        if len(results) < limit:
            extra = await self._substring_search(
                terms, limit - len(results), source_key, exclude={r.id for r in results}
            )
            results.extend(extra)

        return results

    async def _ranked_search(self, terms: list[str], limit: int, source: str | None) -> list[SearchResult]:
        stems = dict.fromkeys(stem(t) for t in terms)
        match = " OR ".join(f'"{s}"' for s in stems)

        sql = _RANKED_SEARCH.format(
            weights=", ".join(str(w) for w in FTS_WEIGHTS),
            source_filter="AND p.source = :source" if source else "",
        )
        params: dict = {"match": match, "limit": limit}
        if source:
            params["source"] = source

        async with self._session() as session:
            rows = (await session.execute(text(sql), params)).fetchall()

        # bm25() is lower-is-better; expose higher-is-better scores
        return [_to_result(row, -float(row.rank)) for row in rows]

    async def _substring_search(
        self,
        terms: list[str],
        limit: int,
        source: str | None,
        exclude: set[int] | None = None,
    ) -> list[SearchResult]:
        fields = (
            ProvisionRow.content,
            ProvisionRow.chapter_title,
            ProvisionRow.section_title,
            ProvisionRow.summary,
            ProvisionRow.keywords,
        )
        conditions = [
            or_(*(f.like(f"%{_escape_like(term)}%", escape="\\") for f in fields))
            for term in terms
        ]
        stmt = select(ProvisionRow).where(and_(*conditions))
        if source:
            stmt = stmt.where(ProvisionRow.source == source)
        if exclude:
            stmt = stmt.where(ProvisionRow.id.notin_(exclude))
        stmt = stmt.order_by(ProvisionRow.id).limit(limit)

        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()

        return [_to_result(row, 0.0) for row in rows]

    async def stats(self) -> CodeStats:
        async with self._session() as session:
            total = await session.scalar(select(func.count()).select_from(ProvisionRow))

            count = func.count().label("count")
            by_source = (
                await session.execute(
                    select(ProvisionRow.source, count).group_by(ProvisionRow.source).order_by(desc("count"))
                )
            ).fetchall()

            top_chapters = (
                await session.execute(
                    select(ProvisionRow.chapter, func.max(ProvisionRow.chapter_title).label("chapter_title"), count)
                    .group_by(ProvisionRow.chapter)
                    .order_by(desc("count"), ProvisionRow.chapter)
                    .limit(TOP_CHAPTERS_LIMIT)
                )
            ).fetchall()

        return CodeStats(
            total_provisions=total or 0,
            by_source=[SourceCount(source=r.source, count=r.count) for r in by_source],
            top_chapters=[
                ChapterCount(chapter=r.chapter, chapter_title=r.chapter_title or "", count=r.count)
                for r in top_chapters
            ],
        )

    # -- ingestion markers -------------------------------------------------

    async def is_ingested(self, source: str | Source, chapter: str) -> bool:
        async with self._session() as session:
            found = await session.scalar(
                select(IngestionRecord.id).where(
                    IngestionRecord.source == Source.parse(source).value,
                    IngestionRecord.chapter == chapter,
                )
            )
        return found is not None

    async def record_ingestion(self, source: str | Source, chapter: str, count: int) -> None:
        async with self._session() as session, session.begin():
            session.add(
                IngestionRecord(source=Source.parse(source).value, chapter=chapter, provisions_count=count)
            )

    # -- index repair ------------------------------------------------------

    async def check_consistency(self) -> None:
        """Raise IndexConsistencyError if records and index entries disagree."""
        async with self._session() as session:
            missing = await session.scalar(
                text("SELECT count(*) FROM provisions WHERE id NOT IN (SELECT rowid FROM provisions_fts)")
            )
            orphaned = await session.scalar(
                text("SELECT count(*) FROM provisions_fts WHERE rowid NOT IN (SELECT id FROM provisions)")
            )
        if missing or orphaned:
            raise IndexConsistencyError(missing or 0, orphaned or 0)

    async def rebuild_index(self) -> int:
        """Drop every index entry and re-index all provisions in one transaction."""
        async with self._session() as session, session.begin():
            await session.execute(text("DELETE FROM provisions_fts"))
            rows = (await session.scalars(select(ProvisionRow).order_by(ProvisionRow.id))).all()
            if rows:
                await session.execute(_INSERT_FTS, [_index_params(r) for r in rows])

        logger.info("Rebuilt term index for %d provisions", len(rows))
        return len(rows)
