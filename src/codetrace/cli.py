"""codetrace CLI — story tracing, ingestion, search, stats, and index repair commands."""

import asyncio
import sys

import mlflow

from codetrace.config import settings
from codetrace.core.errors import IndexConsistencyError
from codetrace.core.types import CodeStats, IngestionReport, SearchResult, Source
from codetrace.observability.logging import correlation_scope, setup_logging
from codetrace.storage.store import ProvisionStore


def _init() -> None:
    setup_logging(json_format=settings.log_json, level=settings.log_level)
    mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
    mlflow.set_experiment(settings.mlflow_experiment_name)


def _split_args(argv: list[str]) -> tuple[list[str], dict[str, str]]:
    """Separate positional words from --key=value / --flag options."""
    words, options = [], {}
    for arg in argv:
        if arg.startswith("--"):
            key, _, value = arg[2:].partition("=")
            options[key] = value
        else:
            words.append(arg)
    return words, options


def _query_options(options: dict[str, str], usage: str) -> tuple[str | None, int | None]:
    """Validate --source and --limit; print usage and exit on bad values."""
    try:
        source = Source.parse(options["source"]).value if options.get("source") else None
        limit = int(options["limit"]) if options.get("limit") else None
    except ValueError as e:
        print(f"Error: {e}")
        print(usage)
        sys.exit(1)
    return source, limit


def _print_results(results: list[SearchResult]) -> None:
    for i, r in enumerate(results, 1):
        print(f"--- {i}. {r.reference} (score={r.score:.3f}, {r.source}) ---")
        print(f"{r.title}")
        print(f"{r.content[:300]}{'...' if len(r.content) > 300 else ''}")
        if r.source_url:
            print(f"Source: {r.source_url}")
        print()


def _print_stats(stats: CodeStats) -> None:
    print(f"Total provisions indexed: {stats.total_provisions}")
    print("By source:")
    for s in stats.by_source:
        print(f"  {s.source}: {s.count}")
    if stats.top_chapters:
        print("Top chapters:")
        for c in stats.top_chapters:
            print(f"  {c.chapter:<40} {c.count:>5}  {c.chapter_title}")


def _print_report(report: IngestionReport) -> None:
    for outcome in report.failed:
        print(f"  FAILED {outcome.unit.chapter}: {outcome.error}")
    for outcome in report.empty:
        print(f"  EMPTY  {outcome.unit.chapter}: no provisions extracted")
    print(
        f"\nIndexed {report.total_provisions} provisions from {len(report.recorded)} chapters "
        f"({len(report.skipped)} already indexed, {len(report.failed)} failed, {len(report.empty)} empty)"
    )


def main() -> None:
    """Trace a citizen story to the code: codetrace <story>"""
    _init()

    usage = "Usage: codetrace <story> [--source=<key>] [--limit=N]"
    words, options = _split_args(sys.argv[1:])
    if not words:
        print(usage)
        print('  Example: codetrace "The streetcar on Queen never comes and the sidewalk is never plowed"')
        sys.exit(1)

    story = " ".join(words)
    source, limit = _query_options(options, usage)

    async def _run():
        from codetrace.retrieval.search import trace_story

        async with ProvisionStore() as store:
            return await trace_story(
                store,
                story,
                source=source,
                limit=limit,
            )

    with correlation_scope():
        terms, results = asyncio.run(_run())

    if not terms:
        print("Nothing in this story maps to code vocabulary.")
        return

    print(f"\nSearch terms: {terms}")
    print(f"Found {len(results)} provisions:\n")
    _print_results(results)


def ingest_main() -> None:
    """Run the ingestion pipeline: codetrace-ingest [--source=<key>|all] [--all-chapters]"""
    _init()

    usage = "Usage: codetrace-ingest [--source=<key>|all] [--all-chapters]"
    _, options = _split_args(sys.argv[1:])
    if "help" in options:
        print(usage)
        print(f"  Sources: {', '.join(s.value for s in Source)}")
        print("  --all-chapters: ingest every municipal code chapter, not only the priority set")
        sys.exit(0)

    source = options.get("source") or "all"
    if source != "all":
        source, _ = _query_options({"source": source}, usage)
    all_chapters = "all-chapters" in options

    async def _run():
        from codetrace.ingestion.fetcher import DocumentFetcher
        from codetrace.pipeline.ingest import IngestionCoordinator

        async with ProvisionStore() as store, DocumentFetcher() as fetcher:
            coordinator = IngestionCoordinator(store, fetcher)
            if source == "all":
                report = await coordinator.ingest_all(all_chapters=all_chapters)
            else:
                report = await coordinator.ingest_source(source, all_chapters=all_chapters)
            return report, await store.stats()

    with correlation_scope():
        report, stats = asyncio.run(_run())
    _print_report(report)
    print()
    _print_stats(stats)


def search_main() -> None:
    """Search the code directly: codetrace-search <query> [--source=<key>] [--limit=N]"""
    _init()

    usage = "Usage: codetrace-search <query> [--source=<key>] [--limit=N]"
    words, options = _split_args(sys.argv[1:])
    if not words:
        print(usage)
        print('  Example: codetrace-search "noise after 11pm" --source=municipal_code')
        sys.exit(1)

    query = " ".join(words)
    source, limit = _query_options(options, usage)

    async def _run():
        from codetrace.retrieval.search import search_provisions

        async with ProvisionStore() as store:
            return await search_provisions(
                store,
                query,
                source=source,
                limit=limit,
            )

    with correlation_scope():
        results = asyncio.run(_run())
    print(f"\nFound {len(results)} provisions for {query!r}:\n")
    _print_results(results)


def stats_main() -> None:
    """Print store statistics: codetrace-stats"""
    _init()

    async def _run():
        async with ProvisionStore() as store:
            return await store.stats()

    with correlation_scope():
        stats = asyncio.run(_run())
    _print_stats(stats)


def repair_main() -> None:
    """Check or rebuild the term index: codetrace-repair [--check | --rebuild]"""
    _init()

    _, options = _split_args(sys.argv[1:])
    if not ({"check", "rebuild"} & options.keys()):
        print("Usage: codetrace-repair [--check | --rebuild]")
        sys.exit(1)

    async def _run() -> int:
        async with ProvisionStore() as store:
            if "rebuild" in options:
                count = await store.rebuild_index()
                print(f"Rebuilt term index for {count} provisions")
                return 0
            try:
                await store.check_consistency()
            except IndexConsistencyError as e:
                print(str(e))
                return 2
            print("Term index is consistent with provision records")
            return 0

    sys.exit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
