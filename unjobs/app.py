import argparse
import json
from dataclasses import asdict, replace
from pathlib import Path

from .env import load_env

from . import __version__
from .analytics import AGGREGATES, AnalyticsReader
from .classifier import Classifier
from .cleanup import purge_expired_analytics
from .config import LOAD_STRATEGIES, Settings
from .dictionary import default_dictionary, load_dictionary
from .logger import get_logger, reset_logger
from .search import PostingQuery, filter_options, get_posting, get_sync_status, search_postings
from .source import SourceStore
from .storage import CacheStore
from .sync import SyncOrchestrator


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if getattr(args, "db", None):
        overrides["cache_db_path"] = Path(args.db)
    if getattr(args, "source", None):
        overrides["source_database_url"] = args.source
    if getattr(args, "strategy", None):
        overrides["load_strategy"] = args.strategy
    if getattr(args, "batch_size", None):
        overrides["batch_size"] = args.batch_size
    if getattr(args, "dictionary", None):
        overrides["dictionary_path"] = Path(args.dictionary)
    return replace(settings, **overrides) if overrides else settings


def _store(settings: Settings) -> CacheStore:
    store = CacheStore(settings.cache_db_path)
    store.init()
    return store


def _classifier(settings: Settings) -> Classifier:
    if settings.dictionary_path:
        return Classifier(load_dictionary(settings.dictionary_path))
    return Classifier(default_dictionary())


def cmd_init(args: argparse.Namespace) -> None:
    settings = _settings(args)
    _store(settings)
    print(f"Cache initialized at {settings.cache_db_path}")


def cmd_sync(args: argparse.Namespace) -> None:
    settings = _settings(args)
    if not settings.source_database_url:
        raise SystemExit("SOURCE_DATABASE_URL not set. Set env var or pass --source.")
    store = _store(settings)
    source = SourceStore(settings.source_database_url, max_retries=settings.fetch_retries)
    orchestrator = SyncOrchestrator(store, source, classifier=_classifier(settings), settings=settings)
    result = orchestrator.full_sync()
    _print_json(result.to_dict())
    if not result.success:
        raise SystemExit(1)


def cmd_status(args: argparse.Namespace) -> None:
    _print_json(get_sync_status(_store(_settings(args))))


def cmd_analytics(args: argparse.Namespace) -> None:
    settings = _settings(args)
    reader = AnalyticsReader(_store(settings))
    _print_json(reader.get(args.name, agency=args.agency).to_dict())


def cmd_jobs(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    query = PostingQuery(
        category=args.category,
        agency=args.agency,
        status=args.status,
        search=args.search,
        country=args.country,
        grade=args.grade,
        sort=args.sort,
        order=args.order,
        page=args.page,
        limit=args.limit,
    )
    session = store.session()
    try:
        _print_json(asdict(search_postings(session, query)))
    finally:
        session.close()


def cmd_job(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    session = store.session()
    try:
        posting = get_posting(session, args.id)
    finally:
        session.close()
    if posting is None:
        raise SystemExit(f"Posting not found: {args.id}")
    _print_json(posting)


def cmd_filters(args: argparse.Namespace) -> None:
    store = _store(_settings(args))
    session = store.session()
    try:
        _print_json(filter_options(session))
    finally:
        session.close()


def cmd_classify(args: argparse.Namespace) -> None:
    input_path = Path(args.input)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        posting = json.load(f)
    result = _classifier(_settings(args)).classify(posting)
    _print_json(result.to_dict())


def cmd_purge_cache(args: argparse.Namespace) -> None:
    settings = _settings(args)
    _store(settings)
    removed = purge_expired_analytics(settings.cache_db_path)
    print(f"Removed {removed} expired analytics entries")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="unjobs", description="UN job postings cache and classifier")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")

    def add_db(p):
        p.add_argument("--db", help="Path to cache database (default: UNJOBS_CACHE_DB or data/jobs_cache.db)")

    ini = subparsers.add_parser("init", help="Create the cache database")
    add_db(ini)
    ini.set_defaults(func=cmd_init)

    syn = subparsers.add_parser("sync", help="Run a full sync from the source database")
    add_db(syn)
    syn.add_argument("--source", help="Source SQLAlchemy URL (or set SOURCE_DATABASE_URL)")
    syn.add_argument("--strategy", choices=LOAD_STRATEGIES, help="Load strategy (default: swap)")
    syn.add_argument("--batch-size", type=int, help="Rows per insert transaction (default: 500)")
    syn.add_argument("--dictionary", help="JSON category dictionary (default: built-in)")
    syn.set_defaults(func=cmd_sync)

    sts = subparsers.add_parser("status", help="Show last sync status")
    add_db(sts)
    sts.set_defaults(func=cmd_status)

    ana = subparsers.add_parser("analytics", help="Show a dashboard aggregate")
    ana.add_argument("name", choices=sorted(AGGREGATES), help="Aggregate name")
    ana.add_argument("--agency", help="Compute live for one agency")
    add_db(ana)
    ana.set_defaults(func=cmd_analytics)

    jbs = subparsers.add_parser("jobs", help="List cached postings")
    add_db(jbs)
    jbs.add_argument("--category", help="Primary category id")
    jbs.add_argument("--agency", help="Agency short or long name")
    jbs.add_argument("--status", choices=["active", "closing_soon", "expired", "archived", "all"])
    jbs.add_argument("--search", help="Substring of title, labels or description")
    jbs.add_argument("--country", help="Duty country")
    jbs.add_argument("--grade", help="Grade or grade prefix, e.g. P-4 or P-")
    jbs.add_argument("--sort", default="posting_date", help="posting_date, confidence, title, days_remaining or id")
    jbs.add_argument("--order", default="desc", choices=["asc", "desc"])
    jbs.add_argument("--page", type=int, default=1)
    jbs.add_argument("--limit", type=int, default=50)
    jbs.set_defaults(func=cmd_jobs)

    job = subparsers.add_parser("job", help="Show one cached posting")
    job.add_argument("id", type=int, help="Posting id")
    add_db(job)
    job.set_defaults(func=cmd_job)

    flt = subparsers.add_parser("filters", help="Show available filter values")
    add_db(flt)
    flt.set_defaults(func=cmd_filters)

    cls = subparsers.add_parser("classify", help="Classify a posting JSON without touching the cache")
    cls.add_argument("--input", required=True, help="Path to posting JSON input")
    cls.add_argument("--dictionary", help="JSON category dictionary (default: built-in)")
    cls.set_defaults(func=cmd_classify)

    prg = subparsers.add_parser("purge-cache", help="Delete expired analytics entries")
    add_db(prg)
    prg.set_defaults(func=cmd_purge_cache)

    return parser


def main(argv=None):
    # Load .env if present (SOURCE_DATABASE_URL, UNJOBS_CACHE_DB, etc.)
    load_env()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        settings = Settings.from_env()
        reset_logger()
        get_logger(level=settings.log_level, log_dir=settings.log_dir)
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
