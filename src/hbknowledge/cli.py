"""Command-line administration for the rule store.

Examples:
  hbknowledge-admin ingest notes/2.1.0.md --version 2.1.0
  hbknowledge-admin list --status draft
  hbknowledge-admin review auto-hbapplication-2.1.0 approved
  hbknowledge-admin check Sources/App/main.swift
  hbknowledge-admin watch releases/ --interval 600
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .bootstrap_loader import load_bootstrap
from .config import AppConfig
from .errors import RuleStoreError
from .ingestion import IngestionService
from .logging_config import configure_logging
from .match_engine import MatchEngine
from .persistence import RuleDatabase
from .rule_store import RuleStore

logger = logging.getLogger("hbknowledge.cli")


async def open_store(db_path: str) -> RuleStore:
    """Open the persisted store and refresh the bundled catalogue."""
    store = RuleStore(backend=RuleDatabase(db_path))
    await store.restore()
    await load_bootstrap(store)
    return store


def directory_fetcher(directory: Path):
    """Yield release bodies from ``<version>.md`` files not seen before, oldest name first."""
    seen: set[str] = set()

    async def fetch() -> tuple[str, str] | None:
        for path in sorted(directory.glob("*.md")):
            if path.stem in seen:
                continue
            seen.add(path.stem)
            logger.info(f"Found release notes {path.name}")
            return path.read_text(encoding="utf-8"), path.stem
        return None

    return fetch


async def cmd_ingest(args, config: AppConfig) -> int:
    store = await open_store(args.db or config.db_path)
    service = IngestionService(store, auto_approve=args.approve_all or config.auto_approve)
    text = Path(args.notes_file).read_text(encoding="utf-8")
    report = await service.ingest(text, args.version)
    print(report.model_dump_json(indent=2))
    return 1 if report.errors else 0


async def cmd_review(args, config: AppConfig) -> int:
    store = await open_store(args.db or config.db_path)
    service = IngestionService(store)
    try:
        rule = await service.review(args.rule_id, args.decision)
    except RuleStoreError as e:
        print(f"Review failed: {e}", file=sys.stderr)
        return 1
    print(f"{rule.id}: {rule.review_status}")
    return 0


async def cmd_list(args, config: AppConfig) -> int:
    store = await open_store(args.db or config.db_path)
    rules = store.dynamic_rules(args.status)
    print(json.dumps([rule.model_dump(mode="json") for rule in rules], indent=2))
    return 0


async def cmd_check(args, config: AppConfig) -> int:
    store = await open_store(args.db or config.db_path)
    engine = MatchEngine(store, block_on_error=config.block_on_error)
    result = engine.check(Path(args.source_file).read_text(encoding="utf-8"))
    print(result.model_dump_json(indent=2) if args.json else result.to_context())
    return 2 if result.blocking else 0


async def cmd_watch(args, config: AppConfig) -> int:
    store = await open_store(args.db or config.db_path)
    service = IngestionService(store, auto_approve=config.auto_approve)
    await service.run_periodic(
        directory_fetcher(Path(args.directory)),
        interval=args.interval or config.ingest_interval,
    )
    return 0


async def cmd_status(args, config: AppConfig) -> int:
    store = await open_store(args.db or config.db_path)
    print(json.dumps(store.counts, indent=2))
    return 0


COMMANDS = {
    "ingest": cmd_ingest,
    "review": cmd_review,
    "list": cmd_list,
    "check": cmd_check,
    "watch": cmd_watch,
    "status": cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hbknowledge-admin",
        description="Manage the hbknowledge rule store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1],
    )
    parser.add_argument("--db", help="Rule database path (default: $HBK_DATA_DIR/rules.db)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Ingest one release-notes file")
    ingest.add_argument("notes_file", help="Markdown release notes")
    ingest.add_argument("--version", required=True, help="Release version, e.g. 2.1.0")
    ingest.add_argument("--approve-all", action="store_true", help="Approve accepted rules immediately")

    review = subparsers.add_parser("review", help="Approve or reject a draft rule")
    review.add_argument("rule_id")
    review.add_argument("decision", choices=["approved", "rejected"])

    list_cmd = subparsers.add_parser("list", help="List generated rules as JSON")
    list_cmd.add_argument("--status", choices=["draft", "approved", "rejected"], default=None)

    check = subparsers.add_parser("check", help="Check a source file against approved rules")
    check.add_argument("source_file")
    check.add_argument("--json", action="store_true", help="Print findings as JSON")

    watch = subparsers.add_parser("watch", help="Ingest new <version>.md files from a directory")
    watch.add_argument("directory")
    watch.add_argument("--interval", type=int, default=None, help="Seconds between scans")

    subparsers.add_parser("status", help="Show rule and entry counts")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = AppConfig.from_env()
    configure_logging(log_dir=config.log_dir, log_level=config.log_level, console_output=True)
    return asyncio.run(COMMANDS[args.command](args, config))


if __name__ == "__main__":
    sys.exit(main())
