#!/usr/bin/env python3
"""
Command line entry point.

Usage:
    festival-ingest init-db
    festival-ingest health
    festival-ingest scrape https://example-festival.org [--import] [--geocode]
    festival-ingest import festival.json [--allow-duplicates] [--validate-only] [--geocode]

Results are printed as JSON on stdout; logs go to stderr.
Exit code is 0 on success and 1 on any failure.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from festival_ingest.core.config import get_settings
from festival_ingest.core.logging import configure_logging
from festival_ingest.db.database import check_database_health, close_db, create_engine, init_db
from festival_ingest.services.ai.providers import create_provider
from festival_ingest.services.importer import ImportOptions
from festival_ingest.services.pipeline import FestivalPipeline


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


async def _init_db() -> int:
    engine = create_engine(get_settings())
    try:
        await init_db(engine)
    finally:
        await close_db(engine)
    _print_json({"success": True})
    return 0


async def _health() -> int:
    settings = get_settings()
    provider = create_provider(settings)
    engine = create_engine(settings)
    try:
        database_ok = await check_database_health(engine)
    finally:
        await close_db(engine)
    ai_ok = await provider.health_check()

    healthy = database_ok and ai_ok
    _print_json({
        "status": "healthy" if healthy else "degraded",
        "database": "connected" if database_ok else "unavailable",
        "ai_provider": {
            "name": provider.provider_name,
            "model": provider.model_name,
            "reachable": ai_ok,
        },
    })
    return 0 if healthy else 1


async def _scrape(args: argparse.Namespace) -> int:
    async with FestivalPipeline.from_settings() as pipeline:
        scraped = await pipeline.scrape_festival_url(args.url, session_id=args.session_id)
        output: dict[str, Any] = {"scrape": scraped.to_dict()}

        if args.do_import and scraped.success:
            imported = await pipeline.import_festival_data(
                scraped.data,
                ImportOptions(geocode_venue=args.geocode),
                session_id=args.session_id,
            )
            output["import"] = imported.to_dict()
            ok = imported.success
        else:
            ok = scraped.success

    _print_json(output)
    return 0 if ok else 1


async def _import(args: argparse.Namespace) -> int:
    try:
        data = json.loads(Path(args.file).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: Could not read {args.file}: {e}", file=sys.stderr)
        return 1
    if not isinstance(data, dict):
        print(f"Error: {args.file} must contain a JSON object", file=sys.stderr)
        return 1

    options = ImportOptions(
        skip_duplicates=not args.allow_duplicates,
        geocode_venue=args.geocode,
        validate_only=args.validate_only,
    )
    async with FestivalPipeline.from_settings() as pipeline:
        result = await pipeline.import_festival_data(data, options, session_id=args.session_id)

    _print_json(result.to_dict())
    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="festival-ingest",
        description="Scrape festival websites and import them into the catalogue.",
    )
    parser.add_argument(
        "--session-id",
        default=None,
        help="Progress session id; progress events are only emitted when set",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("health", help="Check database and AI provider connectivity")

    scrape = subparsers.add_parser("scrape", help="Scrape a festival website")
    scrape.add_argument("url", help="Festival website URL")
    scrape.add_argument(
        "--import",
        dest="do_import",
        action="store_true",
        help="Import the extracted festival after a successful scrape",
    )
    scrape.add_argument("--geocode", action="store_true", help="Geocode the venue on import")

    imp = subparsers.add_parser("import", help="Import festival data from a JSON file")
    imp.add_argument("file", help="Path to a JSON file with one festival object")
    imp.add_argument(
        "--allow-duplicates",
        action="store_true",
        help="Import even when an exact duplicate exists",
    )
    imp.add_argument("--validate-only", action="store_true", help="Validate without writing")
    imp.add_argument("--geocode", action="store_true", help="Geocode the venue")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)

    if args.command == "init-db":
        return asyncio.run(_init_db())
    if args.command == "health":
        return asyncio.run(_health())
    if args.command == "scrape":
        return asyncio.run(_scrape(args))
    return asyncio.run(_import(args))


if __name__ == "__main__":
    sys.exit(main())
