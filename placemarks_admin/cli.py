"""Command-line entry point for the curated list places migration.

Usage:
    # See which curated list places would be enhanced
    placemarks-migrate --dry-run

    # Enhance them, 5 at a time with 2s between batches
    placemarks-migrate --batch-size 5 --delay 2000

    # Only report completeness
    placemarks-migrate --validate-only

    # Rewrite legacy string photo references for specific places
    placemarks-migrate --fix-photos ChIJ... ChIJ...
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from placemarks_admin.config import configure_logging, settings
from placemarks_admin.database import AsyncSessionLocal, engine
from placemarks_admin.enrichment import PlaceEnhancementMigration, PlaceEnhancementService
from placemarks_admin.exceptions import ConfigurationError
from placemarks_admin.models.places import MigrationOptions
from placemarks_admin.services.google_places import GooglePlacesClient
from placemarks_admin.services.place_cache import create_place_cache
from placemarks_admin.services.place_repository import PlaceRepository

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="placemarks-migrate",
        description="Enhance curated list places with Google Places data.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list the places that would be enhanced",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.enhancement_batch_size,
        help="Places enhanced concurrently per batch",
    )
    parser.add_argument(
        "--delay",
        type=int,
        default=settings.migration_delay_ms,
        help="Delay between batches in milliseconds",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Print the completeness audit and exit",
    )
    parser.add_argument(
        "--fix-photos",
        nargs="+",
        metavar="GOOGLE_PLACE_ID",
        help="Force re-enhancement of these places to fix legacy photo references",
    )
    return parser


def build_services() -> PlaceEnhancementMigration:
    """Wire the migration from settings. Raises ConfigurationError."""
    repository = PlaceRepository(AsyncSessionLocal)
    places_client = GooglePlacesClient(
        api_key=settings.google_places_api_key,
        base_url=settings.google_places_base_url,
        timeout=settings.google_places_timeout,
    )
    cache = create_place_cache(settings, AsyncSessionLocal)
    service = PlaceEnhancementService(repository, places_client, cache, settings=settings)
    return PlaceEnhancementMigration(repository, service)


async def run(args: argparse.Namespace, migration: PlaceEnhancementMigration) -> int:
    if args.fix_photos:
        summary = await migration.enhancement_service.fix_photo_structures(
            args.fix_photos,
            batch_size=settings.photo_fix_batch_size,
            delay_ms=settings.photo_fix_delay_ms,
        )
        print(json.dumps(summary.model_dump(), indent=2))
        return 1 if summary.errors else 0

    if not args.validate_only:
        report = await migration.migrate_curated_list_places(MigrationOptions(
            batch_size=args.batch_size,
            delay_between_batches=args.delay,
            dry_run=args.dry_run,
        ))
        print(migration.generate_migration_report(report))
        if args.dry_run:
            return 0

    validation = await migration.validate_enhancement()
    print(f"Curated list places: {validation.total_curated_list_places}")
    print(f"Complete: {validation.places_with_complete_data} ({validation.completion_rate}%)")
    for field, count in validation.incomplete_fields.items():
        print(f"  missing {field}: {count}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)

    try:
        migration = build_services()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    async def _run() -> int:
        try:
            return await run(args, migration)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


if __name__ == "__main__":
    sys.exit(main())
