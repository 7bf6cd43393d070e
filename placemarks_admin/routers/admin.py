"""Admin endpoints for place enhancement, the curated list migration and the places cache.

These handlers only translate HTTP to the enrichment services. Place-level
failures come back inside a 200 response; only request validation and
configuration problems produce error statuses.
"""
import logging
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from placemarks_admin.config import settings
from placemarks_admin.dependencies import (
    get_admin_user,
    get_diagnostic_enhancement_service,
    get_enhancement_service,
    get_migration,
    get_migration_reader,
    get_place_cache,
    get_places_client,
)
from placemarks_admin.enrichment import PlaceEnhancementMigration, PlaceEnhancementService
from placemarks_admin.models.places import (
    DebugPlaceRequest,
    EnhancePlaceRequest,
    FixPhotosRequest,
    MigrationOptions,
)
from placemarks_admin.services.google_places import GooglePlacesClient
from placemarks_admin.services.place_cache import PlaceCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_admin_user)])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/migrate-places")
async def analyze_places(migration: PlaceEnhancementMigration = Depends(get_migration_reader)):
    """List curated list places that are missing data."""
    logger.info("Starting place enhancement analysis")
    candidates = await migration.find_places_needing_enhancement()
    return {
        "success": True,
        "analysis": {
            "total_places_needing_enhancement": len(candidates),
            "places": [candidate.model_dump() for candidate in candidates],
        },
    }


@router.post("/migrate-places")
async def run_migration(
    options: MigrationOptions = MigrationOptions(),
    migration: PlaceEnhancementMigration = Depends(get_migration),
):
    """Run (or dry-run) the curated list migration and return its report."""
    logger.info(
        f"Starting place enhancement migration (dry_run={options.dry_run}, "
        f"batch_size={options.batch_size}, delay={options.delay_between_batches}ms)"
    )
    report = await migration.migrate_curated_list_places(options)
    detailed_report = migration.generate_migration_report(report)

    validation = None
    if not options.dry_run:
        result = await migration.validate_enhancement()
        validation = {**result.model_dump(), "completion_rate": result.completion_rate}

    return {
        "success": True,
        "report": report.model_dump(),
        "detailed_report": detailed_report,
        "validation": validation,
    }


@router.put("/migrate-places")
async def validate_migration(migration: PlaceEnhancementMigration = Depends(get_migration_reader)):
    """Completeness audit of every curated list place."""
    logger.info("Running enhancement validation")
    validation = await migration.validate_enhancement()
    completion_rate = validation.completion_rate
    return {
        "success": True,
        "validation": {
            **validation.model_dump(),
            "completion_rate": completion_rate,
            "summary": {
                "total_places": validation.total_curated_list_places,
                "complete_data": validation.places_with_complete_data,
                "incomplete_data": validation.total_curated_list_places - validation.places_with_complete_data,
                "completion_percentage": completion_rate,
            },
        },
    }


@router.post("/fix-photos")
async def fix_photos(
    payload: FixPhotosRequest,
    service: PlaceEnhancementService = Depends(get_enhancement_service),
):
    """
    Rewrite photo_references stored as bare strings into photo objects.

    Forces re-enhancement of the given places with the legacy photo check on.
    """
    logger.info(f"Starting photo structure fix for {len(payload.google_place_ids)} places")
    summary = await service.fix_photo_structures(
        payload.google_place_ids,
        batch_size=payload.batch_size or settings.photo_fix_batch_size,
        delay_ms=payload.delay_ms if payload.delay_ms is not None else settings.photo_fix_delay_ms,
    )
    return {"success": True, **summary.model_dump()}


@router.post("/places/enhance")
async def enhance_place(
    payload: EnhancePlaceRequest,
    service: PlaceEnhancementService = Depends(get_enhancement_service),
):
    """Enhance one place now. The outcome (including errors) is in the body."""
    result = await service.enhance_place(payload.google_place_id, payload.force_photo_update)
    return {"google_place_id": payload.google_place_id, **result.model_dump()}


@router.get("/debug-place-enhancement")
async def check_configuration(service: PlaceEnhancementService = Depends(get_diagnostic_enhancement_service)):
    """Check that the enhancement service has everything it needs."""
    config = service.validate_configuration()
    if not config.valid:
        raise HTTPException(
            status_code=500,
            detail={
                "status": "error",
                "message": "Configuration validation failed",
                "errors": config.errors,
            },
        )
    return {
        "status": "success",
        "message": "Place enhancement service is properly configured",
        "configuration": {
            "database_configured": bool(settings.database_url),
            "google_api_configured": bool(settings.google_places_api_key),
            "place_cache_backend": settings.place_cache_backend,
            "environment": settings.environment,
        },
    }


@router.post("/debug-place-enhancement")
async def debug_enhance_place(
    payload: EnhancePlaceRequest,
    service: PlaceEnhancementService = Depends(get_enhancement_service),
):
    """Report whether a place needs enhancement, then enhance it."""
    needs_enhancement = await service.needs_enhancement(payload.google_place_id, payload.force_photo_update)
    logger.info(f"Place {payload.google_place_id} needs enhancement: {needs_enhancement}")
    result = await service.enhance_place(payload.google_place_id, payload.force_photo_update)
    return {
        "status": "success",
        "google_place_id": payload.google_place_id,
        "needs_enhancement": needs_enhancement,
        "enhancement_result": result.model_dump(),
        "timestamp": _timestamp(),
    }


@router.put("/debug-place-enhancement")
async def debug_google_details(
    payload: DebugPlaceRequest,
    places_client: GooglePlacesClient = Depends(get_places_client),
):
    """Call Google Places details directly, bypassing the enhancement logic."""
    try:
        data = await places_client.get_raw_place_details(payload.google_place_id)
    except httpx.HTTPStatusError as exc:
        raise HTTPException(
            status_code=502,
            detail=f"Google Places error: {exc.response.status_code} {exc.response.reason_phrase}",
        )
    except httpx.RequestError as exc:
        raise HTTPException(
            status_code=502,
            detail=f"Failed to reach Google Places API: {exc}",
        )
    return {
        "status": "success",
        "google_place_id": payload.google_place_id,
        "api_response": data,
        "has_result": bool(data.get("result")),
        "has_error": data.get("status") != "OK",
        "timestamp": _timestamp(),
    }


@router.get("/places/cache/count")
async def cache_count(cache: PlaceCache = Depends(get_place_cache)):
    """Total number of entries in the places cache, fresh or not."""
    try:
        count = await cache.count()
    except Exception as exc:
        logger.error(f"Failed to fetch cached places count: {exc}")
        raise HTTPException(status_code=500, detail="Failed to fetch cached places count")
    return {"count": count}


@router.get("/places/cache/stats")
async def cache_stats(cache: PlaceCache = Depends(get_place_cache)):
    stats = await cache.get_stats()
    return stats.model_dump()


@router.get("/places/cache/search")
async def cache_search(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    cache: PlaceCache = Depends(get_place_cache),
):
    """Search fresh cache entries by name or address."""
    results = await cache.search_places(q, limit=limit)
    return {"results": results, "total": len(results)}


@router.delete("/places/cache/expired")
async def cleanup_cache(cache: PlaceCache = Depends(get_place_cache)):
    """Delete every cache entry past its expiry."""
    deleted = await cache.delete_expired()
    return {"deleted": deleted}
