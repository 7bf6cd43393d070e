"""Places API router proxying Google Places and feeding the places cache."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from placemarks_admin.config import settings
from placemarks_admin.dependencies import get_admin_user, get_place_cache, get_places_client
from placemarks_admin.models.places import FetchFailure
from placemarks_admin.services.google_places import GooglePlacesClient
from placemarks_admin.services.place_cache import PlaceCache
from placemarks_admin.utils.photos import build_photo_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/places", tags=["places"], dependencies=[Depends(get_admin_user)])


def _raise_for_failure(failure: FetchFailure, action: str) -> None:
    if failure.api_status in ("NOT_FOUND", "INVALID_REQUEST"):
        raise HTTPException(status_code=404, detail="Place not found")
    raise HTTPException(
        status_code=502,
        detail=f"Failed to {action}: {failure.message}",
    )


def _photo_urls(photos) -> List[str]:
    urls = [
        build_photo_url(photo.get("photo_reference"), settings.google_places_api_key)
        for photo in photos or []
        if isinstance(photo, dict)
    ]
    return [url for url in urls if url]


@router.get("/details")
async def get_place_details(
    place_id: str = Query(..., min_length=1),
    places_client: GooglePlacesClient = Depends(get_places_client),
    cache: PlaceCache = Depends(get_place_cache),
):
    """
    Fetch place details, from the places cache when a fresh entry exists.

    On a miss the details come from Google Places and are written to the
    cache; cache failures do not affect the response.
    """
    cached = await cache.get_place(place_id)
    if cached:
        logger.info(f"Using cached details for {place_id}")
        return {
            "result": cached,
            "status": "OK",
            "source": "cache",
            "photo_urls": _photo_urls(cached.get("photos")),
        }

    details = await places_client.fetch_place_details(place_id)
    if isinstance(details, FetchFailure):
        _raise_for_failure(details, "fetch place details")

    outcome = await cache.cache_place(details)
    if not outcome.ok:
        logger.warning(f"Could not cache details for {place_id}: {outcome.error}")

    return {
        "result": details.model_dump(mode="json"),
        "status": "OK",
        "source": "google",
        "photo_urls": _photo_urls(details.photos),
    }


@router.get("/search")
async def search_places(
    query: str = Query(..., min_length=1),
    location: Optional[str] = Query(None, description="lat,lng to bias results"),
    radius: Optional[int] = Query(None, ge=1, le=50000),
    places_client: GooglePlacesClient = Depends(get_places_client),
    cache: PlaceCache = Depends(get_place_cache),
):
    """Text search, answered from the places cache when it has fresh matches."""
    cached = await cache.search_places(query)
    if cached:
        logger.info(f"Using {len(cached)} cached results for '{query}'")
        return {"results": cached, "status": "OK", "source": "cache"}

    results = await places_client.search_places(query, location=location, radius=radius)
    if isinstance(results, FetchFailure):
        _raise_for_failure(results, "search places")

    outcome = await cache.cache_places(results)
    if not outcome.ok:
        logger.warning(f"Could not cache search results for '{query}': {outcome.error}")

    return {
        "results": results,
        "status": "OK" if results else "ZERO_RESULTS",
        "source": "google",
    }
