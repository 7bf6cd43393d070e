"""
Enhancement service for completing stored places with Google Places data.

For one place the service:
- checks whether the stored record is missing phone, website, rating,
  opening hours or photos (no Google call is made for complete places)
- fetches details from Google Places
- writes the fields Google returned back to the places table
- refreshes the Google Places cache (best effort)

Batches run in fixed-size chunks; members of a chunk run concurrently and
chunks are paced to stay friendly with the Google quota.
"""

from typing import Any, Dict, List, Optional, Tuple
import asyncio
import time

from placemarks_admin.enrichment.completeness import needs_enhancement as record_needs_enhancement
from placemarks_admin.enrichment.pacing import Pacer, PacerFactory, fixed_delay
from placemarks_admin.exceptions import StoreError
from placemarks_admin.models.places import (
    BatchItemResult,
    BatchSummary,
    ConfigurationReport,
    EnhancementResult,
    FetchFailure,
    FieldFlags,
    PlaceDetails,
)
from placemarks_admin.services.place_cache import CacheWriteOutcome, PlaceCache
from placemarks_admin.utils.photos import normalize_photos

import logging

logger = logging.getLogger(__name__)

WEBSITE_PREFIXES = ("http://", "https://", "www.")


def is_valid_website(website: Optional[str]) -> bool:
    """Cheap sanity check, not a full URL validation."""
    return bool(website) and len(website) > 5 and website.startswith(WEBSITE_PREFIXES)


def is_valid_hours(hours: Any) -> bool:
    """Opening hours must be an object with weekday text, periods or an open-now flag."""
    if not isinstance(hours, dict):
        return False
    return bool(hours.get("weekday_text") or hours.get("periods") or "open_now" in hours)


def build_update_payload(details: PlaceDetails) -> Tuple[Dict[str, Any], FieldFlags]:
    """
    Columns to write for a place and which enrichable fields they cover.

    Only fields Google actually returned (and that pass validation) are
    included. Photos replace the stored list entirely.
    """
    payload: Dict[str, Any] = {}
    fields_added = FieldFlags()

    if details.formatted_phone_number:
        payload["phone"] = details.formatted_phone_number
        fields_added.phone = True

    if is_valid_website(details.website):
        payload["website"] = details.website
        fields_added.website = True

    if details.rating is not None:
        payload["google_rating"] = details.rating
        fields_added.rating = True

    if details.opening_hours and is_valid_hours(details.opening_hours):
        payload["hours_open"] = details.opening_hours
        fields_added.hours = True

    if details.photos:
        payload["photo_references"] = normalize_photos(details.photos)
        fields_added.photos = True

    return payload, fields_added


def _insert_defaults(details: PlaceDetails) -> Dict[str, Any]:
    defaults: Dict[str, Any] = {
        "name": details.name or None,
        "address": details.formatted_address or details.vicinity,
        "google_types": details.types or None,
        "price_level": details.price_level,
    }
    if details.geometry is not None:
        defaults["latitude"] = details.geometry.location.lat
        defaults["longitude"] = details.geometry.location.lng
    return defaults


class PlaceEnhancementService:
    """Service for enriching stored places with Google Places details."""

    def __init__(
        self,
        repository,
        places_client,
        cache: PlaceCache,
        pacer_factory: PacerFactory = fixed_delay,
        settings=None,
    ):
        self.repository = repository
        self.places_client = places_client
        self.cache = cache
        self.pacer_factory = pacer_factory
        self.settings = settings

    def validate_configuration(self) -> ConfigurationReport:
        """Report missing configuration without raising."""
        errors: List[str] = []
        if self.settings is not None:
            if not self.settings.database_url:
                errors.append("Missing DATABASE_URL environment variable")
            if not self.settings.google_places_api_key:
                errors.append("Missing GOOGLE_PLACES_API_KEY environment variable")
        if self.places_client is None:
            errors.append("Google Places client is not configured")
        return ConfigurationReport(valid=not errors, errors=errors)

    async def needs_enhancement(self, google_place_id: str, force_photo_update: bool = False) -> bool:
        """
        Check whether a stored place needs enhancement.

        Any read failure counts as "needs enhancement" so stale data is never
        skipped silently.
        """
        try:
            record = await self.repository.get_place(google_place_id)
        except Exception as exc:
            logger.error(f"Error checking enhancement needs for {google_place_id}: {exc}")
            return True
        return record_needs_enhancement(record, force_photo_update)

    async def enhance_place(self, google_place_id: str, force_photo_update: bool = False) -> EnhancementResult:
        """
        Enhance a single place with Google Places details.

        Args:
            google_place_id: The Google Place ID to enhance
            force_photo_update: Also re-enhance complete places whose photos are
                stored in the legacy string format

        Returns:
            EnhancementResult; failures are reported in ``error``, never raised
        """
        result = EnhancementResult()
        suffix = " (forcing photo update)" if force_photo_update else ""
        logger.info(f"Starting enhancement for place: {google_place_id}{suffix}")

        if not await self.needs_enhancement(google_place_id, force_photo_update):
            logger.info(f"Place {google_place_id} already has complete data")
            return result

        fetched = await self.places_client.fetch_place_details(google_place_id)
        if isinstance(fetched, FetchFailure):
            result.error = fetched.message
            return result

        payload, fields_added = build_update_payload(fetched)
        if not payload:
            logger.info(f"No additional data available for place {google_place_id}")
            return result

        try:
            await self.repository.upsert_place(google_place_id, payload, defaults=_insert_defaults(fetched))
        except StoreError as exc:
            logger.error(f"Database update failed for {google_place_id}: {exc}")
            result.error = exc.message
            return result
        except Exception as exc:
            logger.error(f"Database update failed for {google_place_id}: {exc}")
            result.error = str(exc) or exc.__class__.__name__
            return result

        outcome = await self._update_cache(fetched)
        if not outcome.ok:
            logger.warning(f"Cache update failed for {google_place_id}: {outcome.error}")

        result.enhanced = True
        result.fields_added = fields_added
        logger.info(f"Successfully enhanced place {google_place_id}, fields added: {fields_added.names()}")
        return result

    async def _update_cache(self, details: PlaceDetails) -> CacheWriteOutcome:
        try:
            return await self.cache.cache_place(details)
        except Exception as exc:
            return CacheWriteOutcome.ignored(exc)

    async def _enhance_one(self, google_place_id: str, force_photo_update: bool) -> BatchItemResult:
        try:
            result = await self.enhance_place(google_place_id, force_photo_update)
        except Exception as exc:
            logger.error(f"Error enhancing place {google_place_id}: {exc}")
            result = EnhancementResult(error=str(exc) or exc.__class__.__name__)
        return BatchItemResult(place_id=google_place_id, result=result)

    async def _run_batches(
        self,
        google_place_ids: List[str],
        batch_size: int,
        delay_ms: int,
        force_photo_update: bool,
        pacer: Optional[Pacer],
    ) -> BatchSummary:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        pacer = pacer or self.pacer_factory(delay_ms)
        summary = BatchSummary(total_processed=len(google_place_ids))
        chunks = [
            google_place_ids[i:i + batch_size]
            for i in range(0, len(google_place_ids), batch_size)
        ]

        for index, chunk in enumerate(chunks):
            if index > 0:
                await pacer.wait(len(chunk))

            logger.info(f"Processing batch {index + 1}/{len(chunks)}")
            batch_results = await asyncio.gather(
                *[self._enhance_one(place_id, force_photo_update) for place_id in chunk]
            )

            for item in batch_results:
                if item.result.error:
                    summary.errors += 1
                elif item.result.enhanced:
                    summary.enhanced += 1
                else:
                    summary.skipped += 1
            summary.results.extend(batch_results)

        return summary

    async def enhance_places(
        self,
        google_place_ids: List[str],
        batch_size: int = 5,
        delay_ms: int = 1000,
        pacer: Optional[Pacer] = None,
    ) -> BatchSummary:
        """Batch enhance places, ``batch_size`` at a time with a pause between batches."""
        logger.info(f"Starting batch enhancement of {len(google_place_ids)} places")
        started = time.monotonic()
        summary = await self._run_batches(google_place_ids, batch_size, delay_ms, False, pacer)
        logger.info(
            f"Batch enhancement completed in {time.monotonic() - started:.1f}s: "
            f"enhanced={summary.enhanced} skipped={summary.skipped} errors={summary.errors}"
        )
        return summary

    async def fix_photo_structures(
        self,
        google_place_ids: List[str],
        batch_size: int = 3,
        delay_ms: int = 2000,
        pacer: Optional[Pacer] = None,
    ) -> BatchSummary:
        """
        Re-enhance places whose photo_references are stored as bare strings.

        Same as ``enhance_places`` with the legacy photo check forced on, and
        smaller, slower batches by default.
        """
        logger.info(f"Starting photo structure fix for {len(google_place_ids)} places")
        summary = await self._run_batches(google_place_ids, batch_size, delay_ms, True, pacer)
        logger.info(
            f"Photo structure fix completed: enhanced={summary.enhanced} "
            f"skipped={summary.skipped} errors={summary.errors}"
        )
        return summary
