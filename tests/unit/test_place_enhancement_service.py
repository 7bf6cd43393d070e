"""Unit tests for PlaceEnhancementService."""

import time
from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock

from placemarks_admin.enrichment.pacing import NoDelayPacer
from placemarks_admin.enrichment.place_enhancement_service import (
    PlaceEnhancementService,
    build_update_payload,
    is_valid_hours,
    is_valid_website,
)
from placemarks_admin.models.places import FieldFlags, PlaceDetails, PlaceRecord
from placemarks_admin.services.place_cache import CacheWriteOutcome
from tests.fakes import FakeCache, FakePlacesClient, FakeRepository


def make_service(repository, places_client, cache, **kwargs) -> PlaceEnhancementService:
    return PlaceEnhancementService(repository, places_client, cache, pacer_factory=NoDelayPacer, **kwargs)


def details_for(place_id: str, **fields) -> PlaceDetails:
    return PlaceDetails(place_id=place_id, name=f"Place {place_id}", **fields)


class TestValidityChecks:

    @pytest.mark.parametrize("website", ["https://x.com", "http://x.com", "www.x.com"])
    def test_valid_websites(self, website):
        assert is_valid_website(website) is True

    @pytest.mark.parametrize("website", [None, "", "notaurl", "ftp://x.com", "http:"])
    def test_invalid_websites(self, website):
        assert is_valid_website(website) is False

    def test_hours_validity(self):
        assert is_valid_hours({"weekday_text": ["Monday: Closed"]}) is True
        assert is_valid_hours({"periods": [{"open": {"day": 0, "time": "0000"}}]}) is True
        assert is_valid_hours({"open_now": False}) is True
        assert is_valid_hours({"open_now": None}) is True
        assert is_valid_hours({"weekday_text": []}) is False
        assert is_valid_hours(["Monday: Closed"]) is False


class TestBuildUpdatePayload:

    def test_full_details(self, place_details):
        payload, fields_added = build_update_payload(place_details)

        assert set(payload) == {"phone", "website", "google_rating", "hours_open", "photo_references"}
        assert fields_added == FieldFlags(phone=True, website=True, rating=True, hours=True, photos=True)
        assert payload["photo_references"][1] == {
            "photo_reference": "photo-2",
            "height": 600,
            "width": 900,
            "html_attributions": [],
        }

    def test_partial_payload_honored(self):
        payload, fields_added = build_update_payload(
            details_for("ChIJpartial", rating=4.0, formatted_phone_number="02 000 0000")
        )

        assert payload == {"phone": "02 000 0000", "google_rating": 4.0}
        assert fields_added == FieldFlags(phone=True, website=False, rating=True, hours=False, photos=False)

    def test_invalid_website_is_excluded(self):
        payload, fields_added = build_update_payload(details_for("ChIJbad", website="notaurl", rating=3.9))

        assert "website" not in payload
        assert fields_added.website is False

    def test_nothing_usable(self):
        payload, fields_added = build_update_payload(details_for("ChIJempty", opening_hours={}))

        assert payload == {}
        assert fields_added.has_any() is False


class TestEnhancePlace:
    """Single place enhancement."""

    @pytest.mark.asyncio
    async def test_complete_place_makes_no_external_call(self, fake_repository, fake_cache, complete_place):
        places_client = FakePlacesClient()
        service = make_service(fake_repository, places_client, fake_cache)

        result = await service.enhance_place(complete_place.google_place_id)

        assert result.enhanced is False
        assert result.error is None
        assert places_client.calls == []
        assert fake_repository.upserts == []

    @pytest.mark.asyncio
    async def test_enhances_incomplete_place(self, fake_repository, fake_places_client, fake_cache, place_details):
        service = make_service(fake_repository, fake_places_client, fake_cache)

        result = await service.enhance_place("ChIJincomplete")

        assert result.enhanced is True
        assert result.fields_added.names() == ["phone", "website", "rating", "hours", "photos"]
        assert fake_repository.places["ChIJincomplete"].phone == "02 555 0101"
        assert fake_repository.places["ChIJincomplete"].google_rating == 4.3
        assert fake_cache.cached == [place_details]

    @pytest.mark.asyncio
    async def test_unknown_place_is_inserted_with_defaults(self, fake_cache):
        repository = FakeRepository()
        places_client = FakePlacesClient({
            "ChIJnew": details_for(
                "ChIJnew",
                rating=4.8,
                formatted_address="9 Rama IV",
                geometry={"location": {"lat": 13.7, "lng": 100.5}},
            ),
        })
        service = make_service(repository, places_client, fake_cache)

        result = await service.enhance_place("ChIJnew")

        assert result.enhanced is True
        defaults = repository.upserts[0]["defaults"]
        assert defaults["name"] == "Place ChIJnew"
        assert defaults["address"] == "9 Rama IV"
        assert defaults["latitude"] == 13.7
        assert repository.places["ChIJnew"].google_rating == 4.8

    @pytest.mark.asyncio
    async def test_partial_payload_upserts_only_returned_fields(self, fake_cache):
        repository = FakeRepository([PlaceRecord(google_place_id="ChIJpartial", name="Partial")])
        places_client = FakePlacesClient({
            "ChIJpartial": details_for("ChIJpartial", rating=4.0, formatted_phone_number="02 000 0000"),
        })
        service = make_service(repository, places_client, fake_cache)

        result = await service.enhance_place("ChIJpartial")

        assert repository.upserts[0]["fields"] == {"phone": "02 000 0000", "google_rating": 4.0}
        assert result.fields_added == FieldFlags(phone=True, rating=True)

    @pytest.mark.asyncio
    async def test_invalid_website_not_written(self, fake_cache):
        repository = FakeRepository([PlaceRecord(google_place_id="ChIJbad", name="Bad Site")])
        places_client = FakePlacesClient({
            "ChIJbad": details_for("ChIJbad", website="notaurl", rating=3.2),
        })
        service = make_service(repository, places_client, fake_cache)

        result = await service.enhance_place("ChIJbad")

        assert result.enhanced is True
        assert "website" not in repository.upserts[0]["fields"]
        assert result.fields_added.website is False
        assert repository.places["ChIJbad"].website is None

    @pytest.mark.asyncio
    async def test_fetch_failure_is_error_result(self, fake_repository, fake_cache):
        service = make_service(fake_repository, FakePlacesClient(), fake_cache)

        result = await service.enhance_place("ChIJincomplete")

        assert result.enhanced is False
        assert result.error == "Google Places Details API error: NOT_FOUND - Unknown error"
        assert fake_repository.upserts == []

    @pytest.mark.asyncio
    async def test_empty_payload_is_not_an_error(self, fake_repository, fake_cache):
        places_client = FakePlacesClient({"ChIJincomplete": details_for("ChIJincomplete")})
        service = make_service(fake_repository, places_client, fake_cache)

        result = await service.enhance_place("ChIJincomplete")

        assert result.enhanced is False
        assert result.error is None
        assert fake_repository.upserts == []
        assert fake_cache.cached == []

    @pytest.mark.asyncio
    async def test_store_write_failure_is_error_result(self, fake_repository, fake_places_client, fake_cache):
        fake_repository.fail_writes = True
        service = make_service(fake_repository, fake_places_client, fake_cache)

        result = await service.enhance_place("ChIJincomplete")

        assert result.enhanced is False
        assert result.error == "permission denied for table places"
        assert fake_cache.cached == []

    @pytest.mark.asyncio
    async def test_cache_failure_does_not_fail_enhancement(self, fake_repository, fake_places_client):
        service = make_service(fake_repository, fake_places_client, FakeCache(raise_on_write=True))

        result = await service.enhance_place("ChIJincomplete")

        assert result.enhanced is True
        assert result.error is None
        assert fake_repository.places["ChIJincomplete"].phone == "02 555 0101"

    @pytest.mark.asyncio
    async def test_ignored_cache_outcome_does_not_fail_enhancement(self, fake_repository, fake_places_client):
        cache = AsyncMock()
        cache.cache_place.return_value = CacheWriteOutcome.ignored("disk full")
        service = make_service(fake_repository, fake_places_client, cache)

        result = await service.enhance_place("ChIJincomplete")

        assert result.enhanced is True
        cache.cache_place.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_read_failure_still_enhances(self, fake_repository, fake_places_client, fake_cache):
        fake_repository.fail_reads = True
        service = make_service(fake_repository, fake_places_client, fake_cache)

        assert await service.needs_enhancement("ChIJcomplete") is True

        result = await service.enhance_place("ChIJincomplete")
        assert result.enhanced is True

    @pytest.mark.asyncio
    async def test_driver_read_error_still_enhances(self, fake_repository, fake_places_client, fake_cache):
        fake_repository.read_error = ConnectionRefusedError(111, "Connect call failed")
        service = make_service(fake_repository, fake_places_client, fake_cache)

        assert await service.needs_enhancement("ChIJcomplete") is True

        result = await service.enhance_place("ChIJincomplete")
        assert result.enhanced is True

    @pytest.mark.asyncio
    async def test_driver_write_error_is_error_result(self, fake_repository, fake_places_client, fake_cache):
        fake_repository.write_error = ConnectionRefusedError(111, "Connect call failed")
        service = make_service(fake_repository, fake_places_client, fake_cache)

        result = await service.enhance_place("ChIJincomplete")

        assert result.enhanced is False
        assert "Connect call failed" in result.error
        assert fake_cache.cached == []

    @pytest.mark.asyncio
    async def test_force_photo_update_rewrites_legacy_photos(self, fake_cache, complete_place):
        legacy = complete_place.model_copy(update={"photo_references": ["ref1", "ref2"]})
        repository = FakeRepository([legacy])
        places_client = FakePlacesClient({
            legacy.google_place_id: details_for(
                legacy.google_place_id,
                photos=[{"photo_reference": "ref1", "height": 300, "width": 400}],
            ),
        })
        service = make_service(repository, places_client, fake_cache)

        skipped = await service.enhance_place(legacy.google_place_id)
        forced = await service.enhance_place(legacy.google_place_id, force_photo_update=True)

        assert skipped.enhanced is False
        assert forced.enhanced is True
        assert repository.places[legacy.google_place_id].photo_references == [
            {"photo_reference": "ref1", "height": 300, "width": 400, "html_attributions": []},
        ]


class TestBatches:
    """Chunked batch enhancement."""

    @pytest.fixture
    def many_places(self):
        ids = [f"ChIJplace{i:02d}" for i in range(11)]
        repository = FakeRepository([PlaceRecord(google_place_id=place_id, name=place_id) for place_id in ids])
        places_client = FakePlacesClient({place_id: details_for(place_id, rating=4.0) for place_id in ids})
        return ids, repository, places_client

    @pytest.mark.asyncio
    async def test_chunks_and_delays(self, many_places, fake_cache, recording_pacer):
        ids, repository, places_client = many_places
        service = make_service(repository, places_client, fake_cache)

        summary = await service.enhance_places(ids, batch_size=5, delay_ms=1000, pacer=recording_pacer)

        assert recording_pacer.waits == [5, 1]
        assert summary.total_processed == 11
        assert summary.enhanced == 11
        assert [item.place_id for item in summary.results] == ids

    @pytest.mark.asyncio
    async def test_fixed_delay_between_chunks(self, fake_cache):
        ids = [f"ChIJp{i}" for i in range(7)]
        repository = FakeRepository()
        responses = {place_id: details_for(place_id, rating=4.0) for place_id in ids[:5]}
        places_client = FakePlacesClient(responses)
        service = PlaceEnhancementService(repository, places_client, fake_cache)

        started = time.monotonic()
        summary = await service.enhance_places(ids, batch_size=3, delay_ms=10)
        elapsed = time.monotonic() - started

        # two 10ms pauses, minus event loop clock resolution
        assert elapsed >= 0.019
        assert summary.enhanced + summary.skipped + summary.errors == 7
        assert summary.enhanced == 5
        assert summary.errors == 2

    @pytest.mark.asyncio
    async def test_raised_exception_is_isolated(self, fake_cache, recording_pacer):
        repository = FakeRepository()
        places_client = FakePlacesClient({
            "ChIJok": details_for("ChIJok", rating=4.0),
            "ChIJboom": RuntimeError("socket closed"),
            "ChIJalso-ok": details_for("ChIJalso-ok", rating=3.0),
        })
        service = make_service(repository, places_client, fake_cache)

        summary = await service.enhance_places(
            ["ChIJok", "ChIJboom", "ChIJalso-ok"], batch_size=3, pacer=recording_pacer,
        )

        results = {item.place_id: item.result for item in summary.results}
        assert results["ChIJboom"].error == "socket closed"
        assert results["ChIJok"].enhanced is True
        assert results["ChIJalso-ok"].enhanced is True
        assert (summary.enhanced, summary.skipped, summary.errors) == (2, 0, 1)

    @pytest.mark.asyncio
    async def test_complete_places_are_skipped(self, fake_repository, fake_places_client, fake_cache, recording_pacer):
        service = make_service(fake_repository, fake_places_client, fake_cache)

        summary = await service.enhance_places(["ChIJcomplete", "ChIJincomplete"], pacer=recording_pacer)

        assert (summary.enhanced, summary.skipped, summary.errors) == (1, 1, 0)
        assert recording_pacer.waits == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, fake_repository, fake_places_client, fake_cache):
        service = make_service(fake_repository, fake_places_client, fake_cache)

        summary = await service.enhance_places([])

        assert summary.total_processed == 0
        assert summary.results == []

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self, fake_repository, fake_places_client, fake_cache):
        service = make_service(fake_repository, fake_places_client, fake_cache)

        with pytest.raises(ValueError):
            await service.enhance_places(["ChIJincomplete"], batch_size=0)

    @pytest.mark.asyncio
    async def test_fix_photo_structures_forces_legacy_check(self, fake_cache, complete_place, recording_pacer):
        legacy = complete_place.model_copy(update={"photo_references": ["ref1"]})
        repository = FakeRepository([legacy])
        places_client = FakePlacesClient({
            legacy.google_place_id: details_for(legacy.google_place_id, photos=[{"photo_reference": "ref1"}]),
        })
        service = make_service(repository, places_client, fake_cache)

        summary = await service.fix_photo_structures([legacy.google_place_id], pacer=recording_pacer)

        assert summary.enhanced == 1
        assert places_client.calls == [legacy.google_place_id]


class TestValidateConfiguration:

    def test_valid(self, fake_repository, fake_places_client, fake_cache):
        settings = SimpleNamespace(database_url="sqlite+aiosqlite://", google_places_api_key="key")
        service = make_service(fake_repository, fake_places_client, fake_cache, settings=settings)

        report = service.validate_configuration()

        assert report.valid is True
        assert report.errors == []

    def test_reports_every_missing_setting(self, fake_repository, fake_cache):
        settings = SimpleNamespace(database_url="", google_places_api_key=None)
        service = make_service(fake_repository, None, fake_cache, settings=settings)

        report = service.validate_configuration()

        assert report.valid is False
        assert report.errors == [
            "Missing DATABASE_URL environment variable",
            "Missing GOOGLE_PLACES_API_KEY environment variable",
            "Google Places client is not configured",
        ]
