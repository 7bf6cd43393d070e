"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- session_factory: async SQLite session factory with every table created
- fake_repository / fake_places_client / fake_cache: in-memory collaborators
- recording_pacer: pacer that records waits instead of sleeping
- complete_place / incomplete_place / place_details: sample data
"""

import os

# Settings are read at import time, so the environment must be set first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_PLACES_API_KEY", "test-google-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-placemarks-admin-tests")
os.environ.setdefault("ADMIN_EMAILS", "")
os.environ.setdefault("PLACE_CACHE_BACKEND", "database")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from placemarks_admin.database import Base
from placemarks_admin.models import tables  # noqa: F401
from placemarks_admin.models.places import PlaceDetails, PlaceRecord
from tests.fakes import FakeCache, FakePlacesClient, FakeRepository, RecordingPacer


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'placemarks.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def complete_place() -> PlaceRecord:
    """A place with every enrichable field populated."""
    return PlaceRecord(
        google_place_id="ChIJcomplete",
        name="Complete Cafe",
        phone="+66 2 123 4567",
        website="https://complete.example.com",
        google_rating=4.6,
        hours_open={"open_now": True, "weekday_text": ["Monday: 8:00 AM - 5:00 PM"]},
        photo_references=[{"photo_reference": "abc", "height": 100, "width": 100, "html_attributions": []}],
    )


@pytest.fixture
def incomplete_place() -> PlaceRecord:
    """A place missing phone and hours."""
    return PlaceRecord(
        google_place_id="ChIJincomplete",
        name="Noodle House",
        website="https://noodle.example.com",
        google_rating=4.1,
        photo_references=[{"photo_reference": "old", "height": 10, "width": 10, "html_attributions": []}],
    )


@pytest.fixture
def place_details() -> PlaceDetails:
    """Full details payload as returned by Google for ChIJincomplete."""
    return PlaceDetails(
        place_id="ChIJincomplete",
        name="Noodle House",
        formatted_address="1 Sukhumvit Rd, Bangkok",
        geometry={"location": {"lat": 13.7367, "lng": 100.5608}},
        formatted_phone_number="02 555 0101",
        website="https://noodle.example.com",
        rating=4.3,
        types=["restaurant", "food"],
        opening_hours={
            "open_now": False,
            "periods": [{"open": {"day": 1, "time": "1100"}, "close": {"day": 1, "time": "2200"}}],
            "weekday_text": ["Monday: 11:00 AM - 10:00 PM"],
        },
        photos=[
            {"photo_reference": "photo-1", "height": 800, "width": 1200, "html_attributions": ["<a>Owner</a>"]},
            {"photo_reference": "photo-2", "height": 600, "width": 900},
        ],
    )


@pytest.fixture
def fake_repository(complete_place, incomplete_place) -> FakeRepository:
    return FakeRepository([complete_place, incomplete_place])


@pytest.fixture
def fake_places_client(place_details) -> FakePlacesClient:
    return FakePlacesClient({"ChIJincomplete": place_details})


@pytest.fixture
def fake_cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def recording_pacer() -> RecordingPacer:
    return RecordingPacer()
