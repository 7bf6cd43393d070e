"""ORM tables for places, curated lists and the Google Places cache."""
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, JSON, String, Text

from placemarks_admin.database import Base
from placemarks_admin.utils.time import utcnow


class Place(Base):
    __tablename__ = "places"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    google_place_id = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    google_types = Column(JSON, nullable=False, default=list)
    price_level = Column(Integer, nullable=True)

    # Filled in by the enhancement pipeline
    phone = Column(String, nullable=True)
    website = Column(String, nullable=True)
    google_rating = Column(Float, nullable=True)
    hours_open = Column(JSON(none_as_null=True), nullable=True)
    photo_references = Column(JSON(none_as_null=True), nullable=True)

    created_at = Column(DateTime, nullable=True, default=utcnow)


class PlaceList(Base):
    __tablename__ = "lists"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    name = Column(String, nullable=False)
    user_id = Column(String, nullable=True, index=True)
    is_curated = Column(Boolean, nullable=True, default=False, index=True)
    publisher_name = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=True, default=utcnow)


class ListPlace(Base):
    __tablename__ = "list_places"

    list_id = Column(String, ForeignKey("lists.id", ondelete="CASCADE"), primary_key=True)
    place_id = Column(String, ForeignKey("places.id", ondelete="CASCADE"), primary_key=True)
    sort_order = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    added_at = Column(DateTime, nullable=True, default=utcnow)


class GooglePlacesCacheEntry(Base):
    __tablename__ = "google_places_cache"

    google_place_id = Column(String, primary_key=True)
    place_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    formatted_address = Column(Text, nullable=True)
    geometry = Column(JSON(none_as_null=True), nullable=True)
    types = Column(JSON, nullable=True, default=list)
    rating = Column(Float, nullable=True)
    price_level = Column(Integer, nullable=True)
    photos = Column(JSON, nullable=True, default=list)
    formatted_phone_number = Column(String, nullable=True)
    website = Column(String, nullable=True)
    opening_hours = Column(JSON(none_as_null=True), nullable=True)
    reviews = Column(JSON, nullable=True, default=list)

    has_basic_data = Column(Boolean, nullable=True)
    has_contact_data = Column(Boolean, nullable=True)
    has_hours_data = Column(Boolean, nullable=True)
    has_photos_data = Column(Boolean, nullable=True)
    has_reviews_data = Column(Boolean, nullable=True)

    cached_at = Column(DateTime, nullable=True, index=True)
    expires_at = Column(DateTime, nullable=True, index=True)
