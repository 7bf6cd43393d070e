"""Utility functions for the backend."""

from placemarks_admin.utils.photos import build_photo_url, is_valid_photo_reference, normalize_photos
from placemarks_admin.utils.time import utcnow

__all__ = ["build_photo_url", "is_valid_photo_reference", "normalize_photos", "utcnow"]
