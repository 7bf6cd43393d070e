"""
Completeness checks for stored places.

A place is complete when phone, website, rating, opening hours and photos
are all present. The same five checks drive both the single-place decision
(``needs_enhancement``) and the per-field report used by the migration.
"""
import json
from typing import Any, Mapping, Optional, Union

from placemarks_admin.models.places import FieldFlags, PlaceRecord

RecordLike = Union[PlaceRecord, Mapping[str, Any]]


def _get(record: RecordLike, field: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(field)
    return getattr(record, field, None)


def _hours_missing(hours: Any) -> bool:
    if hours is None:
        return True
    if isinstance(hours, Mapping):
        return len(hours) == 0
    return not hours


def _photos_missing(photos: Any) -> bool:
    if photos is None:
        return True
    if isinstance(photos, (list, tuple)):
        return len(photos) == 0
    return not photos


def missing_fields(record: RecordLike) -> FieldFlags:
    """Flag every enrichable field the record does not have yet."""
    return FieldFlags(
        phone=not _get(record, "phone"),
        website=not _get(record, "website"),
        rating=_get(record, "google_rating") is None,
        hours=_hours_missing(_get(record, "hours_open")),
        photos=_photos_missing(_get(record, "photo_references")),
    )


def has_legacy_photo_format(photo_references: Any) -> bool:
    """
    Detect photo references stored as bare strings.

    Legacy rows look like ["ref1", "ref2"] instead of a list of photo
    objects. Values stored as a JSON string are decoded first; anything that
    cannot be decoded is treated as legacy so it gets rewritten.
    """
    if not photo_references:
        return False
    photos = photo_references
    if isinstance(photos, str):
        try:
            photos = json.loads(photos)
        except ValueError:
            return True
    if isinstance(photos, (list, tuple)) and len(photos) > 0:
        return isinstance(photos[0], str)
    return False


def needs_enhancement(record: Optional[RecordLike], force_photo_check: bool = False) -> bool:
    """
    Decide whether a place should be enriched from Google Places.

    A missing record always needs enhancement. ``force_photo_check`` also
    flags complete records whose photos use the legacy string format.
    """
    if record is None:
        return True
    if missing_fields(record).has_any():
        return True
    if force_photo_check and has_legacy_photo_format(_get(record, "photo_references")):
        return True
    return False


def is_complete(record: RecordLike) -> bool:
    return not missing_fields(record).has_any()
