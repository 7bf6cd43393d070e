"""
Helpers for Google Places photo references.

Places store photos as a list of objects:
    [{"photo_reference": "...", "width": 123, "height": 456, "html_attributions": [...]}]

An earlier import stored bare reference strings instead (["ref1", "ref2"]),
which the admin app cannot render. The normalizer below always produces the
object shape.
"""
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

PHOTO_ENDPOINT = "https://maps.googleapis.com/maps/api/place/photo"


def normalize_photos(raw_photos: Any) -> List[Dict[str, Any]]:
    """
    Convert a raw photos payload into structured photo references.

    Never raises. Entries without a photo_reference are still mapped through
    so the caller can decide what to do with them.
    """
    if not raw_photos or not isinstance(raw_photos, (list, tuple)):
        return []

    normalized = []
    for photo in raw_photos:
        if isinstance(photo, dict):
            attributions = photo.get("html_attributions")
            normalized.append({
                "photo_reference": photo.get("photo_reference"),
                "height": photo.get("height"),
                "width": photo.get("width"),
                "html_attributions": list(attributions) if isinstance(attributions, (list, tuple)) else [],
            })
        elif isinstance(photo, str):
            # Legacy string-only entry
            normalized.append({
                "photo_reference": photo,
                "height": None,
                "width": None,
                "html_attributions": [],
            })
        else:
            normalized.append({
                "photo_reference": None,
                "height": None,
                "width": None,
                "html_attributions": [],
            })
    return normalized


def is_valid_photo_reference(photo_reference: Any) -> bool:
    """Check that a photo reference is a non-blank string."""
    return isinstance(photo_reference, str) and len(photo_reference.strip()) > 0


def build_photo_url(photo_reference: str, api_key: Optional[str], max_width: int = 400) -> str:
    """Build a Places photo URL, or an empty string when it cannot be rendered."""
    if not api_key or not is_valid_photo_reference(photo_reference):
        return ""
    query = urlencode({
        "maxwidth": max_width,
        "photo_reference": photo_reference,
        "key": api_key,
    })
    return f"{PHOTO_ENDPOINT}?{query}"
