"""
Enrichment module.

Completes stored places with Google Places details and keeps the Google
Places cache fresh:
- completeness checks for stored places
- single-place and batched enhancement
- the curated list migration and its report
"""

from .completeness import (
    has_legacy_photo_format,
    missing_fields,
    needs_enhancement,
)
from .pacing import (
    FixedDelayPacer,
    NoDelayPacer,
    TokenBucketPacer,
)
from .place_enhancement_service import (
    PlaceEnhancementService,
    build_update_payload,
)
from .migration import PlaceEnhancementMigration

__all__ = [
    "has_legacy_photo_format",
    "missing_fields",
    "needs_enhancement",
    "FixedDelayPacer",
    "NoDelayPacer",
    "TokenBucketPacer",
    "PlaceEnhancementService",
    "build_update_payload",
    "PlaceEnhancementMigration",
]
