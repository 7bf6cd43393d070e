"""Pydantic models for places, enhancement results and migration reports."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Literal


class PhotoReference(BaseModel):
    """Structured photo reference stored in places.photo_references."""
    photo_reference: Optional[str] = None
    height: Optional[int] = None
    width: Optional[int] = None
    html_attributions: List[str] = Field(default_factory=list)


class LatLng(BaseModel):
    lat: float
    lng: float


class Geometry(BaseModel):
    model_config = ConfigDict(extra="allow")

    location: LatLng


class PlaceDetails(BaseModel):
    """
    Google Places details result.

    Only the identifier is mandatory; every enrichable field may be absent.
    Photos and opening hours are kept as raw mappings so the enhancement
    pipeline can apply its own validity checks.
    """
    model_config = ConfigDict(extra="ignore")

    place_id: str = Field(..., min_length=1)
    name: str = ""
    formatted_address: Optional[str] = None
    vicinity: Optional[str] = None
    geometry: Optional[Geometry] = None
    formatted_phone_number: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    types: List[str] = Field(default_factory=list)
    business_status: Optional[str] = None
    opening_hours: Optional[Dict[str, Any]] = None
    photos: List[Dict[str, Any]] = Field(default_factory=list)
    reviews: List[Dict[str, Any]] = Field(default_factory=list)


class FetchFailure(BaseModel):
    """A Google Places call that did not produce usable details."""
    message: str
    status_code: Optional[int] = None
    api_status: Optional[str] = None


class PlaceRecord(BaseModel):
    """Row of the places table as seen by the enhancement pipeline."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    google_place_id: str
    name: str = ""
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    google_rating: Optional[float] = None
    hours_open: Optional[Any] = None
    photo_references: Optional[Any] = None


class CuratedPlace(BaseModel):
    """A place together with the first curated list it belongs to."""
    record: PlaceRecord
    list_name: Optional[str] = None


class FieldFlags(BaseModel):
    """Per-field flags for the five enrichable fields."""
    phone: bool = False
    website: bool = False
    rating: bool = False
    hours: bool = False
    photos: bool = False

    def has_any(self) -> bool:
        return self.phone or self.website or self.rating or self.hours or self.photos

    def names(self) -> List[str]:
        return [name for name, flagged in self.model_dump().items() if flagged]


class EnhancementResult(BaseModel):
    """Outcome of one enhancement attempt."""
    enhanced: bool = False
    error: Optional[str] = None
    fields_added: FieldFlags = Field(default_factory=FieldFlags)


class BatchItemResult(BaseModel):
    place_id: str
    result: EnhancementResult


class BatchSummary(BaseModel):
    total_processed: int = 0
    enhanced: int = 0
    skipped: int = 0
    errors: int = 0
    results: List[BatchItemResult] = Field(default_factory=list)


class Candidate(BaseModel):
    """Curated list place that is missing at least one enrichable field."""
    google_place_id: str
    name: str
    list_name: str
    needs_enhancement: FieldFlags


class MigrationOptions(BaseModel):
    batch_size: int = Field(5, ge=1, le=50)
    delay_between_batches: int = Field(2000, ge=0, description="Delay between batches in ms")
    dry_run: bool = False


class PlaceOutcome(BaseModel):
    google_place_id: str
    name: str
    status: Literal["enhanced", "skipped", "error"]
    error: Optional[str] = None
    fields_added: Optional[FieldFlags] = None


class MigrationReport(BaseModel):
    total_curated_list_places: int = 0
    places_needing_enhancement: int = 0
    enhanced: int = 0
    skipped: int = 0
    errors: int = 0
    processing_time_ms: int = 0
    places_processed: List[PlaceOutcome] = Field(default_factory=list)


class ValidationResult(BaseModel):
    total_curated_list_places: int = 0
    places_with_complete_data: int = 0
    incomplete_fields: Dict[str, int] = Field(default_factory=dict)

    @property
    def completion_rate(self) -> int:
        if self.total_curated_list_places <= 0:
            return 0
        return round(self.places_with_complete_data / self.total_curated_list_places * 100)


class CacheStats(BaseModel):
    total: int = 0
    expired: int = 0
    fresh: int = 0


class ConfigurationReport(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


# Request bodies for the admin endpoints

class EnhancePlaceRequest(BaseModel):
    google_place_id: str = Field(..., min_length=1)
    force_photo_update: bool = False


class DebugPlaceRequest(BaseModel):
    google_place_id: str = Field(..., min_length=1)


class FixPhotosRequest(BaseModel):
    google_place_ids: List[str] = Field(..., description="Google Place IDs to repair")
    batch_size: Optional[int] = Field(None, ge=1, le=50)
    delay_ms: Optional[int] = Field(None, ge=0)
