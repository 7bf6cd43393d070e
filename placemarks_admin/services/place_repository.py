"""Primary store access for places and curated lists."""
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placemarks_admin.database import upsert_statement
from placemarks_admin.exceptions import StoreError
from placemarks_admin.models.places import CuratedPlace, PlaceRecord
from placemarks_admin.models.tables import ListPlace, Place, PlaceList

logger = logging.getLogger(__name__)

# asyncpg raises OSError subclasses (ConnectionRefusedError) that SQLAlchemy does not wrap
STORE_ERRORS = (SQLAlchemyError, OSError)

ENRICHABLE_COLUMNS = ("phone", "website", "google_rating", "hours_open", "photo_references")


class PlaceRepository:
    """
    Reads and writes places keyed by their Google Place ID.

    Each call opens its own session, so one repository can be shared by
    enhancements that run concurrently.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_place(self, google_place_id: str) -> Optional[PlaceRecord]:
        """Return the stored place or None when it does not exist."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Place).where(Place.google_place_id == google_place_id)
                )
                place = result.scalar_one_or_none()
        except STORE_ERRORS as exc:
            raise StoreError(f"Failed to read place {google_place_id}: {exc}") from exc

        if place is None:
            return None
        try:
            return PlaceRecord.model_validate(place)
        except ValidationError as exc:
            raise StoreError(f"Stored place {google_place_id} is malformed: {exc}") from exc

    async def upsert_place(
        self,
        google_place_id: str,
        fields: Dict[str, Any],
        defaults: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Insert or update a place by Google Place ID.

        ``fields`` are written in both cases. ``defaults`` (name, address,
        coordinates) only populate a row that did not exist yet.
        """
        unknown = set(fields) - set(ENRICHABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot upsert non-enrichable columns: {sorted(unknown)}")

        values = {"name": google_place_id, "google_types": []}
        values.update({key: value for key, value in (defaults or {}).items() if value is not None})
        values.update(fields)
        values["google_place_id"] = google_place_id

        try:
            async with self.session_factory() as session:
                stmt = upsert_statement(session, Place.__table__).values(**values)
                if fields:
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[Place.google_place_id],
                        set_={key: stmt.excluded[key] for key in fields},
                    )
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=[Place.google_place_id])
                await session.execute(stmt)
                await session.commit()
        except STORE_ERRORS as exc:
            raise StoreError(f"Failed to update place {google_place_id}: {exc}") from exc

    async def query_curated_list_places(self) -> List[CuratedPlace]:
        """
        All places that belong to at least one curated list.

        A place in several curated lists is returned once, with the name of
        the first list it was added to.
        """
        stmt = (
            select(Place, PlaceList.name)
            .join(ListPlace, ListPlace.place_id == Place.id)
            .join(PlaceList, PlaceList.id == ListPlace.list_id)
            .where(PlaceList.is_curated.is_(True))
            .order_by(Place.name, Place.google_place_id, ListPlace.added_at, PlaceList.name)
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except STORE_ERRORS as exc:
            raise StoreError(f"Failed to query curated list places: {exc}") from exc

        seen: Dict[str, CuratedPlace] = {}
        for place, list_name in rows:
            if place.google_place_id in seen:
                continue
            try:
                record = PlaceRecord.model_validate(place)
            except ValidationError as exc:
                raise StoreError(f"Stored place {place.google_place_id} is malformed: {exc}") from exc
            seen[place.google_place_id] = CuratedPlace(record=record, list_name=list_name)
        return list(seen.values())
