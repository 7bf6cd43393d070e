"""Client for the Google Places web service (details and text search)."""
import logging
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import ValidationError

from placemarks_admin.exceptions import ConfigurationError, DetailParseError
from placemarks_admin.models.places import FetchFailure, PlaceDetails

logger = logging.getLogger(__name__)

DETAIL_FIELDS = (
    "place_id,name,formatted_address,geometry,photos,rating,price_level,"
    "types,formatted_phone_number,website,opening_hours"
)


def parse_place_details(payload: Any) -> PlaceDetails:
    """
    Validate a details ``result`` object into PlaceDetails.

    Raises:
        DetailParseError: If the payload does not look like a place.
    """
    if not isinstance(payload, dict):
        raise DetailParseError("Place details result is not an object")
    try:
        return PlaceDetails.model_validate(payload)
    except ValidationError as exc:
        raise DetailParseError(
            "Place details result failed validation",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


class GooglePlacesClient:
    """HTTP client wrapper for the Google Places API."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://maps.googleapis.com/maps/api/place",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("Missing GOOGLE_PLACES_API_KEY environment variable")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def get_raw_place_details(self, place_id: str) -> Dict[str, Any]:
        """Call the details endpoint and return the JSON body untouched."""
        params = {
            "place_id": place_id,
            "fields": DETAIL_FIELDS,
            "key": self.api_key,
        }
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/details/json", params=params)
            response.raise_for_status()
            return response.json()

    async def fetch_place_details(self, place_id: str) -> Union[PlaceDetails, FetchFailure]:
        """
        Fetch details for one place.

        Every failure is returned as a FetchFailure; nothing is raised to the
        caller.
        """
        try:
            data = await self.get_raw_place_details(place_id)
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error(f"Google Places details call failed for {place_id}: HTTP {status_code}")
            return FetchFailure(
                message=f"Google Places Details API error: {status_code} {exc.response.reason_phrase}",
                status_code=status_code,
            )
        except httpx.RequestError as exc:
            logger.error(f"Failed to reach Google Places API for {place_id}: {exc}")
            return FetchFailure(message=f"Failed to reach Google Places API: {exc}")
        except ValueError as exc:
            logger.error(f"Google Places returned a non-JSON body for {place_id}: {exc}")
            return FetchFailure(message="Google Places Details API returned an invalid response")

        api_status = data.get("status") if isinstance(data, dict) else None
        if api_status != "OK":
            error_message = (data.get("error_message") if isinstance(data, dict) else None) or "Unknown error"
            logger.warning(f"Google Places details status {api_status} for {place_id}: {error_message}")
            return FetchFailure(
                message=f"Google Places Details API error: {api_status} - {error_message}",
                api_status=api_status,
            )

        try:
            details = parse_place_details(data.get("result"))
        except DetailParseError as exc:
            logger.error(f"Malformed place details payload for {place_id}: {exc}")
            return FetchFailure(message=f"Malformed place details payload: {exc.message}", api_status=api_status)

        logger.info(f"Fetched place details for {place_id}")
        return details

    async def search_places(
        self,
        query: str,
        location: Optional[str] = None,
        radius: Optional[int] = None,
    ) -> Union[List[Dict[str, Any]], FetchFailure]:
        """Text search for restaurants; ZERO_RESULTS is an empty success."""
        params: Dict[str, Any] = {
            "query": query,
            "key": self.api_key,
            "type": "restaurant",
        }
        if location:
            params["location"] = location
            if radius:
                params["radius"] = radius

        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/textsearch/json", params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error(f"Google Places search failed for '{query}': HTTP {status_code}")
            return FetchFailure(
                message=f"Google Places API error: {status_code} {exc.response.reason_phrase}",
                status_code=status_code,
            )
        except httpx.RequestError as exc:
            logger.error(f"Failed to reach Google Places API for '{query}': {exc}")
            return FetchFailure(message=f"Failed to reach Google Places API: {exc}")
        except ValueError:
            return FetchFailure(message="Google Places API returned an invalid response")

        api_status = data.get("status")
        if api_status not in ("OK", "ZERO_RESULTS"):
            error_message = data.get("error_message") or "Unknown error"
            return FetchFailure(
                message=f"Google Places API error: {api_status} - {error_message}",
                api_status=api_status,
            )

        results = data.get("results") or []
        logger.info(f"Google Places search for '{query}' returned {len(results)} results")
        return results
