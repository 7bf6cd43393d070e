"""Exception hierarchy for the admin backend.

Only configuration problems are raised out of the service layer. Fetch,
store and cache failures are turned into result values by the enrichment
pipeline, so these types mostly travel between the repository and the
orchestrator.
"""
from typing import Any, Dict, Optional


class PlacemarksError(Exception):
    """Base exception for all Placemarks admin errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PlacemarksError):
    """Required credentials or connection parameters are missing."""


class StoreError(PlacemarksError):
    """A read or write against the primary store failed."""


class DetailParseError(PlacemarksError):
    """A Google Places payload did not match the expected shape."""
