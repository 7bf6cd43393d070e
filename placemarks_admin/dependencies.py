"""Dependencies for FastAPI routes."""
from functools import lru_cache
from typing import Optional
import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from placemarks_admin.config import settings
from placemarks_admin.database import AsyncSessionLocal
from placemarks_admin.enrichment import PlaceEnhancementMigration, PlaceEnhancementService
from placemarks_admin.exceptions import ConfigurationError
from placemarks_admin.services.google_places import GooglePlacesClient
from placemarks_admin.services.place_cache import PlaceCache, create_place_cache
from placemarks_admin.services.place_repository import PlaceRepository

logger = logging.getLogger(__name__)

# HTTP Bearer token security
security = HTTPBearer()


def verify_session_token(token: str) -> dict:
    """
    Validate a Supabase session JWT and return user info.

    Args:
        token: Access token issued by Supabase Auth

    Returns:
        dict with user information (id, email, role)

    Raises:
        HTTPException: If token is invalid
    """
    secret = settings.supabase_jwt_secret
    if not secret:
        logger.warning("Supabase JWT secret not configured, rejecting request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication not configured on server",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=settings.supabase_jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token has expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid token: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {
        "id": payload.get("sub"),
        "email": payload.get("email"),
        "role": payload.get("role"),
        "user_metadata": payload.get("user_metadata") or {},
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """
    Verify JWT token and return current user.
    """
    return verify_session_token(credentials.credentials)


async def get_admin_user(current_user: dict = Depends(get_current_user)) -> dict:
    """Require the signed-in user to be on the admin allow-list (when one is set)."""
    allowed = settings.admin_email_list
    email = (current_user.get("email") or "").lower()
    if allowed and email not in allowed:
        logger.warning(f"Rejected non-admin user {current_user.get('id')}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def _configuration_error(exc: ConfigurationError) -> HTTPException:
    logger.error(f"Configuration error: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Server configuration error: {exc.message}",
    )


def get_place_repository() -> PlaceRepository:
    return PlaceRepository(AsyncSessionLocal)


@lru_cache
def _place_cache() -> PlaceCache:
    return create_place_cache(settings, AsyncSessionLocal)


def get_place_cache() -> PlaceCache:
    try:
        return _place_cache()
    except ConfigurationError as exc:
        raise _configuration_error(exc)


def get_optional_places_client() -> Optional[GooglePlacesClient]:
    """Google Places client, or None when the API key is missing."""
    try:
        return get_places_client()
    except HTTPException:
        return None


def get_places_client() -> GooglePlacesClient:
    try:
        return GooglePlacesClient(
            api_key=settings.google_places_api_key,
            base_url=settings.google_places_base_url,
            timeout=settings.google_places_timeout,
        )
    except ConfigurationError as exc:
        raise _configuration_error(exc)


def get_enhancement_service(
    repository: PlaceRepository = Depends(get_place_repository),
    places_client: GooglePlacesClient = Depends(get_places_client),
    cache: PlaceCache = Depends(get_place_cache),
) -> PlaceEnhancementService:
    return PlaceEnhancementService(repository, places_client, cache, settings=settings)


def get_diagnostic_enhancement_service(
    repository: PlaceRepository = Depends(get_place_repository),
    places_client: Optional[GooglePlacesClient] = Depends(get_optional_places_client),
    cache: PlaceCache = Depends(get_place_cache),
) -> PlaceEnhancementService:
    """Enhancement service that can be built with missing credentials, for config checks."""
    return PlaceEnhancementService(repository, places_client, cache, settings=settings)


def get_migration(
    repository: PlaceRepository = Depends(get_place_repository),
    enhancement_service: PlaceEnhancementService = Depends(get_enhancement_service),
) -> PlaceEnhancementMigration:
    return PlaceEnhancementMigration(repository, enhancement_service)


def get_migration_reader(
    repository: PlaceRepository = Depends(get_place_repository),
    enhancement_service: PlaceEnhancementService = Depends(get_diagnostic_enhancement_service),
) -> PlaceEnhancementMigration:
    """Migration for read-only operations (analysis, validation); no Google key needed."""
    return PlaceEnhancementMigration(repository, enhancement_service)
