"""
Parking MCP tools for parknav.

Provides tools for:
- Enriching a neighborhood with parking places from Google Maps search
- Ingesting OpenStreetMap parking amenities around a point via Overpass
- Exporting stored parking features as GeoJSON for a map frontend

Each call runs validate -> fetch -> normalize -> persist and always
returns a dict; failures become an error dict instead of an exception.
"""

from typing import Any

from parknav.clients import fetch_overpass, fetch_search_results
from parknav.config import get_settings
from parknav.database import ParkingStore, run_in_thread
from parknav.errors import handle_error
from parknav.logger import get_logger, ToolCallLogger
from parknav.normalizers import (
    Malformed,
    normalize_search_results,
    overpass_to_geojson,
    parse_overpass_payload,
    points_from_features,
)
from parknav.validators import (
    DEFAULT_RADIUS_METERS,
    validate_latitude,
    validate_longitude,
    validate_non_empty_string,
    validate_radius,
)

logger = get_logger(__name__)

SEARCH_QUERY_TEMPLATE = "parking garages in {neighborhood}"


async def save_parking_info(store: ParkingStore, neighborhood: str) -> dict[str, Any]:
    """
    Search Google Maps for parking in a neighborhood and store the places.

    Args:
        store: Open ParkingStore
        neighborhood: Neighborhood name, used in the query and stored verbatim

    Returns:
        Dictionary containing:
        - message: Human-readable summary
        - count: Number of listings saved (0 when nothing was found)
    """
    with ToolCallLogger(logger, "save_parking_info", neighborhood=neighborhood) as log:
        name_result = validate_non_empty_string(neighborhood, "neighborhood", max_length=200)
        if not name_result.valid:
            result = name_result.to_error_response(count=0)
            log.set_result(result)
            return result
        neighborhood = name_result.value

        try:
            payload = await fetch_search_results(
                SEARCH_QUERY_TEMPLATE.format(neighborhood=neighborhood)
            )
            candidates = normalize_search_results(payload, neighborhood)

            if not candidates:
                result = {
                    "message": f"No parking data found for {neighborhood}",
                    "count": 0,
                    "neighborhood": neighborhood,
                }
                log.set_result(result)
                return result

            await run_in_thread(store.ensure_schema)
            saved = await run_in_thread(store.upsert_parking_candidates, candidates)

            result = {
                "message": f"Saved {saved} parking locations for {neighborhood}",
                "count": saved,
                "neighborhood": neighborhood,
            }
            log.set_result(result)
            return result

        except Exception as e:
            logger.error(
                f"save_parking_info failed: {type(e).__name__}: {e}",
                extra={"neighborhood": neighborhood},
            )
            result = handle_error(e, {"neighborhood": neighborhood})
            result["count"] = 0
            log.set_result(result)
            return result


async def fetch_overpass_data(
    store: ParkingStore,
    latitude: float,
    longitude: float,
    radius: float | None = DEFAULT_RADIUS_METERS,
) -> dict[str, Any]:
    """
    Ingest parking amenities around a point from Overpass.

    Only point features are stored. Re-ingesting the same OSM ids
    overwrites the existing rows.

    Args:
        store: Open ParkingStore
        latitude: Latitude in decimal degrees (WGS84)
        longitude: Longitude in decimal degrees (WGS84)
        radius: Search radius in metres (default: 500)

    Returns:
        Dictionary containing:
        - message: Human-readable summary
        - count: Number of features saved
        - skipped: Number of features without a point geometry
    """
    with ToolCallLogger(
        logger, "fetch_overpass_data",
        latitude=latitude, longitude=longitude, radius=radius,
    ) as log:
        lat_result = validate_latitude(latitude)
        if not lat_result.valid:
            result = lat_result.to_error_response(count=0)
            log.set_result(result)
            return result
        latitude = lat_result.value

        lng_result = validate_longitude(longitude)
        if not lng_result.valid:
            result = lng_result.to_error_response(count=0)
            log.set_result(result)
            return result
        longitude = lng_result.value

        radius_result = validate_radius(radius)
        if not radius_result.valid:
            result = radius_result.to_error_response(count=0)
            log.set_result(result)
            return result
        radius = radius_result.value

        context = {"latitude": latitude, "longitude": longitude, "radius": radius}

        try:
            settings = get_settings()
            payload = await fetch_overpass(latitude, longitude, radius)
            parsed = parse_overpass_payload(payload)
            if isinstance(parsed, Malformed):
                logger.warning(f"Malformed Overpass payload: {parsed.reason}", extra=context)
                geojson = []
            else:
                geojson = overpass_to_geojson(parsed.value)
            features = points_from_features(
                geojson,
                source=settings.feature_source,
                confidence=settings.feature_confidence,
            )

            await run_in_thread(store.ensure_schema)
            saved = await run_in_thread(store.upsert_enriched_features, features)

            result = {
                "message": f"Saved {saved} parking features from Overpass",
                "count": saved,
                "skipped": len(geojson) - len(features),
            }
            log.set_result(result)
            return result

        except Exception as e:
            logger.error(f"fetch_overpass_data failed: {type(e).__name__}: {e}", extra=context)
            result = handle_error(e, context)
            result["count"] = 0
            log.set_result(result)
            return result


async def get_parking_data_for_frontend(store: ParkingStore) -> dict[str, Any]:
    """
    Read every stored parking feature as a GeoJSON FeatureCollection.

    Returns:
        Dictionary containing:
        - geojson: FeatureCollection (zero features when the table is empty)
        - count: Number of features
    """
    with ToolCallLogger(logger, "get_parking_data_for_frontend") as log:
        try:
            await run_in_thread(store.ensure_schema)
            collection = await run_in_thread(store.read_all_enriched_features)

            result = {
                "geojson": collection,
                "count": len(collection["features"]),
            }
            log.set_result(result)
            return result

        except Exception as e:
            logger.error(f"get_parking_data_for_frontend failed: {type(e).__name__}: {e}")
            result = handle_error(e)
            log.set_result(result)
            return result


async def health_check(store: ParkingStore) -> dict[str, Any]:
    """Report database connectivity and server configuration."""
    settings = get_settings()
    database = await run_in_thread(store.check_connection)
    return {
        "status": "healthy" if database["status"] == "connected" else "unhealthy",
        "database": database,
        "server_name": settings.server_name,
        "server_version": settings.server_version,
        "environment": settings.environment,
        "search_configured": bool(settings.serpapi_api_key),
        "speech_configured": bool(settings.openai_api_key),
    }
