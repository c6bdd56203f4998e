"""
Normalization of raw upstream payloads into parking records.

Two independent pipelines:

- Overpass JSON -> GeoJSON features -> EnrichedParkingFeature (points only)
- SerpApi Google Maps JSON -> ParkingCandidate (rate/hours pulled from the snippet)

Payload shape is checked once at the boundary and reported as a
ParseResult (Ok or Malformed). After that every record is normalized on
its own: a record that cannot be normalized is skipped and logged, it
never aborts the batch and is never filled in with defaults.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, Iterable, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

from parknav.logger import get_logger
from parknav.models import EnrichedParkingFeature, ParkingCandidate

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_SOURCE = "overpass"
DEFAULT_CONFIDENCE = 0.9

# "$12.50/hr" -> 12.50. Only the first match in a snippet is used.
HOURLY_RATE_PATTERN = re.compile(r"\$(\d+(?:\.\d{1,2})?)/hr")

# "Open 8am-6pm" -> "8am-6pm"
HOURS_PATTERN = re.compile(r"Open ([\w\s\-:]+)")

_HTML_TAG_PATTERN = re.compile(r"<[^>]+>")

GOOGLE_MAPS_PLACE_URL = "https://www.google.com/maps/place/?q=place_id:"

# Tags promoted to their own columns
_NAMED_TAGS = ("name", "amenity")


# ============================================================
# Parse results
# ============================================================

@dataclass(frozen=True)
class Ok(Generic[T]):
    """Payload had the expected shape."""
    value: T


@dataclass(frozen=True)
class Malformed:
    """Payload did not have the expected shape."""
    reason: str


ParseResult = Union[Ok[T], Malformed]


def parse_overpass_payload(payload: Any) -> ParseResult[list[dict]]:
    """Extract the `elements` list from an Overpass response."""
    if not isinstance(payload, dict):
        return Malformed(f"expected a JSON object, got {type(payload).__name__}")

    elements = payload.get("elements")
    if not isinstance(elements, list):
        return Malformed("response has no 'elements' list")

    return Ok([e for e in elements if isinstance(e, dict)])


def parse_search_payload(payload: Any) -> ParseResult[list[dict]]:
    """
    Extract the places from a SerpApi Google Maps response.

    Places normally live in `local_results`; a single exact match comes
    back as `place_results` instead. A missing or empty collection means
    "no results" and is Ok([]).
    """
    if not isinstance(payload, dict):
        return Malformed(f"expected a JSON object, got {type(payload).__name__}")

    places = payload.get("local_results")
    if isinstance(places, dict):
        places = places.get("places") or places.get("results")
    if places is None:
        places = payload.get("place_results")
    if isinstance(places, dict):
        places = [places]
    if not isinstance(places, list):
        return Ok([])

    return Ok([p for p in places if isinstance(p, dict)])


# ============================================================
# Overpass -> GeoJSON
# ============================================================

def _node_coordinates(element: dict) -> list[float] | None:
    try:
        return [float(element["lon"]), float(element["lat"])]
    except (KeyError, TypeError, ValueError):
        return None


def _way_coordinates(element: dict, nodes: dict) -> list[list[float] | None]:
    # `out geom` inlines the vertices; older payloads reference node ids
    geometry = element.get("geometry")
    if isinstance(geometry, list):
        return [_node_coordinates(point) if isinstance(point, dict) else None for point in geometry]
    return [nodes.get(node_id) for node_id in element.get("nodes") or []]


def overpass_to_geojson(elements: Iterable[dict]) -> list[dict]:
    """
    Convert Overpass elements into GeoJSON features.

    Nodes become Points. Ways become LineStrings (Polygons when closed)
    when every vertex has coordinates, otherwise they get a null
    geometry. Relations always get a null geometry.

    Untagged nodes are never emitted: they are way vertices or relation
    members, not matched amenities. Each element id is emitted once; a
    repeated id keeps the first occurrence.
    """
    elements = list(elements)
    nodes = {
        e.get("id"): _node_coordinates(e)
        for e in elements
        if e.get("type") == "node"
    }

    features = []
    seen = set()
    for element in elements:
        element_type = element.get("type")
        key = (element_type, element.get("id"))
        tags = element.get("tags") or {}
        geometry = None

        if key in seen:
            continue

        if element_type == "node":
            if not tags:
                continue
            coordinates = nodes.get(element.get("id"))
            if coordinates is not None:
                geometry = {"type": "Point", "coordinates": coordinates}

        elif element_type == "way":
            ring = _way_coordinates(element, nodes)
            if len(ring) >= 2 and all(c is not None for c in ring):
                if len(ring) >= 4 and ring[0] == ring[-1]:
                    geometry = {"type": "Polygon", "coordinates": [ring]}
                else:
                    geometry = {"type": "LineString", "coordinates": ring}

        seen.add(key)
        features.append({
            "type": "Feature",
            "id": f"{element_type}/{element.get('id')}",
            "geometry": geometry,
            "properties": {
                "type": element_type,
                "id": element.get("id"),
                "tags": tags,
            },
        })

    return features


# ============================================================
# Geospatial normalization
# ============================================================

def _feature_to_record(
    feature: dict,
    source: str,
    confidence: float,
    retrieved_at: str,
) -> EnrichedParkingFeature | None:
    geometry = feature.get("geometry")
    if not geometry or geometry.get("type") != "Point":
        return None

    properties = feature.get("properties") or {}
    tags = dict(properties.get("tags") or {})
    longitude, latitude = geometry["coordinates"][:2]

    named = {key: tags.pop(key, None) for key in _NAMED_TAGS}

    try:
        return EnrichedParkingFeature(
            id=properties.get("id"),
            latitude=latitude,
            longitude=longitude,
            name=named["name"],
            amenity=named["amenity"],
            source=source,
            retrieved_at=retrieved_at,
            confidence=confidence,
            other_tags=tags,
        )
    except PydanticValidationError as e:
        logger.debug(f"Skipping feature {feature.get('id')}: {e.error_count()} invalid fields")
        return None


def points_from_features(
    features: Iterable[dict],
    source: str = DEFAULT_SOURCE,
    confidence: float = DEFAULT_CONFIDENCE,
    retrieved_at: str | None = None,
) -> list[EnrichedParkingFeature]:
    """
    Turn GeoJSON features into EnrichedParkingFeature records.

    Features without a point geometry are dropped. The timestamp
    defaults to now (UTC) and is captured once for the whole batch.
    """
    if retrieved_at is None:
        retrieved_at = datetime.now(timezone.utc).isoformat()

    records = []
    for feature in features:
        record = _feature_to_record(feature, source, confidence, retrieved_at)
        if record is None:
            logger.debug(f"Skipping non-point feature {feature.get('id')}")
            continue
        records.append(record)
    return records


def normalize_geospatial(
    payload: Any,
    source: str = DEFAULT_SOURCE,
    confidence: float = DEFAULT_CONFIDENCE,
    retrieved_at: str | None = None,
) -> list[EnrichedParkingFeature]:
    """
    Normalize an Overpass payload into point features.

    Args:
        payload: Raw Overpass JSON
        source: Source identifier stamped on every record
        confidence: Confidence score stamped on every record
        retrieved_at: ISO-8601 timestamp; defaults to now (UTC), captured once

    Returns:
        Point features only; anything without a point geometry is dropped
    """
    parsed = parse_overpass_payload(payload)
    if isinstance(parsed, Malformed):
        logger.warning(f"Malformed Overpass payload: {parsed.reason}")
        return []

    records = points_from_features(
        overpass_to_geojson(parsed.value), source, confidence, retrieved_at,
    )
    logger.debug(
        f"Normalized {len(records)} point features from {len(parsed.value)} elements",
    )
    return records


# ============================================================
# Search normalization
# ============================================================

def extract_hourly_rate(text: str | None) -> Decimal | None:
    """Extract the first "$<amount>/hr" rate from text, or None."""
    if not text:
        return None
    match = HOURLY_RATE_PATTERN.search(text)
    if not match:
        return None
    try:
        return Decimal(match.group(1))
    except InvalidOperation:
        return None


def extract_hours(text: str | None) -> str | None:
    """Extract the text after the first "Open " (e.g. "8am-6pm"), or None."""
    if not text:
        return None
    match = HOURS_PATTERN.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def _strip_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = _HTML_TAG_PATTERN.sub("", str(value)).strip()
    return text or None


def _place_url(place: dict) -> str | None:
    link = _strip_or_none(place.get("link") or place.get("website"))
    if link:
        return link
    place_id = _strip_or_none(place.get("place_id"))
    if place_id:
        return f"{GOOGLE_MAPS_PLACE_URL}{place_id}"
    return None


def normalize_search_results(payload: Any, neighborhood: str) -> list[ParkingCandidate]:
    """
    Normalize a SerpApi Google Maps payload into parking candidates.

    Rate and hours come from the place snippet (falling back to its
    description). The neighborhood is copied from the argument, never
    from the payload. Places without a title or any URL are skipped.
    """
    parsed = parse_search_payload(payload)
    if isinstance(parsed, Malformed):
        logger.warning(f"Malformed search payload: {parsed.reason}")
        return []

    candidates = []
    for place in parsed.value:
        title = _strip_or_none(place.get("title"))
        url = _place_url(place)
        if not title or not url:
            logger.debug("Skipping place without title or url")
            continue

        snippet = _strip_or_none(place.get("snippet") or place.get("description"))
        try:
            candidates.append(ParkingCandidate(
                name=title,
                address=_strip_or_none(place.get("address")),
                hourly_rate=extract_hourly_rate(snippet),
                hours=extract_hours(snippet),
                neighborhood=neighborhood,
                source_url=url,
            ))
        except PydanticValidationError as e:
            logger.debug(f"Skipping place {url}: {e.error_count()} invalid fields")

    return candidates
