"""
Pydantic models for parking records.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ParkingCandidate(BaseModel):
    """Parking place extracted from a Google Maps search result."""
    name: str = Field(..., description="Place title")
    address: Optional[str] = Field(None, description="Street address of the place")
    hourly_rate: Optional[Decimal] = Field(None, ge=0, description="Hourly rate in dollars")
    hours: Optional[str] = Field(None, description="Free-text operating hours")
    neighborhood: str = Field(..., description="Neighborhood supplied by the caller")
    source_url: str = Field(..., description="Place URL (unique key)")


class EnrichedParkingFeature(BaseModel):
    """Parking amenity ingested from OpenStreetMap via Overpass."""
    id: int = Field(..., description="OSM element id (unique key)")
    latitude: float
    longitude: float
    name: Optional[str] = None
    amenity: Optional[str] = None
    source: str = Field(..., description="Source identifier for the ingestion run")
    retrieved_at: str = Field(..., description="ISO-8601 retrieval timestamp")
    confidence: float = Field(..., ge=0.0, le=1.0)
    other_tags: Dict[str, Any] = Field(default_factory=dict)

    def to_geojson(self) -> Dict[str, Any]:
        """Return the record as a GeoJSON Point feature."""
        properties = self.model_dump(exclude={"latitude", "longitude"})
        return {
            "type": "Feature",
            "geometry": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
            },
            "properties": properties,
        }
