"""
MCP Tools for parknav.

Modules:
    parking: Web-search enrichment, Overpass ingestion, GeoJSON export
    speech: Speech-to-text and text-to-speech
"""

from parknav.tools.parking import (
    save_parking_info,
    fetch_overpass_data,
    get_parking_data_for_frontend,
    health_check,
)

from parknav.tools.speech import (
    speech_to_text,
    text_to_speech,
)

__all__ = [
    # Parking
    "save_parking_info",
    "fetch_overpass_data",
    "get_parking_data_for_frontend",
    "health_check",
    # Speech
    "speech_to_text",
    "text_to_speech",
]
