"""
parknav MCP Server

Exposes speech, parking search, Overpass ingestion and GeoJSON export
tools to AI agents.

The ParkingStore is opened once in the server lifespan and handed to
each tool through the request context. Failing to reach the database
stops the server from starting.

Supports both stdio (local) and HTTP/SSE (remote) transports.
"""

import base64
import json
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from fastmcp import Context, FastMCP
from mcp.types import AudioContent, BlobResourceContents, EmbeddedResource, TextContent

from parknav.config import get_settings
from parknav.database import ParkingStore, run_in_thread
from parknav.logger import get_logger
from parknav.tools.parking import (
    fetch_overpass_data,
    get_parking_data_for_frontend,
    health_check,
    save_parking_info,
)
from parknav.tools.speech import speech_to_text, text_to_speech
from parknav.validators import DEFAULT_RADIUS_METERS

# Initialize settings and logger
settings = get_settings()
logger = get_logger(__name__)

GEOJSON_MIME_TYPE = "application/json"


@dataclass
class AppContext:
    store: ParkingStore


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Open the parking store for the lifetime of the server."""
    store = ParkingStore.from_settings()
    await run_in_thread(store.open)
    await run_in_thread(store.ensure_schema)
    try:
        yield AppContext(store=store)
    finally:
        await run_in_thread(store.close)


# Create MCP server instance
mcp = FastMCP(
    name=settings.server_name,
    version=settings.server_version,
    lifespan=app_lifespan,
)


def _store(ctx: Context) -> ParkingStore:
    return ctx.request_context.lifespan_context.store


def geojson_resource(collection: dict) -> EmbeddedResource:
    """Wrap a FeatureCollection as a base64 data-URI resource."""
    encoded = base64.b64encode(json.dumps(collection).encode("utf-8")).decode("ascii")
    return EmbeddedResource(
        type="resource",
        resource=BlobResourceContents(
            uri=f"data:{GEOJSON_MIME_TYPE};base64,{encoded}",
            mimeType=GEOJSON_MIME_TYPE,
            blob=encoded,
        ),
    )


# ============================================================
# Speech Tools
# ============================================================

@mcp.tool(name="speechToText")
async def tool_speech_to_text(audio_base64: str, file_type: str = "wav") -> dict:
    """
    Convert speech audio to text.

    Args:
        audio_base64: Audio file contents, base64-encoded
        file_type: Audio format extension, e.g. "wav", "mp3", "webm" (default: "wav")

    Returns:
        Dictionary containing:
        - text: The transcript
    """
    return await speech_to_text(audio_base64=audio_base64, file_type=file_type)


@mcp.tool(name="textToSpeech")
async def tool_text_to_speech(text: str, voice: str = "alloy") -> AudioContent | TextContent:
    """
    Convert text to spoken audio (mp3).

    Args:
        text: Text to speak
        voice: Voice name, e.g. "alloy", "echo", "nova" (default: "alloy")

    Returns:
        Base64-encoded audio with its MIME type
    """
    result = await text_to_speech(text=text, voice=voice)
    if "error" in result:
        return TextContent(type="text", text=json.dumps(result))
    return AudioContent(
        type="audio",
        data=result["audio_base64"],
        mimeType=result["mime_type"],
    )


# ============================================================
# Parking Tools
# ============================================================

@mcp.tool(name="saveParkingInfo")
async def tool_save_parking_info(neighborhood: str, ctx: Context) -> dict:
    """
    Search Google Maps for parking garages in a neighborhood and save them.

    Extracts hourly rates ("$12.50/hr") and opening hours ("Open 8am-6pm")
    from place snippets where present.

    Args:
        neighborhood: Neighborhood name, e.g. "Mission District"

    Returns:
        Dictionary containing:
        - message: How many listings were saved, or that none were found
        - count: Number of listings saved
    """
    return await save_parking_info(_store(ctx), neighborhood=neighborhood)


@mcp.tool(name="fetchOverpassData")
async def tool_fetch_overpass_data(
    latitude: float,
    longitude: float,
    ctx: Context,
    radius: float = DEFAULT_RADIUS_METERS,
) -> dict:
    """
    Fetch parking amenities from OpenStreetMap (Overpass API) and save them.

    Only point features are stored; fetching the same area again updates
    existing records instead of duplicating them.

    Args:
        latitude: Latitude in decimal degrees (WGS84)
        longitude: Longitude in decimal degrees (WGS84)
        radius: Search radius in metres (default: 500)

    Returns:
        Dictionary containing:
        - message: How many features were saved
        - count: Number of features saved
        - skipped: Features without a point geometry
    """
    return await fetch_overpass_data(
        _store(ctx),
        latitude=latitude,
        longitude=longitude,
        radius=radius,
    )


@mcp.tool(name="getParkingDataForFrontend")
async def tool_get_parking_data_for_frontend(ctx: Context) -> EmbeddedResource | TextContent:
    """
    Get all stored parking features as a GeoJSON FeatureCollection.

    Returns:
        A resource whose URI is a data:application/json;base64 URI
        holding the FeatureCollection
    """
    result = await get_parking_data_for_frontend(_store(ctx))
    if "error" in result:
        return TextContent(type="text", text=json.dumps(result))
    return geojson_resource(result["geojson"])


# ============================================================
# Utility Tools
# ============================================================

@mcp.tool(name="healthCheck")
async def tool_health_check(ctx: Context) -> dict:
    """
    Check database connectivity and which external APIs are configured.

    Returns:
        Dictionary containing status, database details and server info
    """
    return await health_check(_store(ctx))


# ============================================================
# Entry Point
# ============================================================

def main() -> None:
    logger.info(
        f"Starting {settings.server_name} v{settings.server_version}",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
        },
    )

    # Options: "stdio" (default, for local clients)
    #          "sse" (for remote HTTP connections)
    #          "streamable-http" (alternative HTTP transport)
    transport = os.environ.get("MCP_TRANSPORT", "stdio")
    host = os.environ.get("MCP_HOST", "0.0.0.0")
    port = int(os.environ.get("MCP_PORT", "8080"))

    logger.info(f"Using transport: {transport}")

    if transport == "stdio":
        mcp.run()
    elif transport in ("sse", "streamable-http"):
        logger.info(f"Starting {transport} server on {host}:{port}")
        mcp.run(transport=transport, host=host, port=port)
    else:
        logger.error(f"Unknown transport: {transport}")
        print(f"Unknown transport: {transport}", file=sys.stderr)
        print("Valid options: stdio, sse, streamable-http", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
