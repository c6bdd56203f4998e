"""
HTTP clients for the external services used by parknav.

- Overpass API (OpenStreetMap parking amenities)
- SerpApi Google Maps search (parking places for a neighborhood)
- OpenAI audio endpoints (speech-to-text, text-to-speech)

Every function issues exactly one request. There is no retry: a
transport failure, a non-2xx status or an undecodable body raises
FetchError and the calling tool decides how to report it.
"""

import asyncio
import functools
from typing import Any

import httpx
import requests
from serpapi import GoogleSearch

from parknav.config import get_settings
from parknav.errors import ConfigurationError, ErrorCode, FetchError
from parknav.logger import get_logger

logger = get_logger(__name__)

USER_AGENT = "parknav-mcp/1.0"

TRANSCRIPTION_MODEL = "whisper-1"
SPEECH_MODEL = "tts-1"


def _format_radius(radius: float) -> str:
    # Overpass QL has no exponent notation: 1e+06 is a syntax error
    return f"{radius:.2f}".rstrip("0").rstrip(".")


def build_overpass_query(latitude: float, longitude: float, radius: float) -> str:
    """
    Build an Overpass QL query for parking amenities around a point.

    `out tags geom` returns only the matched elements, with way vertices
    inlined, so no untagged member nodes come back.
    """
    around = f"around:{_format_radius(radius)},{latitude},{longitude}"
    return (
        "[out:json][timeout:25];"
        f'nwr["amenity"="parking"]({around});'
        "out tags geom;"
    )


async def _send(
    service: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Send a single request and convert failures into FetchError."""
    settings = get_settings()
    headers = {"User-Agent": USER_AGENT, **kwargs.pop("headers", {})}

    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"{service} returned HTTP {e.response.status_code}",
                extra={"url": url, "status_code": e.response.status_code},
            )
            raise FetchError(
                f"{service} request failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                cause=e,
                response_text=e.response.text,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"{service} request failed: {e}", extra={"url": url})
            raise FetchError(f"{service} request failed: {e}", cause=e) from e

    return response


def _decode_json(service: str, response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise FetchError(
            f"{service} returned a non-JSON response",
            status_code=response.status_code,
            cause=e,
            code=ErrorCode.MALFORMED_RESPONSE,
        ) from e


# ============================================================
# Overpass
# ============================================================

async def fetch_overpass(latitude: float, longitude: float, radius: float) -> Any:
    """
    Query Overpass for parking amenities within `radius` metres of a point.

    Returns:
        The decoded Overpass JSON payload
    """
    settings = get_settings()
    query = build_overpass_query(latitude, longitude, radius)

    logger.debug(
        "Querying Overpass",
        extra={"latitude": latitude, "longitude": longitude, "radius": radius},
    )
    response = await _send("Overpass", "POST", settings.overpass_url, data={"data": query})
    return _decode_json("Overpass", response)


# ============================================================
# Google Maps search (SerpApi)
# ============================================================

# SerpApi reports an empty result set as an error message, not an empty list
NO_RESULTS_MESSAGE = "hasn't returned any results"


def build_search_params(query: str) -> dict[str, Any]:
    """Build SerpApi parameters for a Google Maps search."""
    settings = get_settings()
    if not settings.serpapi_api_key:
        raise ConfigurationError("SERPAPI_API_KEY is not configured")

    params = {
        "engine": "google_maps",
        "type": "search",
        "q": query,
        "api_key": settings.serpapi_api_key,
    }
    if settings.search_location:
        params["location"] = settings.search_location
    return params


def _search_sync(params: dict[str, Any]) -> dict[str, Any]:
    search = GoogleSearch(params)
    search.timeout = get_settings().http_timeout
    return search.get_dict()


async def fetch_search_results(query: str) -> Any:
    """
    Run a Google Maps search through SerpApi.

    Returns:
        The decoded SerpApi payload (places live under local_results)
    """
    params = build_search_params(query)

    logger.debug(f"Searching Google Maps for '{query}'")
    loop = asyncio.get_running_loop()
    try:
        data = await loop.run_in_executor(None, functools.partial(_search_sync, params))
    except requests.Timeout as e:
        logger.warning(f"SerpApi request timed out: {e}")
        raise FetchError(f"SerpApi request timed out: {e}", cause=e, code=ErrorCode.TIMEOUT) from e
    except requests.RequestException as e:
        logger.warning(f"SerpApi request failed: {e}")
        raise FetchError(f"SerpApi request failed: {e}", cause=e, code=ErrorCode.NETWORK_ERROR) from e
    except ValueError as e:
        raise FetchError(
            "SerpApi returned a non-JSON response",
            cause=e,
            code=ErrorCode.MALFORMED_RESPONSE,
        ) from e

    error = data.get("error") if isinstance(data, dict) else None
    if error and NO_RESULTS_MESSAGE not in str(error):
        logger.warning(f"SerpApi returned an error: {error}", extra={"query": query})
        raise FetchError(f"SerpApi search failed: {error}", response_text=str(error))

    return data


# ============================================================
# Speech
# ============================================================

def _openai_headers() -> dict[str, str]:
    settings = get_settings()
    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY is not configured")
    return {"Authorization": f"Bearer {settings.openai_api_key}"}


async def transcribe_audio(audio: bytes, file_type: str = "wav") -> str:
    """Transcribe audio bytes to text with the OpenAI transcription endpoint."""
    settings = get_settings()
    url = f"{settings.openai_api_base.rstrip('/')}/audio/transcriptions"

    response = await _send(
        "OpenAI transcription",
        "POST",
        url,
        headers=_openai_headers(),
        data={"model": TRANSCRIPTION_MODEL},
        files={"file": (f"audio.{file_type}", audio, f"audio/{file_type}")},
    )
    payload = _decode_json("OpenAI transcription", response)

    text = payload.get("text") if isinstance(payload, dict) else None
    if not isinstance(text, str):
        raise FetchError(
            "OpenAI transcription response has no text",
            code=ErrorCode.MALFORMED_RESPONSE,
        )
    return text


async def synthesize_speech(text: str, voice: str = "alloy") -> bytes:
    """Synthesize speech (mp3) for `text` with the OpenAI speech endpoint."""
    settings = get_settings()
    url = f"{settings.openai_api_base.rstrip('/')}/audio/speech"

    response = await _send(
        "OpenAI speech",
        "POST",
        url,
        headers=_openai_headers(),
        json={
            "model": SPEECH_MODEL,
            "input": text,
            "voice": voice,
            "response_format": "mp3",
        },
    )
    return response.content
