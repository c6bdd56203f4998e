"""
Input validation utilities for the parknav MCP Server.

Provides validation functions for tool inputs:
- Coordinate validation (latitude, longitude)
- Search radius validation
- Non-empty string validation
- Base64 audio payload and audio file type validation

All validators return a ValidationResult with success status and error details.
Tools check inputs before any network or database call is made.
"""

import base64
import binascii
import math
from dataclasses import dataclass
from typing import Any

from parknav.errors import ErrorCode, ValidationError

# Default Overpass search radius in metres
DEFAULT_RADIUS_METERS = 500

# Audio container formats accepted by the transcription endpoint
SUPPORTED_AUDIO_TYPES = ("flac", "m4a", "mp3", "mp4", "mpeg", "mpga", "oga", "ogg", "wav", "webm")

# Voices offered by the text-to-speech endpoint
SUPPORTED_VOICES = ("alloy", "ash", "coral", "echo", "fable", "nova", "onyx", "sage", "shimmer")


@dataclass
class ValidationResult:
    """Result of a validation operation."""

    valid: bool
    error: str | None = None
    code: str | None = None
    field: str | None = None
    value: Any = None  # Parsed/normalized value

    def to_error_response(self, **kwargs) -> dict:
        """Convert to error response dictionary."""
        if self.valid:
            return {}
        error = ValidationError(self.error or "Invalid input", field=self.field)
        return {**error.to_dict(), **kwargs}


def _invalid(field_name: str, message: str) -> ValidationResult:
    return ValidationResult(
        valid=False,
        error=message,
        code=ErrorCode.VALIDATION_ERROR.value,
        field=field_name,
    )


def _finite_float(value: Any, field_name: str) -> ValidationResult:
    # bool is an int subclass; True is not a coordinate
    if value is None or isinstance(value, bool):
        return _invalid(field_name, f"{field_name} must be a number")
    try:
        num = float(value)
    except (ValueError, TypeError):
        return _invalid(field_name, f"{field_name} must be a number")
    if not math.isfinite(num):
        return _invalid(field_name, f"{field_name} must be a finite number (got {num})")
    return ValidationResult(valid=True, value=num)


# ============================================================
# Coordinate Validation
# ============================================================

def validate_latitude(value: float | str, field_name: str = "latitude") -> ValidationResult:
    """
    Validate latitude value (finite, -90 to 90).

    Returns:
        ValidationResult with float value if valid
    """
    result = _finite_float(value, field_name)
    if not result.valid:
        return result

    if not -90 <= result.value <= 90:
        return _invalid(field_name, f"{field_name} must be between -90 and 90 (got {result.value})")

    return result


def validate_longitude(value: float | str, field_name: str = "longitude") -> ValidationResult:
    """
    Validate longitude value (finite, -180 to 180).

    Returns:
        ValidationResult with float value if valid
    """
    result = _finite_float(value, field_name)
    if not result.valid:
        return result

    if not -180 <= result.value <= 180:
        return _invalid(field_name, f"{field_name} must be between -180 and 180 (got {result.value})")

    return result


def validate_radius(
    value: float | int | str | None,
    field_name: str = "radius",
) -> ValidationResult:
    """
    Validate a search radius in metres.

    None falls back to DEFAULT_RADIUS_METERS. The radius must be a
    finite positive number.
    """
    if value is None:
        return ValidationResult(valid=True, value=float(DEFAULT_RADIUS_METERS))

    result = _finite_float(value, field_name)
    if not result.valid:
        return result

    if result.value <= 0:
        return _invalid(field_name, f"{field_name} must be positive (got {result.value})")

    return result


# ============================================================
# String Validation
# ============================================================

def validate_non_empty_string(
    value: str,
    field_name: str,
    max_length: int | None = None,
) -> ValidationResult:
    """
    Validate a non-empty string with an optional length limit.

    Returns:
        ValidationResult with the stripped string if valid
    """
    if not value or not str(value).strip():
        return _invalid(field_name, f"{field_name} is required and cannot be empty")

    value = str(value).strip()

    if max_length and len(value) > max_length:
        return _invalid(
            field_name,
            f"{field_name} must be at most {max_length} characters (got {len(value)})",
        )

    return ValidationResult(valid=True, value=value)


def validate_choice(
    value: str,
    field_name: str,
    choices: tuple[str, ...],
) -> ValidationResult:
    """Validate that a (case-insensitive) string is one of the allowed choices."""
    normalized = str(value or "").strip().lower()
    if normalized not in choices:
        return _invalid(
            field_name,
            f"Invalid {field_name} '{value}'. Must be one of: {', '.join(choices)}",
        )
    return ValidationResult(valid=True, value=normalized)


# ============================================================
# Audio Validation
# ============================================================

def validate_base64_audio(value: str, field_name: str = "audio") -> ValidationResult:
    """
    Validate and decode a base64 audio payload.

    A "data:<mime>;base64," prefix is accepted and stripped.

    Returns:
        ValidationResult with the decoded bytes if valid
    """
    string_result = validate_non_empty_string(value, field_name)
    if not string_result.valid:
        return string_result

    encoded = string_result.value
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]

    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return _invalid(field_name, f"{field_name} must be valid base64-encoded data")

    if not decoded:
        return _invalid(field_name, f"{field_name} decoded to an empty payload")

    return ValidationResult(valid=True, value=decoded)


def validate_audio_type(value: str, field_name: str = "file_type") -> ValidationResult:
    """Validate an audio file extension such as 'wav' or '.mp3'."""
    return validate_choice(str(value or "").lstrip("."), field_name, SUPPORTED_AUDIO_TYPES)
