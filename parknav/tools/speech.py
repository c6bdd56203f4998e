"""
Speech tools for parknav.

Thin wrappers around the OpenAI audio endpoints:
- speech_to_text: base64 audio -> transcript
- text_to_speech: text -> base64 mp3
"""

import base64
from typing import Any

from parknav.clients import synthesize_speech, transcribe_audio
from parknav.errors import handle_error
from parknav.logger import get_logger, ToolCallLogger
from parknav.validators import (
    SUPPORTED_VOICES,
    validate_audio_type,
    validate_base64_audio,
    validate_choice,
    validate_non_empty_string,
)

logger = get_logger(__name__)

SPEECH_MIME_TYPE = "audio/mpeg"

# Upper bound of the speech endpoint's input
MAX_SPEECH_CHARS = 4096


async def speech_to_text(audio_base64: str, file_type: str = "wav") -> dict[str, Any]:
    """
    Transcribe base64-encoded audio.

    Args:
        audio_base64: Audio file contents, base64-encoded
        file_type: Audio container extension (default: "wav")

    Returns:
        Dictionary containing:
        - text: The transcript
    """
    with ToolCallLogger(logger, "speech_to_text", file_type=file_type) as log:
        type_result = validate_audio_type(file_type)
        if not type_result.valid:
            result = type_result.to_error_response(text=None)
            log.set_result(result)
            return result

        audio_result = validate_base64_audio(audio_base64, "audio_base64")
        if not audio_result.valid:
            result = audio_result.to_error_response(text=None)
            log.set_result(result)
            return result

        try:
            text = await transcribe_audio(audio_result.value, type_result.value)
        except Exception as e:
            logger.error(f"Transcription failed: {type(e).__name__}: {e}")
            result = handle_error(e, {"file_type": type_result.value})
            result["text"] = None
            log.set_result(result)
            return result

        result = {"text": text}
        log.set_result(result)
        return result


async def text_to_speech(text: str, voice: str = "alloy") -> dict[str, Any]:
    """
    Synthesize speech for text.

    Args:
        text: Text to speak (at most 4096 characters)
        voice: Voice name (default: "alloy")

    Returns:
        Dictionary containing:
        - audio_base64: mp3 audio, base64-encoded
        - mime_type: "audio/mpeg"
        - voice: The voice used
    """
    with ToolCallLogger(logger, "text_to_speech", voice=voice, chars=len(text or "")) as log:
        text_result = validate_non_empty_string(text, "text", max_length=MAX_SPEECH_CHARS)
        if not text_result.valid:
            result = text_result.to_error_response(audio_base64=None)
            log.set_result(result)
            return result

        voice_result = validate_choice(voice, "voice", SUPPORTED_VOICES)
        if not voice_result.valid:
            result = voice_result.to_error_response(audio_base64=None)
            log.set_result(result)
            return result

        try:
            audio = await synthesize_speech(text_result.value, voice_result.value)
        except Exception as e:
            logger.error(f"Speech synthesis failed: {type(e).__name__}: {e}")
            result = handle_error(e, {"voice": voice_result.value})
            result["audio_base64"] = None
            log.set_result(result)
            return result

        result = {
            "audio_base64": base64.b64encode(audio).decode("ascii"),
            "mime_type": SPEECH_MIME_TYPE,
            "voice": voice_result.value,
        }
        log.set_result(result)
        return result
