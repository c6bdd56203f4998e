"""
Logging configuration for the parknav MCP Server.

All output goes to stderr: with the stdio transport, stdout carries the
MCP message stream. Every module logger is a child of the "parknav"
logger, which owns the single handler.

Usage:
    from parknav.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Saved features", extra={"count": 12, "skipped": 3})
"""

import logging
import os
import sys
import time
from functools import lru_cache
from typing import Any

ROOT_LOGGER = "parknav"

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class ParknavFormatter(logging.Formatter):
    """
    "<time> - <logger> - <level> - <message> | key=value ..."

    Extra fields are appended in the order they were passed. None values
    are left out so optional context (status_code, skipped) stays quiet.
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None
        ]
        if fields:
            message = f"{message} | {' '.join(fields)}"
        return message


def summarize_result(result: Any) -> dict[str, Any]:
    """
    Reduce a tool result to the fields worth logging.

    Error dicts keep their code and, for upstream failures, the HTTP
    status. Successful results keep their counts; payloads (transcripts,
    audio, GeoJSON) are reduced to their size.
    """
    if not isinstance(result, dict):
        return {"result": type(result).__name__}

    if "error" in result:
        details = result.get("details") or {}
        return {
            "code": result.get("code"),
            "status_code": details.get("status_code", result.get("status_code")),
            "error": result["error"],
        }

    summary = {key: result[key] for key in ("count", "skipped") if key in result}
    if isinstance(result.get("text"), str):
        summary["text_chars"] = len(result["text"])
    if isinstance(result.get("audio_base64"), str):
        summary["audio_bytes"] = len(result["audio_base64"]) * 3 // 4
    if "status" in result:
        summary["status"] = result["status"]
    return summary


class ToolCallLogger:
    """
    Logs one tool call: its arguments, elapsed time and outcome.

    Tools return error dicts instead of raising, so an error result is
    logged as a warning with its code. An exception escaping the block is
    logged with a traceback and re-raised.

    Usage:
        with ToolCallLogger(logger, "fetch_overpass_data", radius=radius) as log:
            result = {...}
            log.set_result(result)
            return result
    """

    def __init__(self, logger: logging.Logger, tool_name: str, **params: Any):
        self.logger = logger
        self.tool_name = tool_name
        self.params = params
        self.result: Any = None
        self._started = 0.0

    def __enter__(self) -> "ToolCallLogger":
        self._started = time.perf_counter()
        self.logger.info(
            f"{self.tool_name} started",
            extra={"tool": self.tool_name, **self.params},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        extra = {
            "tool": self.tool_name,
            "elapsed_ms": round((time.perf_counter() - self._started) * 1000, 1),
        }

        if exc_val is not None:
            self.logger.error(
                f"{self.tool_name} raised {exc_type.__name__}: {exc_val}",
                extra=extra,
                exc_info=True,
            )
            return False

        summary = summarize_result(self.result)
        if "error" in summary:
            self.logger.warning(f"{self.tool_name} failed", extra={**extra, **summary})
        else:
            self.logger.info(f"{self.tool_name} completed", extra={**extra, **summary})
        return False

    def set_result(self, result: Any) -> None:
        self.result = result


def get_log_level() -> int:
    """Level from LOG_LEVEL (any stdlib level name, WARN included); INFO otherwise."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


@lru_cache(maxsize=None)
def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(get_log_level())

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ParknavFormatter())
    root.addHandler(handler)
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the "parknav" hierarchy.

    Names outside the package (e.g. "__main__") are nested under it so
    they share the stderr handler.
    """
    _configure_root()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
