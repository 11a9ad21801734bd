"""Input validation helpers for function payloads."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional
from urllib.parse import urlparse

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_FILE_PATH_RE = re.compile(r"^[a-zA-Z0-9\-_/]+\.[a-zA-Z0-9]+$")
_BLOCKED_HOSTS = {"localhost", "127.0.0.1"}

SOURCE_TYPES = ("pdf", "text", "website", "youtube", "audio", "podcast")
MAX_MESSAGE_LENGTH = 50000
MAX_URLS = 50


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def is_valid_uuid(value: Any) -> bool:
    """True for UUID version 4 strings, in either case."""

    return isinstance(value, str) and _UUID_RE.match(value) is not None


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_http_url(value: Any) -> bool:
    """Like :func:`is_valid_url`, but refuses loopback hosts."""

    if not is_valid_url(value):
        return False
    return urlparse(value).hostname not in _BLOCKED_HOSTS


def sanitize_string(value: Any, max_length: int = 10000) -> str:
    if not value or not isinstance(value, str):
        return ""
    return value[:max_length].strip()


def is_valid_source_type(value: Any) -> bool:
    return value in SOURCE_TYPES


def is_valid_file_path(value: Any) -> bool:
    """Relative storage paths only: no traversal, no leading slash, no backslashes."""

    if not value or not isinstance(value, str):
        return False
    if ".." in value or value.startswith("/") or "\\" in value:
        return False
    return _FILE_PATH_RE.match(value) is not None


def is_valid_message_length(value: Any, max_length: int = MAX_MESSAGE_LENGTH) -> bool:
    return isinstance(value, str) and 0 < len(value) <= max_length


def _require_uuid(result: ValidationResult, data: Mapping[str, Any], key: str, *, optional: bool = False) -> None:
    value: Optional[Any] = data.get(key)
    if optional and not value:
        return
    if not is_valid_uuid(value):
        suffix = " if provided" if optional else ""
        result.errors.append(f"Invalid {key}: must be a valid UUID{suffix}")


def validate_chat_message(data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    _require_uuid(result, data, "session_id")
    _require_uuid(result, data, "user_id")
    if not is_valid_message_length(data.get("message")):
        result.errors.append(
            f"Invalid message: must be a non-empty string under {MAX_MESSAGE_LENGTH} characters"
        )
    return result


def validate_document_processing(data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    _require_uuid(result, data, "sourceId")
    _require_uuid(result, data, "userId")
    if not is_valid_file_path(data.get("filePath")):
        result.errors.append("Invalid filePath: must be a valid file path without directory traversal")
    if not is_valid_source_type(data.get("sourceType")):
        result.errors.append(f"Invalid sourceType: must be one of: {', '.join(SOURCE_TYPES)}")
    _require_uuid(result, data, "notebookId", optional=True)
    return result


def validate_audio_overview(data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    _require_uuid(result, data, "notebook_id")
    _require_uuid(result, data, "user_id")
    return result


def validate_url_list(urls: Any) -> ValidationResult:
    result = ValidationResult()
    if not isinstance(urls, list):
        result.errors.append("urls must be an array")
        return result
    if not urls:
        result.errors.append("urls array cannot be empty")
    if len(urls) > MAX_URLS:
        result.errors.append(f"urls array cannot contain more than {MAX_URLS} items")
    for index, url in enumerate(urls):
        if not is_valid_http_url(url):
            result.errors.append(f"Invalid URL at index {index}: {url}")
    return result


__all__ = [
    "SOURCE_TYPES",
    "ValidationResult",
    "is_valid_file_path",
    "is_valid_http_url",
    "is_valid_message_length",
    "is_valid_source_type",
    "is_valid_url",
    "is_valid_uuid",
    "sanitize_string",
    "validate_audio_overview",
    "validate_chat_message",
    "validate_document_processing",
    "validate_url_list",
]
