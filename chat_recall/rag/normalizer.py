"""
Message normalizer for uploaded chat exports.

Exports come in many shapes. Each raw record is matched against an ordered
list of (predicate, extractor) pairs; the first predicate that accepts the
record decides how it's read. Whole documents are handled the same way:
known container shapes are tried in priority order before falling back to a
recursive walk that recovers message-shaped items from arbitrary nesting.

Supported message shapes:
    Structured:  {"creator": {"name", "email", "user_type"}, "text",
                  "created_date", "topic_id", "message_id"}
    Best-effort: any dict with a content-like field (content, message, text, ...)
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from .dates import parse_chat_date
from .models import CanonicalMessage

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("content", "message", "text", "body", "msg")
PARTICIPANT_FIELDS = ("participant", "sender", "author", "from", "user", "name", "username")
TIMESTAMP_FIELDS = ("timestamp", "date", "time", "created_at", "sent_at", "datetime")

# Stripped from uploads before processing; never read
STRIPPED_FIELD = "annotations"


class MalformedExportError(ValueError):
    """Raised when an upload is not JSON or holds no extractable messages."""
    pass


def _first_truthy(record: Dict[str, Any], fields: Tuple[str, ...]) -> Any:
    for key in fields:
        value = record.get(key)
        if value:
            return value
    return None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value else None


# === Message shapes ===

def _is_structured(record: Dict[str, Any]) -> bool:
    return bool(
        isinstance(record.get("creator"), dict)
        and record.get("text")
        and record.get("topic_id")
        and record.get("message_id")
    )


def _extract_structured(record: Dict[str, Any]) -> Optional[CanonicalMessage]:
    creator = record["creator"]
    return CanonicalMessage(
        content=str(record["text"]),
        timestamp=parse_chat_date(record.get("created_date")),
        participant=str(creator.get("name") or "Unknown"),
        participant_email=_optional_str(creator.get("email")),
        participant_type=str(creator.get("user_type") or "Human"),
        topic_id=str(record["topic_id"]),
        message_id=str(record["message_id"]),
    )


def _content_text(value: Any) -> Optional[str]:
    # Non-empty strings and numbers only
    if isinstance(value, bool) or not isinstance(value, (str, int, float)) or not value:
        return None
    return str(value)


def _has_content_field(record: Dict[str, Any]) -> bool:
    return any(_content_text(record.get(key)) for key in CONTENT_FIELDS)


def _participant_name(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("name") or value.get("username")
    return str(value) if value else "Unknown"


def _extract_best_effort(record: Dict[str, Any]) -> Optional[CanonicalMessage]:
    content = next(
        _content_text(record[key]) for key in CONTENT_FIELDS
        if _content_text(record.get(key))
    )
    return CanonicalMessage(
        content=content,
        timestamp=parse_chat_date(_first_truthy(record, TIMESTAMP_FIELDS)),
        participant=_participant_name(_first_truthy(record, PARTICIPANT_FIELDS)),
        topic_id=_optional_str(record.get("topic_id")),
        message_id=_optional_str(record.get("message_id")),
    )


MESSAGE_SHAPES: List[Tuple[Callable[[Dict[str, Any]], bool], Callable[[Dict[str, Any]], Optional[CanonicalMessage]]]] = [
    (_is_structured, _extract_structured),
    (_has_content_field, _extract_best_effort),
]


def normalize_message(record: Any) -> Optional[CanonicalMessage]:
    """
    Convert one raw record into a CanonicalMessage.

    Args:
        record: A decoded JSON value of unknown shape

    Returns:
        CanonicalMessage, or None if the record isn't message-shaped
    """
    if not isinstance(record, dict):
        return None

    for matches, extract in MESSAGE_SHAPES:
        if matches(record):
            return extract(record)
    return None


# === Document shapes ===

def strip_annotations(data: Any) -> None:
    """Remove every "annotations" key at any depth (in place)."""
    if isinstance(data, list):
        for item in data:
            strip_annotations(item)
    elif isinstance(data, dict):
        data.pop(STRIPPED_FIELD, None)
        for value in data.values():
            strip_annotations(value)


def _normalize_all(items: List[Any]) -> List[CanonicalMessage]:
    messages = []
    for item in items:
        message = normalize_message(item)
        if message:
            messages.append(message)
    return messages


def _walk_nested(data: Any, messages: List[CanonicalMessage]) -> List[CanonicalMessage]:
    """Recover message-shaped list items from arbitrarily nested containers."""
    if isinstance(data, list):
        for item in data:
            message = normalize_message(item)
            if message:
                messages.append(message)
            elif isinstance(item, (dict, list)):
                _walk_nested(item, messages)
    elif isinstance(data, dict):
        for value in data.values():
            if isinstance(value, (dict, list)):
                _walk_nested(value, messages)
    return messages


def _has_message_list(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("messages"), list)


def _has_conversations(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("conversations"), list)


def _from_message_list(data: Dict[str, Any]) -> List[CanonicalMessage]:
    return _normalize_all(data["messages"])


def _from_bare_list(data: List[Any]) -> List[CanonicalMessage]:
    return _normalize_all(data)


def _from_conversations(data: Dict[str, Any]) -> List[CanonicalMessage]:
    messages = []
    for conversation in data["conversations"]:
        if _has_message_list(conversation):
            messages.extend(_normalize_all(conversation["messages"]))
    return messages


DOCUMENT_SHAPES = [
    (_has_message_list, _from_message_list),
    (lambda data: isinstance(data, list), _from_bare_list),
    (_has_conversations, _from_conversations),
]


def extract_messages(data: Any) -> List[CanonicalMessage]:
    """
    Extract every message from a decoded export document.

    Known shapes are tried in order ({"messages": [...]}, a bare list,
    {"conversations": [{"messages": [...]}]}); anything else is walked
    recursively. Whitespace-only messages are dropped.
    """
    for matches, extract in DOCUMENT_SHAPES:
        if matches(data):
            messages = extract(data)
            break
    else:
        messages = _walk_nested(data, [])

    return [m for m in messages if m.content and m.content.strip()]


def load_export(payload: Any) -> List[CanonicalMessage]:
    """
    Decode, clean and extract an uploaded export.

    Args:
        payload: Raw JSON text/bytes, or an already-decoded document

    Returns:
        Non-empty list of CanonicalMessages

    Raises:
        MalformedExportError: Invalid JSON, or no messages found
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedExportError(f"Invalid JSON file: {e}") from e
    else:
        data = payload

    strip_annotations(data)
    messages = extract_messages(data)

    if not messages:
        raise MalformedExportError("No messages found in the file")

    logger.info(f"Extracted {len(messages)} messages from export")
    return messages
