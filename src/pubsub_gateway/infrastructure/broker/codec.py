"""
Broker Message Codec

Converts BrokerMessage objects to and from the two Redis encodings:

- Pub/sub payloads: a single orjson document; attachments are base64 encoded
- Stream entries: flat field maps; attachments are stored as raw bytes

Author: System Architect
Date: 2025-12-13
"""

import base64
from typing import Any

import orjson

from pubsub_gateway.core.interfaces.transport import BrokerMessage

BODY_TEXT = "text"
BODY_BYTES = "bytes"
BODY_NONE = "none"


def _as_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _properties(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"Message properties must be an object, got {type(value).__name__}")
    return dict(value)


def _body_kind(message: BrokerMessage) -> str:
    if message.is_text:
        return BODY_TEXT
    if message.has_attachment:
        return BODY_BYTES
    return BODY_NONE


class MessageSerializer:
    """
    Serializes and deserializes broker messages.

    Header fields shared by both encodings:
    - message_type: application message type (TEXT_MESSAGE / FILE_MESSAGE)
    - app_message_id: application message id (APP-<ms> / FILE-<ms>)
    - sender_timestamp: milliseconds since the epoch
    - dmq_eligible: "1" or "0"
    - properties: orjson-encoded user properties
    - body_kind: text, bytes or none
    """

    @staticmethod
    def _headers(message: BrokerMessage) -> dict[str, Any]:
        return {
            "message_type": message.application_message_type or "",
            "app_message_id": message.application_message_id or "",
            "sender_timestamp": message.sender_timestamp if message.sender_timestamp is not None else "",
            "dmq_eligible": "1" if message.dmq_eligible else "0",
            "body_kind": _body_kind(message),
        }

    @staticmethod
    def _apply_headers(message: BrokerMessage, headers: dict[str, Any]) -> BrokerMessage:
        message.application_message_type = _as_str(headers.get("message_type", "")) or None
        message.application_message_id = _as_str(headers.get("app_message_id", "")) or None
        timestamp = _as_str(headers.get("sender_timestamp", ""))
        message.sender_timestamp = int(timestamp) if timestamp else None
        message.dmq_eligible = _as_str(headers.get("dmq_eligible", "0")) == "1"
        return message

    # =========================================================================
    # Pub/sub encoding
    # =========================================================================

    @classmethod
    def encode(cls, message: BrokerMessage) -> bytes:
        """Encode a message as one pub/sub payload."""
        document = cls._headers(message)
        document["properties"] = message.properties
        if message.is_text:
            document["body"] = message.text
        elif message.has_attachment:
            document["body"] = base64.b64encode(message.attachment).decode("ascii")
        return orjson.dumps(document)

    @classmethod
    def decode(cls, payload: bytes | str) -> BrokerMessage:
        """
        Decode a pub/sub payload.

        Raises:
            ValueError: If the payload is not a valid message document
        """
        document = orjson.loads(payload)
        if not isinstance(document, dict):
            raise ValueError("Message payload is not a JSON object")

        message = BrokerMessage(properties=_properties(document.get("properties")))
        body_kind = document.get("body_kind", BODY_NONE)
        body = document.get("body", "")
        if body_kind in (BODY_TEXT, BODY_BYTES) and not isinstance(body, str):
            raise ValueError(f"Message body must be a string, got {type(body).__name__}")
        if body_kind == BODY_TEXT:
            message.text = body
        elif body_kind == BODY_BYTES:
            message.attachment = base64.b64decode(body)
        return cls._apply_headers(message, document)

    # =========================================================================
    # Stream encoding
    # =========================================================================

    @classmethod
    def to_stream_fields(cls, message: BrokerMessage) -> dict[str, Any]:
        """Flatten a message into XADD fields."""
        fields = {k: str(v) for k, v in cls._headers(message).items()}
        fields["properties"] = orjson.dumps(message.properties)
        if message.is_text:
            fields["body"] = message.text.encode("utf-8")
        elif message.has_attachment:
            fields["body"] = message.attachment
        return fields

    @classmethod
    def from_stream_fields(cls, fields: dict[Any, Any]) -> BrokerMessage:
        """
        Rebuild a message from an XREADGROUP entry.

        Raises:
            ValueError: If the entry carries malformed properties or body
        """
        normalized = {_as_str(k): v for k, v in fields.items()}
        properties = orjson.loads(normalized["properties"]) if normalized.get("properties") else None

        message = BrokerMessage(properties=_properties(properties))
        body_kind = _as_str(normalized.get("body_kind", BODY_NONE))
        body = normalized.get("body", b"")
        if not isinstance(body, (bytes, str)):
            raise ValueError(f"Stream body must be bytes or a string, got {type(body).__name__}")
        if body_kind == BODY_TEXT:
            message.text = _as_str(body)
        elif body_kind == BODY_BYTES:
            message.attachment = body if isinstance(body, bytes) else str(body).encode("utf-8")
        return cls._apply_headers(message, normalized)
