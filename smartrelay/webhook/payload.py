"""Inbound payload shape detection and parsing."""

from __future__ import annotations

from typing import Any

from smartrelay.webhook.models import InboundMessage, IntegrationMode


class InvalidPayloadError(Exception):
    """Raised when required inbound fields are absent or blank."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required fields: {missing}")


def resolve_mode(payload: Any) -> IntegrationMode:
    """Pick the integration mode from the payload shape.

    Anything that is not a native ``entry`` envelope is treated as the
    third-party relay shape so that validation can report what is missing.
    """
    if isinstance(payload, dict) and isinstance(payload.get("entry"), list):
        return IntegrationMode.NATIVE_INTERACTIVE
    return IntegrationMode.THIRD_PARTY_RELAY


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value).strip()


def parse_relay_payload(payload: Any) -> InboundMessage:
    """Parse a ``{phone, message, sender}`` body into an InboundMessage."""
    if not isinstance(payload, dict):
        raise InvalidPayloadError(["phone", "message"])

    phone = _as_text(payload.get("phone"))
    message = payload.get("message")
    text = message if isinstance(message, str) else _as_text(message)

    missing = []
    if not phone:
        missing.append("phone")
    if not text.strip():
        missing.append("message")
    if missing:
        raise InvalidPayloadError(missing)

    sender = _as_text(payload.get("sender")) or None
    return InboundMessage(sender_phone=phone, message_text=text, sender_name=sender)
