"""Data models for the webhook relay pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class IntegrationMode(str, Enum):
    """How the gateway delivered the message, resolved from payload shape."""

    THIRD_PARTY_RELAY = "third_party_relay"  # { phone, message, sender }
    NATIVE_INTERACTIVE = "native_interactive"  # entry/changes/messages envelope


@dataclass(frozen=True)
class InboundMessage:
    """Normalized inbound message, alive for one request only."""

    sender_phone: str
    message_text: str
    sender_name: str | None = None


@dataclass(frozen=True)
class NativeMessage:
    """Message extracted from a WhatsApp Business Cloud API notification.

    ``keyword`` is what gets looked up downstream: the selected option id for
    button/list replies, the body for plain text.
    """

    sender_phone: str
    keyword: str
    message_type: str
    message_id: str = ""
    sender_name: str | None = None
