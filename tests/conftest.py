"""Shared test fixtures for the smart-reply relay."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from smartrelay.config import RelaySettings
from smartrelay.models import Author, TransactionLogEntry, TransactionStatus
from smartrelay.txlog.buffer import TransactionLog
from smartrelay.webhook.downstream import ScriptReply
from smartrelay.webhook.models import InboundMessage, NativeMessage

SCRIPT_URL = "https://script.google.com/macros/s/TEST/exec"


@pytest.fixture
def transaction_log() -> TransactionLog:
    return TransactionLog()


def install_async_client(mock_client_cls: MagicMock) -> AsyncMock:
    """Wire a patched ``httpx.AsyncClient`` class to return one async-context client."""
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client_cls.return_value = mock_client
    return mock_client


def make_http_response(
    status_code: int = 200, json_body: Any = None, text: str = "",
) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    if json_body is None:
        resp.json.side_effect = ValueError("No JSON")
    else:
        resp.json.return_value = json_body
    resp.text = text
    return resp


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> RelaySettings:
    defaults: dict[str, Any] = {"app_script_url": SCRIPT_URL}
    defaults.update(kwargs)
    return RelaySettings(**defaults)


def make_inbound_message(**kwargs: Any) -> InboundMessage:
    defaults: dict[str, Any] = {
        "sender_phone": "15551234567",
        "message_text": "hello",
        "sender_name": "Alice",
    }
    defaults.update(kwargs)
    return InboundMessage(**defaults)


def make_native_message(**kwargs: Any) -> NativeMessage:
    defaults: dict[str, Any] = {
        "sender_phone": "15551234567",
        "keyword": "MENU_PRICES",
        "message_type": "interactive",
        "message_id": "wamid.1",
        "sender_name": "Alice",
    }
    defaults.update(kwargs)
    return NativeMessage(**defaults)


def make_script_reply(**kwargs: Any) -> ScriptReply:
    defaults: dict[str, Any] = {"status": "success", "reply": "Hi Alice!"}
    defaults.update(kwargs)
    return ScriptReply(**defaults)


def make_log_entry(**kwargs: Any) -> TransactionLogEntry:
    defaults: dict[str, Any] = {
        "author": Author(phone="15551234567", name="Alice"),
        "request_message": "hello",
        "status": TransactionStatus.COMPLETED,
    }
    defaults.update(kwargs)
    return TransactionLogEntry(**defaults)


def make_relay_payload(**kwargs: Any) -> dict[str, Any]:
    defaults: dict[str, Any] = {
        "phone": "15551234567",
        "message": "hello",
        "sender": "Alice",
    }
    defaults.update(kwargs)
    return defaults


def make_native_payload(
    messages: list[Any] | None = None,
    contacts: list[Any] | None = None,
) -> dict[str, Any]:
    if messages is None:
        messages = [
            {
                "from": "15551234567",
                "id": "wamid.1",
                "timestamp": "1700000000",
                "type": "interactive",
                "interactive": {
                    "type": "button_reply",
                    "button_reply": {"id": "MENU_PRICES", "title": "Tarifs"},
                },
            }
        ]
    if contacts is None:
        contacts = [{"wa_id": "15551234567", "profile": {"name": "Alice"}}]
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "BUSINESS_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"phone_number_id": "PHONE_ID"},
                            "contacts": contacts,
                            "messages": messages,
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }
