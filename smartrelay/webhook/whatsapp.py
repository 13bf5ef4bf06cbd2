"""WhatsApp Business Cloud API integration.

Handles the Meta verification challenge, extracts messages (including
button and list selections) from the native webhook envelope, and delivers
replies out-of-band through the Graph API send-message endpoint.
"""

from __future__ import annotations

import hmac
import logging
from typing import Any

import httpx

from smartrelay.webhook.models import NativeMessage

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_API_VERSION = "v19.0"
_GRAPH_API_HOST = "https://graph.facebook.com"
_SEND_TIMEOUT_SECONDS = 15.0


class WhatsAppSendError(Exception):
    """Raised when the Graph API refuses or never receives an outbound message."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class WhatsAppRelay:
    """Handles WhatsApp Business API webhook notifications."""

    def __init__(
        self,
        verify_token: str | None = None,
        phone_number_id: str | None = None,
        access_token: str | None = None,
        api_version: str = DEFAULT_GRAPH_API_VERSION,
    ) -> None:
        self._verify_token = verify_token
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._api_version = api_version

    @property
    def verification_enabled(self) -> bool:
        return bool(self._verify_token)

    @property
    def can_send(self) -> bool:
        return bool(self._phone_number_id and self._access_token)

    @property
    def messages_url(self) -> str:
        return f"{_GRAPH_API_HOST}/{self._api_version}/{self._phone_number_id}/messages"

    def handle_verification(self, params: dict[str, str]) -> dict[str, Any]:
        """Answer the Meta webhook verification challenge (GET).

        The verify token is a static shared secret; comparison is
        constant-time but the scheme itself is only as strong as the secret.
        """
        mode = params.get("hub.mode")
        token = params.get("hub.verify_token", "")
        if (
            self._verify_token
            and mode == "subscribe"
            and hmac.compare_digest(token.encode(), self._verify_token.encode())
        ):
            logger.info("Webhook verified")
            return {
                "status_code": 200,
                "content": params.get("hub.challenge", ""),
            }
        logger.warning("Webhook verification rejected (mode=%s)", mode)
        return {"status_code": 403, "error": "Invalid verify token"}

    def extract_messages(self, payload: dict[str, Any]) -> list[NativeMessage]:
        """Extract actionable messages from a Cloud API notification.

        Status updates (delivered, read, ...) and media messages are ignored.
        Malformed items are skipped one by one; well-formed siblings are kept.
        """
        messages: list[NativeMessage] = []
        for entry in _dicts(_as_dict(payload).get("entry")):
            for change in _dicts(entry.get("changes")):
                value = _as_dict(change.get("value"))
                names = {
                    str(contact.get("wa_id")): _as_dict(contact.get("profile")).get("name")
                    for contact in _dicts(value.get("contacts"))
                }
                for msg in _dicts(value.get("messages")):
                    keyword = _keyword_for(msg)
                    sender = str(msg.get("from") or "")
                    if not keyword or not sender:
                        continue
                    name = names.get(sender)
                    messages.append(NativeMessage(
                        sender_phone=sender,
                        keyword=keyword,
                        message_type=str(msg.get("type", "")),
                        message_id=str(msg.get("id", "")),
                        sender_name=name if isinstance(name, str) else None,
                    ))
        return messages

    def build_text_message(self, recipient_phone: str, text: str) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient_phone,
            "type": "text",
            "text": {"body": text},
        }

    def build_interactive_message(
        self, recipient_phone: str, interactive: dict[str, Any],
    ) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient_phone,
            "type": "interactive",
            "interactive": interactive,
        }

    async def send_message(self, message: dict[str, Any]) -> None:
        """Send a message through the Graph API. Single attempt, no retry."""
        if not self.can_send:
            raise WhatsAppSendError("WhatsApp sending is not configured")

        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    self.messages_url,
                    json=message,
                    headers=headers,
                    timeout=_SEND_TIMEOUT_SECONDS,
                )
        except httpx.HTTPError as exc:
            raise WhatsAppSendError(f"WhatsApp API unreachable: {exc}") from exc

        if resp.status_code >= 400:
            raise WhatsAppSendError(
                f"WhatsApp API rejected message: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        logger.debug("Message sent to %s (%s)", message.get("to"), message.get("type"))


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _keyword_for(msg: dict[str, Any]) -> str:
    msg_type = msg.get("type")
    if msg_type == "interactive":
        interactive = _as_dict(msg.get("interactive"))
        selection = (
            _as_dict(interactive.get("button_reply"))
            or _as_dict(interactive.get("list_reply"))
        )
        return _clean(selection.get("id"))
    if msg_type == "button":
        button = _as_dict(msg.get("button"))
        return _clean(button.get("payload") or button.get("text"))
    if msg_type == "text":
        return _clean(_as_dict(msg.get("text")).get("body"))
    return ""


def _clean(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()
