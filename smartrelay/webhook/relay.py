"""Webhook relay handler.

Turns one inbound gateway notification into one reply:

1. Parse and validate the inbound payload
2. Ask the downstream reply script for a smart reply (bounded wait)
3. Apply the fallback policy to whatever came back
4. Record the transaction in the in-memory log

The gateway disables its webhook on non-success responses, so nothing in
here raises to the caller: every failure becomes a textual reply.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from smartrelay.models import (
    Author,
    ReplyResult,
    ReplySource,
    TransactionLogEntry,
    TransactionStatus,
)
from smartrelay.webhook.downstream import (
    DownstreamError,
    DownstreamTimeoutError,
    ScriptReply,
)
from smartrelay.webhook.payload import InvalidPayloadError, parse_relay_payload
from smartrelay.webhook.whatsapp import WhatsAppSendError

if TYPE_CHECKING:
    from smartrelay.txlog.buffer import TransactionLog
    from smartrelay.webhook.downstream import ReplyScriptClient
    from smartrelay.webhook.models import NativeMessage
    from smartrelay.webhook.whatsapp import WhatsAppRelay

logger = logging.getLogger(__name__)

VALIDATION_REPLY = 'ERREUR: Requête invalide, "phone" ou "message" manquant.'
ERROR_REPLY = "Une erreur interne est survenue."
AGENT_HANDOFF_REPLY = (
    "Votre demande a bien été transmise, un conseiller va vous répondre "
    "dans les plus brefs délais."
)
FALLBACK_SENTINEL = "Désolé, je n'ai pas compris votre demande."
# The gateway treats an empty or null reply as a delivery error
PLACEHOLDER_REPLY = "."


@dataclass(frozen=True)
class FallbackPolicy:
    """Replies substituted when the script cannot be used verbatim."""

    validation_reply: str = VALIDATION_REPLY
    error_reply: str = ERROR_REPLY
    agent_handoff_reply: str = AGENT_HANDOFF_REPLY
    fallback_sentinel: str = FALLBACK_SENTINEL
    placeholder_reply: str = PLACEHOLDER_REPLY

    def error_result(self) -> ReplyResult:
        return ReplyResult(text=self.error_reply, source=ReplySource.SERVER_FALLBACK)

    def classify(self, reply: ScriptReply) -> tuple[ReplyResult, str | None]:
        """Map a script answer to the reply to send, plus an optional error detail."""
        if not reply.succeeded:
            return self._placeholder(), f"Reply script status was {reply.status!r}"

        text = reply.reply
        if text is None or not text.strip():
            return self._placeholder(), "Reply script returned an empty reply"

        if text == self.fallback_sentinel:
            return ReplyResult(
                text=self.agent_handoff_reply, source=ReplySource.SERVER_FALLBACK,
            ), None

        return ReplyResult(text=text, source=ReplySource.UPSTREAM_SERVICE), None

    def _placeholder(self) -> ReplyResult:
        return ReplyResult(
            text=self.placeholder_reply or PLACEHOLDER_REPLY,
            source=ReplySource.SERVER_FALLBACK,
        )


def _describe(exc: DownstreamError) -> str:
    if isinstance(exc, DownstreamTimeoutError):
        return f"Timeout: {exc}"
    return str(exc)


def _raw_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


class SmartReplyRelay:
    """Relays gateway messages to the reply script and back."""

    def __init__(
        self,
        script_client: ReplyScriptClient,
        policy: FallbackPolicy | None = None,
        transaction_log: TransactionLog | None = None,
        whatsapp: WhatsAppRelay | None = None,
    ) -> None:
        self._client = script_client
        self._policy = policy or FallbackPolicy()
        self._log = transaction_log
        self._whatsapp = whatsapp

    @property
    def interactive_enabled(self) -> bool:
        return self._whatsapp is not None and self._whatsapp.can_send

    async def relay(self, payload: Any) -> ReplyResult:
        """Handle a third-party relay payload (``{phone, message, sender}``)."""
        raw = payload if isinstance(payload, dict) else {}
        entry = TransactionLogEntry(
            author=Author(
                phone=_raw_text(raw.get("phone")),
                name=_raw_text(raw.get("sender")) or None,
            ),
            request_message=_raw_text(raw.get("message")),
        )
        logger.info("[%s] Transaction started", entry.id)

        result = self._policy.error_result()
        try:
            result = await self._process(payload, entry)
        except asyncio.CancelledError:
            entry.status = TransactionStatus.ERRORED
            entry.error_detail = "Request cancelled"
            raise
        except Exception as exc:
            logger.exception("[%s] Unexpected error while relaying", entry.id)
            entry.status = TransactionStatus.ERRORED
            entry.error_detail = f"Unexpected error: {exc}"
            result = self._policy.error_result()
        finally:
            entry.reply_message = result.text
            self._record(entry)

        logger.info("[%s] Replying to gateway: %r", entry.id, result.text)
        return result

    async def _process(self, payload: Any, entry: TransactionLogEntry) -> ReplyResult:
        try:
            message = parse_relay_payload(payload)
        except InvalidPayloadError as exc:
            logger.error("[%s] Invalid request, missing %s", entry.id, exc.missing)
            entry.status = TransactionStatus.FAILED
            entry.error_detail = f"Missing field(s): {', '.join(exc.missing)}"
            return ReplyResult(
                text=self._policy.validation_reply,
                source=ReplySource.VALIDATION_ERROR,
            )

        logger.info(
            "[%s] Message from %s (%s): %r",
            entry.id, message.sender_name or "Unknown", message.sender_phone,
            message.message_text,
        )

        try:
            script_reply = await self._client.generate_reply(message)
        except DownstreamError as exc:
            logger.error("[%s] Reply script call failed: %s", entry.id, exc)
            entry.status = TransactionStatus.ERRORED
            entry.error_detail = _describe(exc)
            return self._policy.error_result()

        result, detail = self._policy.classify(script_reply)
        if detail:
            logger.warning("[%s] %s, using fallback reply", entry.id, detail)
            entry.error_detail = detail
        return result

    async def relay_notification(self, payload: dict[str, Any]) -> int:
        """Handle a native Cloud API notification; returns messages handled.

        Replies go out through the send-message endpoint, not the HTTP
        response, so this is meant to run after the gateway was acknowledged.
        """
        if self._whatsapp is None or not self.interactive_enabled:
            logger.warning("Native notification received but WhatsApp sending is disabled")
            return 0

        messages = self._whatsapp.extract_messages(payload)
        if not messages:
            logger.info("Native notification carried no actionable message")
        for message in messages:
            await self.relay_native(message)
        return len(messages)

    async def relay_native(self, message: NativeMessage) -> None:
        """Look up the keyed reply for one native message and send it."""
        if self._whatsapp is None:
            raise RuntimeError("WhatsApp relay is not configured")

        whatsapp = self._whatsapp
        entry = TransactionLogEntry(
            author=Author(phone=message.sender_phone, name=message.sender_name),
            request_message=message.keyword,
        )
        logger.info(
            "[%s] %s message from %s: %r",
            entry.id, message.message_type, message.sender_phone, message.keyword,
        )

        try:
            outbound = await self._native_reply(whatsapp, message, entry)
            entry.reply_message = _summarize(outbound)
            await whatsapp.send_message(outbound)
        except WhatsAppSendError as exc:
            logger.error("[%s] Reply not delivered: %s", entry.id, exc)
            entry.status = TransactionStatus.ERRORED
            entry.error_detail = str(exc)
        except Exception as exc:
            logger.exception("[%s] Unexpected error while relaying", entry.id)
            entry.status = TransactionStatus.ERRORED
            entry.error_detail = f"Unexpected error: {exc}"
        finally:
            self._record(entry)

    async def _native_reply(
        self,
        whatsapp: WhatsAppRelay,
        message: NativeMessage,
        entry: TransactionLogEntry,
    ) -> dict[str, Any]:
        phone = message.sender_phone

        try:
            script_reply = await self._client.find_reply(message.keyword, phone)
        except DownstreamError as exc:
            logger.error("[%s] Keyed reply lookup failed: %s", entry.id, exc)
            entry.status = TransactionStatus.ERRORED
            entry.error_detail = _describe(exc)
            return whatsapp.build_text_message(phone, self._policy.error_reply)

        if (
            script_reply.succeeded
            and script_reply.reply_type == "interactive"
            and script_reply.interactive
        ):
            return whatsapp.build_interactive_message(phone, script_reply.interactive)

        result, detail = self._policy.classify(script_reply)
        if detail:
            logger.warning("[%s] %s, using fallback reply", entry.id, detail)
            entry.error_detail = detail
        return whatsapp.build_text_message(phone, result.text)

    def _record(self, entry: TransactionLogEntry) -> None:
        entry.finalize()
        logger.info("[%s] Transaction finished: %s", entry.id, entry.status.value)
        if self._log is not None:
            self._log.push(entry)


def _summarize(outbound: dict[str, Any]) -> str:
    if outbound.get("type") == "interactive":
        body = (outbound.get("interactive") or {}).get("body") or {}
        return body.get("text") or "[interactive]"
    return (outbound.get("text") or {}).get("body", "")
