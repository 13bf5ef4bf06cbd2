"""HTTP client for the downstream smart-reply script.

The script is an opaque web app (typically Google Apps Script) with two
entry points:

- ``POST <url>`` with ``{from, message, senderName}`` for free-text replies
- ``GET <url>?action=findReply&keyword=..&from=..`` for keyed replies used
  by the button/list integration mode

Both answer ``{status, reply, ...}``. Transport and protocol failures are
mapped onto the ``DownstreamError`` hierarchy; no retries are attempted.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from smartrelay.webhook.models import InboundMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 25.0
_MAX_ERROR_BODY = 500


class DownstreamError(Exception):
    """Base class for failures talking to the reply script."""


class DownstreamTimeoutError(DownstreamError):
    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Reply script timed out after {timeout:g}s")


class DownstreamConnectionError(DownstreamError):
    """The script could not be reached at all."""


class DownstreamProtocolError(DownstreamError):
    """The script answered, but not with a usable JSON object."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        detail = message
        if status_code is not None:
            detail = f"{detail} (HTTP {status_code})"
        if body:
            detail = f"{detail}: {body}"
        super().__init__(detail)


@dataclass(frozen=True)
class ScriptReply:
    """Decoded answer from the reply script."""

    status: str
    reply: str | None
    reply_type: str = "text"
    interactive: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class ReplyScriptClient:
    """Calls the downstream script with a bounded wait."""

    def __init__(
        self,
        script_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._script_url = script_url
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def generate_reply(self, message: InboundMessage) -> ScriptReply:
        """Ask the script for a smart reply to a free-text message."""
        body = {
            "from": message.sender_phone,
            "message": message.message_text,
            "senderName": message.sender_name,
        }
        return await self._call("POST", json=body)

    async def find_reply(self, keyword: str, sender_phone: str) -> ScriptReply:
        """Look up the reply keyed by a button/list identifier or keyword."""
        params = {"action": "findReply", "keyword": keyword, "from": sender_phone}
        return await self._call("GET", params=params)

    async def _call(self, method: str, **kwargs: Any) -> ScriptReply:
        # Apps Script web apps answer through a redirect to googleusercontent.
        # httpx timeouts apply per phase and per hop; the overall budget is
        # enforced by asyncio.timeout.
        try:
            async with asyncio.timeout(self._timeout):
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    resp = await client.request(
                        method, self._script_url, timeout=self._timeout, **kwargs,
                    )
        except (httpx.TimeoutException, TimeoutError) as exc:
            raise DownstreamTimeoutError(self._timeout) from exc
        except httpx.HTTPError as exc:
            raise DownstreamConnectionError(
                f"Reply script unreachable: {exc}",
            ) from exc

        if not 200 <= resp.status_code < 300:
            raise DownstreamProtocolError(
                "Reply script returned an error status",
                status_code=resp.status_code,
                body=resp.text[:_MAX_ERROR_BODY],
            )

        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise DownstreamProtocolError(
                "Reply script returned a non-JSON body",
                status_code=resp.status_code,
                body=resp.text[:_MAX_ERROR_BODY],
            ) from exc

        if not isinstance(data, dict):
            raise DownstreamProtocolError(
                "Reply script returned an unexpected payload",
                status_code=resp.status_code,
                body=json.dumps(data)[:_MAX_ERROR_BODY],
            )

        logger.debug("Reply script answered: %s", json.dumps(data, ensure_ascii=False))
        return _decode(data)


def _decode(data: dict[str, Any]) -> ScriptReply:
    reply = data.get("reply")
    interactive = data.get("interactive")
    return ScriptReply(
        status=str(data.get("status", "")),
        reply=reply if isinstance(reply, str) else None,
        reply_type=str(data.get("type") or "text"),
        interactive=interactive if isinstance(interactive, dict) else None,
        raw=data,
    )
