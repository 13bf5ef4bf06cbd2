"""Environment-driven configuration for the relay server."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from smartrelay.txlog.buffer import DEFAULT_CAPACITY
from smartrelay.webhook.downstream import DEFAULT_TIMEOUT_SECONDS
from smartrelay.webhook.relay import (
    AGENT_HANDOFF_REPLY,
    ERROR_REPLY,
    FALLBACK_SENTINEL,
    FallbackPolicy,
)
from smartrelay.webhook.whatsapp import DEFAULT_GRAPH_API_VERSION

DEFAULT_DASHBOARD_PATH = str(Path(__file__).parent / "server" / "static" / "dashboard.html")

_TRUTHY = {"1", "true", "yes", "on"}


class RelaySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    app_script_url: str = ""
    port: int = Field(default=3000, ge=1, le=65535)
    verify_token: str | None = None
    phone_number_id: str | None = None
    access_token: str | None = None
    graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    script_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    log_buffer_enabled: bool = True
    log_buffer_size: int = Field(default=DEFAULT_CAPACITY, ge=1)
    dashboard_path: str = DEFAULT_DASHBOARD_PATH
    fallback_sentinel: str = FALLBACK_SENTINEL
    agent_handoff_reply: str = AGENT_HANDOFF_REPLY
    error_reply: str = ERROR_REPLY
    log_level: str = "INFO"

    @property
    def interactive_enabled(self) -> bool:
        return bool(self.phone_number_id and self.access_token)

    def fallback_policy(self) -> FallbackPolicy:
        return FallbackPolicy(
            error_reply=self.error_reply,
            agent_handoff_reply=self.agent_handoff_reply,
            fallback_sentinel=self.fallback_sentinel,
        )


def load_settings(
    environ: Mapping[str, str] | None = None,
    dotenv_path: str | None = None,
) -> RelaySettings:
    """Build settings from environment variables.

    When reading the real process environment, a ``.env`` file is loaded
    first; variables already set take precedence.
    """
    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    def get(name: str) -> str | None:
        value = environ.get(name)
        return value.strip() if value and value.strip() else None

    values: dict[str, object] = {
        "app_script_url": get("APP_SCRIPT_URL") or "",
        "verify_token": get("WEBHOOK_VERIFY_TOKEN"),
        "phone_number_id": get("WHATSAPP_PHONE_NUMBER_ID"),
        "access_token": get("WHATSAPP_ACCESS_TOKEN"),
    }
    optional = {
        "port": "PORT",
        "graph_api_version": "GRAPH_API_VERSION",
        "script_timeout_seconds": "SCRIPT_TIMEOUT_SECONDS",
        "log_buffer_size": "LOG_BUFFER_SIZE",
        "dashboard_path": "DASHBOARD_PATH",
        "fallback_sentinel": "FALLBACK_SENTINEL",
        "agent_handoff_reply": "AGENT_HANDOFF_REPLY",
        "error_reply": "ERROR_REPLY",
        "log_level": "LOG_LEVEL",
    }
    for field_name, env_name in optional.items():
        value = get(env_name)
        if value is not None:
            values[field_name] = value

    enabled = get("LOG_BUFFER_ENABLED")
    if enabled is not None:
        values["log_buffer_enabled"] = enabled.lower() in _TRUTHY

    return RelaySettings.model_validate(values)
