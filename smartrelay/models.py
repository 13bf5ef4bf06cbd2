"""Shared Pydantic data models for the smart-reply relay."""

from __future__ import annotations

import secrets
import string
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# --- Enums ---


class TransactionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.IN_PROGRESS


class ReplySource(str, Enum):
    UPSTREAM_SERVICE = "upstream_service"
    SERVER_FALLBACK = "server_fallback"
    VALIDATION_ERROR = "validation_error"


# --- Reply Models ---


class ReplyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    source: ReplySource


# --- Transaction Log Models ---

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _new_transaction_id() -> str:
    # Short and human-readable; collisions only affect log readability
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Author(BaseModel):
    model_config = ConfigDict(frozen=True)

    phone: str
    name: str | None = None


class TransactionLogEntry(BaseModel):
    """One webhook request's lifecycle, mutated in place until finalized."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    id: str = Field(default_factory=_new_transaction_id)
    timestamp: str = Field(default_factory=_now_iso)
    status: TransactionStatus = TransactionStatus.IN_PROGRESS
    author: Author
    request_message: str
    reply_message: str | None = None
    error_detail: str | None = None

    def finalize(self) -> None:
        """Mark an entry still in progress as completed."""
        if self.status is TransactionStatus.IN_PROGRESS:
            self.status = TransactionStatus.COMPLETED


class StatusReport(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    server_status: str = "Actif"
    recent_transactions: list[TransactionLogEntry]
