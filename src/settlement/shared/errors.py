"""Error taxonomy and operation results for the settlement services.

Public service operations never raise across their boundary: they return a
``Result`` whose ``error`` carries a ``kind`` and structured ``details`` the
register UI can act on without re-querying. Internal helpers raise
``protean.exceptions.ValidationError`` for rule violations and
``PaymentError`` for instrument failures; the services translate both.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    PAYMENT_ERROR = "PAYMENT_ERROR"


@dataclass(frozen=True)
class SettlementError:
    """A typed failure returned by a settlement operation."""

    kind: ErrorKind
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": {key: _plain(value) for key, value in self.details.items()},
        }


def _plain(value):
    # Decimal amounts leave as two-decimal strings
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class Result:
    """Discriminated success/failure outcome of a settlement operation."""

    success: bool
    value: Any = None
    error: SettlementError | None = None

    @classmethod
    def ok(cls, value: Any = None) -> "Result":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, **details) -> "Result":
        return cls(success=False, error=SettlementError(kind=kind, message=message, details=details))

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None


class PaymentError(Exception):
    """An instrument-level failure (declined card, unknown gift card, limit exceeded)."""

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class PaymentPendingError(PaymentError):
    """The instrument accepted the request but has not captured funds yet.

    Raised when a card terminal leaves an intent in flight. The payment is
    recorded as pending with its intent reference so it can be cancelled.
    """

    def __init__(self, message: str, intent_id: str, **details) -> None:
        super().__init__(message, intent_id=intent_id, **details)
        self.intent_id = intent_id


def validation_messages(exc) -> str:
    """Flatten a protean ValidationError's message dict into one line."""
    messages = getattr(exc, "messages", None)
    if isinstance(messages, dict):
        parts = []
        for key, values in messages.items():
            if isinstance(values, (list, tuple)):
                parts.extend(str(v) for v in values)
            else:
                parts.append(f"{key}: {values}")
        if parts:
            return "; ".join(parts)
    return str(exc)
