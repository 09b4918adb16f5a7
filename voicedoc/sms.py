"""SMS delivery through a platform adapter."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol, Union

from voicedoc.errors import (
    NO_DOCUMENT_MESSAGE,
    NO_PHONE_MESSAGE,
    SMS_ERROR_PREFIX,
    SMS_UNAVAILABLE_MESSAGE,
    DeliveryError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class SmsOutcome(str, Enum):
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SmsAdapter(Protocol):
    def is_available(self) -> bool: ...

    def send(self, phone_number: str, body: str) -> Union[SmsOutcome, str]: ...


class UnavailableSmsAdapter:
    """Stand-in for hosts with no SMS transport."""

    def is_available(self) -> bool:
        return False

    def send(self, phone_number: str, body: str) -> SmsOutcome:
        return SmsOutcome.FAILED


def _coerce_outcome(value: object) -> SmsOutcome:
    try:
        return SmsOutcome(str(getattr(value, "value", value) or "").strip().lower())
    except ValueError:
        return SmsOutcome.FAILED


def send_document(adapter: SmsAdapter, phone_number: str, body: str) -> SmsOutcome:
    if not (body or "").strip():
        raise ValidationError(NO_DOCUMENT_MESSAGE)
    if not (phone_number or "").strip():
        raise ValidationError(NO_PHONE_MESSAGE)

    try:
        available = bool(adapter.is_available())
    except Exception as exc:
        raise DeliveryError(SMS_ERROR_PREFIX + str(exc)) from exc
    if not available:
        raise DeliveryError(SMS_UNAVAILABLE_MESSAGE)

    try:
        outcome = _coerce_outcome(adapter.send(phone_number.strip(), body))
    except Exception as exc:
        raise DeliveryError(SMS_ERROR_PREFIX + str(exc)) from exc

    if outcome == SmsOutcome.FAILED:
        raise DeliveryError(SMS_ERROR_PREFIX + SmsOutcome.FAILED.value)
    logger.info("SMS result: %s", outcome.value)
    return outcome
