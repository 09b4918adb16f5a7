"""Client-side document workflow: generate through the proxy, edit, send by SMS."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from voicedoc.errors import (
    GENERATE_ERROR_PREFIX,
    NO_TRANSCRIPT_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    UpstreamError,
    ValidationError,
    VoiceDocError,
)
from voicedoc.generation import DEFAULT_DOCUMENT_TYPE
from voicedoc.sms import SmsAdapter, SmsOutcome, UnavailableSmsAdapter, send_document

logger = logging.getLogger(__name__)


class GenerationApiClient:
    def __init__(self, base_url: str, *, timeout_s: float = 90.0, session: requests.Session | None = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_s = timeout_s
        self._http = session or requests.Session()

    def generate(self, text: str, document_type: str = DEFAULT_DOCUMENT_TYPE) -> str:
        url = f"{self.base_url}/api/generate"
        try:
            r = self._http.post(url, json={"text": text, "documentType": document_type}, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise UpstreamError(str(exc)) from exc

        try:
            data = r.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if r.status_code == 400:
            raise ValidationError(str(data.get("error") or UNKNOWN_ERROR_MESSAGE))
        if r.status_code != 200 or "content" not in data:
            raise UpstreamError(str(data.get("error") or f"HTTP {r.status_code}"))
        return str(data.get("content") or "")


class DocumentComposer:
    """
    Holds the generated document, the user's edited copy and the last error message.

    Every action reports failure through ``error`` instead of raising, and returns
    whether it succeeded.
    """

    def __init__(self, api_client: GenerationApiClient, sms_adapter: Optional[SmsAdapter] = None):
        self._api = api_client
        self._sms = sms_adapter or UnavailableSmsAdapter()
        self.document_type = DEFAULT_DOCUMENT_TYPE
        self.generated_document = ""
        self.edited_document = ""
        self.is_generating = False
        self.error = ""
        self.last_sms_outcome: Optional[SmsOutcome] = None

    def generate(self, transcript: str) -> bool:
        if not (transcript or "").strip():
            self.error = NO_TRANSCRIPT_MESSAGE
            return False

        self.is_generating = True
        self.error = ""
        try:
            text = self._api.generate(transcript, self.document_type or DEFAULT_DOCUMENT_TYPE)
        except VoiceDocError as e:
            logger.error("Document generation failed: %s", e.message)
            self.error = GENERATE_ERROR_PREFIX + e.message
            self.generated_document = ""
            self.edited_document = ""
            return False
        finally:
            self.is_generating = False

        self.generated_document = text
        self.edited_document = text
        return True

    def edit(self, text: str) -> None:
        self.edited_document = text or ""

    def send_sms(self, phone_number: str) -> bool:
        self.error = ""
        try:
            self.last_sms_outcome = send_document(self._sms, phone_number, self.edited_document)
        except VoiceDocError as e:
            logger.warning("SMS not sent: %s", e.message)
            self.error = e.message
            return False
        return True
