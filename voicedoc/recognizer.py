"""Recognizer adapters and the per-recording session handle.

Both native recognizers (the in-browser result-batch API and the on-device
partial/final callback API) are turned into the same typed event stream, so
the transcript accumulator never sees a platform-specific shape.  Only
finalized segments ever become permanent; partial text is always re-sent as a
trailing non-final result and replaced on the next event.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Protocol

from voicedoc.errors import (
    AUDIO_CAPTURE_MESSAGE,
    MIC_PERMISSION_MESSAGE,
    NETWORK_MESSAGE,
    NO_SPEECH_MESSAGE,
    RECOGNITION_FAILED_MESSAGE,
    RECORDING_START_MESSAGE,
    MicrophonePermissionError,
    RecognitionError,
    RecordingInProgressError,
)
from voicedoc.transcript import (
    EndEvent,
    ErrorEvent,
    RecognitionEvent,
    RecognitionResult,
    ResultEvent,
    StartEvent,
    TranscriptAccumulator,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "ko-KR"

EventSink = Callable[[RecognitionEvent], None]


class RecognizerBackend(Protocol):
    def start(self, locale: str, sink: EventSink) -> None: ...

    def stop(self) -> None: ...


def error_event_from_reason(reason: str, detail: str = "") -> ErrorEvent:
    """Map a native error code/message to an event carrying a user-facing message."""
    code = (reason or "").strip()
    low = f"{code} {detail}".casefold()
    if "not-allowed" in low or "not_allowed" in low or "permission" in low or code == "9":
        message = MIC_PERMISSION_MESSAGE
    elif "no-speech" in low or "no_match" in low or "no match" in low or code in ("6", "7"):
        message = NO_SPEECH_MESSAGE
    elif "network" in low or code in ("1", "2"):
        message = NETWORK_MESSAGE
    elif "audio-capture" in low or "audio_capture" in low or code == "3":
        message = AUDIO_CAPTURE_MESSAGE
    else:
        message = RECOGNITION_FAILED_MESSAGE + (detail or code or "unknown")
    return ErrorEvent(reason=code or "unknown", message=message)


# ============================================
# BROWSER (result batches)
# ============================================

class BrowserSpeechAdapter:
    """
    Adapts in-browser speech-recognition events.

    Native events arrive as dicts: ``{"type": "start" | "result" | "error" | "end"}``.
    Result events carry the whole batch under ``results``; each item is either
    ``{"transcript": str, "isFinal": bool}`` or ``{"isFinal": bool, "alternatives":
    [{"transcript": str}, ...]}`` (first alternative wins).
    """

    def __init__(self, sink: EventSink) -> None:
        self._sink = sink

    @staticmethod
    def _result_from_native(item: Any) -> RecognitionResult:
        if not isinstance(item, Mapping):
            return RecognitionResult(text=str(item or ""), is_final=False)
        text = item.get("transcript")
        if text is None:
            alternatives = item.get("alternatives") or []
            first = alternatives[0] if alternatives else {}
            text = first.get("transcript", "") if isinstance(first, Mapping) else ""
        return RecognitionResult(text=str(text or ""), is_final=bool(item.get("isFinal", False)))

    def handle(self, native: Mapping[str, Any]) -> None:
        kind = str(native.get("type") or "").strip().lower()
        if kind == "start":
            self._sink(StartEvent())
        elif kind == "result":
            raw = native.get("results") or []
            self._sink(ResultEvent(results=tuple(self._result_from_native(r) for r in raw)))
        elif kind == "error":
            self._sink(error_event_from_reason(str(native.get("error") or ""), str(native.get("message") or "")))
        elif kind == "end":
            self._sink(EndEvent())
        else:
            logger.debug("Ignoring browser speech event of type %r", kind)


# ============================================
# ON-DEVICE (partial/final callbacks)
# ============================================

class PlatformVoiceAdapter:
    """
    Adapts the on-device voice API, which reports each utterance as a stream of
    partial hypotheses followed by one final one.

    Finalized utterances are kept for the session and re-emitted as a batch with the
    current partial as its trailing non-final result.
    """

    def __init__(self, sink: EventSink) -> None:
        self._sink = sink
        self._finals: list[str] = []

    @staticmethod
    def _best(payload: Mapping[str, Any] | None) -> str:
        values = (payload or {}).get("value") or []
        return str(values[0] or "") if values else ""

    def _batch(self, partial: str = "") -> tuple[RecognitionResult, ...]:
        items = [RecognitionResult(text=t, is_final=True) for t in self._finals]
        if partial:
            items.append(RecognitionResult(text=partial, is_final=False))
        return tuple(items)

    def on_speech_start(self, payload: Mapping[str, Any] | None = None) -> None:
        # Finals are kept until speech_end; a batch never shrinks within a session.
        self._sink(StartEvent())

    def on_speech_partial_results(self, payload: Mapping[str, Any] | None) -> None:
        self._sink(ResultEvent(results=self._batch(self._best(payload))))

    def on_speech_results(self, payload: Mapping[str, Any] | None) -> None:
        text = self._best(payload).strip()
        if text:
            self._finals.append(text)
        self._sink(ResultEvent(results=self._batch()))

    def on_speech_error(self, payload: Mapping[str, Any] | None) -> None:
        err = (payload or {}).get("error") or {}
        if isinstance(err, Mapping):
            code, detail = str(err.get("code") or ""), str(err.get("message") or "")
        else:
            code, detail = "", str(err)
        self._sink(error_event_from_reason(code, detail))

    def on_speech_end(self, payload: Mapping[str, Any] | None = None) -> None:
        self._finals = []
        self._sink(EndEvent())


# ============================================
# SESSION HANDLE / CONTROLLER
# ============================================

class RecognizerSession:
    """Handle for one recording interval; created by start, released on the end event."""

    def __init__(self, backend: RecognizerBackend, locale: str, on_release: Callable[["RecognizerSession"], None]) -> None:
        self.backend = backend
        self.locale = locale
        self.session_id: Optional[int] = None
        self.released = False
        self._on_release = on_release

    def stop(self) -> None:
        if self.released:
            return
        try:
            self.backend.stop()
        except Exception:
            logger.exception("Recognizer stop failed")

    def _release(self) -> None:
        if self.released:
            return
        self.released = True
        self._on_release(self)


class RecordingController:
    def __init__(
        self,
        backend: RecognizerBackend,
        accumulator: TranscriptAccumulator,
        *,
        permission_probe: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._backend = backend
        self._accumulator = accumulator
        self._permission_probe = permission_probe
        self._session: Optional[RecognizerSession] = None

    @property
    def accumulator(self) -> TranscriptAccumulator:
        return self._accumulator

    @property
    def session(self) -> Optional[RecognizerSession]:
        return self._session

    def start(self, locale: str = DEFAULT_LOCALE) -> RecognizerSession:
        if self._session is not None or self._accumulator.is_listening:
            raise RecordingInProgressError()

        if self._permission_probe is not None:
            try:
                granted = bool(self._permission_probe())
            except Exception:
                logger.exception("Microphone permission probe failed")
                granted = False
            if not granted:
                raise MicrophonePermissionError()

        session = RecognizerSession(self._backend, locale, on_release=self._release)
        self._session = session
        try:
            self._backend.start(locale, self._sink_for(session))
        except Exception as exc:
            self._session = None
            session.released = True
            raise RecognitionError(RECORDING_START_MESSAGE + str(exc)) from exc
        return session

    def stop(self, session: Optional[RecognizerSession] = None) -> None:
        target = session or self._session
        if target is not None:
            target.stop()

    def _sink_for(self, session: RecognizerSession) -> EventSink:
        def _sink(event: RecognitionEvent) -> None:
            if session.released:
                logger.debug("Dropping %s for released recognizer session", type(event).__name__)
                return
            try:
                self._accumulator.dispatch(event)
            except Exception:
                logger.exception("Transcript update failed")
            if isinstance(event, StartEvent) and session.session_id is None:
                session.session_id = self._accumulator.active_session_id
            elif isinstance(event, EndEvent):
                session._release()

        return _sink

    def _release(self, session: RecognizerSession) -> None:
        if self._session is session:
            self._session = None
