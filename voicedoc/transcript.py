from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)


# ============================================
# DATA MODELS
# ============================================

@dataclass(frozen=True)
class RecognitionResult:
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class StartEvent:
    pass


@dataclass(frozen=True)
class ResultEvent:
    results: tuple[RecognitionResult, ...] = ()


@dataclass(frozen=True)
class ErrorEvent:
    reason: str = ""
    message: str = ""


@dataclass(frozen=True)
class EndEvent:
    pass


RecognitionEvent = Union[StartEvent, ResultEvent, ErrorEvent, EndEvent]


@dataclass
class RecordingSession:
    id: int
    created_at: str
    text: str = ""
    ended_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "created_at": self.created_at,
            "ended_at": self.ended_at,
        }


@dataclass(frozen=True)
class TranscriptState:
    finalized_text: str = ""
    last_consumed_result_index: int = 0
    display_text: str = ""


def _join_nonempty(parts: Iterable[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip()).strip()


def consume_results(state: TranscriptState, results: Sequence[RecognitionResult]) -> TranscriptState:
    """
    Fold one recognizer batch into the transcript state.

    Recognizers redeliver the whole batch on every event, so only results at or past
    the cursor are looked at. The cursor moves over the contiguous run of final
    results starting at it; the first non-final result and everything after it is
    shown as the interim fragment and never stored.
    """
    finalized = state.finalized_text
    cursor = state.last_consumed_result_index

    while cursor < len(results) and results[cursor].is_final:
        fragment = (results[cursor].text or "").strip()
        if fragment:
            finalized = f"{finalized} {fragment}" if finalized else fragment
        cursor += 1

    interim = _join_nonempty(r.text for r in results[cursor:])

    return TranscriptState(
        finalized_text=finalized,
        last_consumed_result_index=cursor,
        display_text=_join_nonempty((finalized, interim)),
    )


# ============================================
# ACCUMULATOR
# ============================================

TranscriptCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]


class TranscriptAccumulator:
    """
    Session-scoped transcript state machine (Idle <-> Listening) plus session history.

    Events are applied under a lock; history entries are replaced by session id so a
    host that delivers callbacks from several threads still sees one writer at a time.
    """

    def __init__(
        self,
        *,
        on_transcript: Optional[TranscriptCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._clock = clock

        self._lock = threading.RLock()
        self._state = TranscriptState()
        self._history: List[RecordingSession] = []
        self._active_session_id: Optional[int] = None
        self._last_session_id = 0
        self._degraded = False
        self.error_message = ""

    @property
    def is_listening(self) -> bool:
        return self._active_session_id is not None

    @property
    def state(self) -> TranscriptState:
        return self._state

    @property
    def display_text(self) -> str:
        return self._state.display_text

    @property
    def active_session_id(self) -> Optional[int]:
        return self._active_session_id

    @property
    def history(self) -> List[RecordingSession]:
        with self._lock:
            return [replace(s) for s in self._history]

    def dispatch(self, event: RecognitionEvent) -> bool:
        """Apply one event. Returns False when the event was ignored in the current state."""
        with self._lock:
            if isinstance(event, StartEvent):
                return self._start()
            if isinstance(event, ResultEvent):
                return self._apply_results(event.results)
            if isinstance(event, ErrorEvent):
                return self._fail(event)
            if isinstance(event, EndEvent):
                return self._end()
        logger.warning("Unknown recognition event ignored: %r", event)
        return False

    def _next_session_id(self) -> int:
        sid = int(self._clock() * 1000)
        if sid <= self._last_session_id:
            sid = self._last_session_id + 1
        self._last_session_id = sid
        return sid

    def _start(self) -> bool:
        if self._active_session_id is not None:
            logger.warning("Start ignored: session %s is still listening", self._active_session_id)
            return False

        session = RecordingSession(id=self._next_session_id(), created_at=datetime.now().isoformat())
        self._state = TranscriptState()
        self._degraded = False
        self.error_message = ""
        self._history.append(session)
        self._active_session_id = session.id
        logger.debug("Recording session %s started", session.id)
        return True

    def _apply_results(self, results: Sequence[RecognitionResult]) -> bool:
        if self._active_session_id is None or self._degraded:
            return False

        self._state = consume_results(self._state, tuple(results))
        text = self._state.display_text
        for session in self._history:
            if session.id == self._active_session_id:
                session.text = text
                break

        if self._on_transcript:
            self._on_transcript(text)
        return True

    def _fail(self, event: ErrorEvent) -> bool:
        self.error_message = event.message or event.reason
        if self._active_session_id is not None:
            self._degraded = True
        logger.warning("Recognition error (%s): %s", event.reason or "-", self.error_message)
        if self._on_error:
            self._on_error(self.error_message)
        return True

    def _end(self) -> bool:
        if self._active_session_id is None:
            return False
        ended_at = datetime.now().isoformat()
        for session in self._history:
            if session.id == self._active_session_id:
                session.ended_at = ended_at
                break
        logger.debug("Recording session %s ended", self._active_session_id)
        self._active_session_id = None
        self._degraded = False
        return True
