"""Voice answer capture.

Wraps a host speech recognizer in a bounded, single-utterance capture flow:

    IDLE --start_recording--> RECORDING --end/stop/timeout--> IDLE
                                  |
                                  +--too short / error--> ERROR

A final transcript sets ``is_processing`` for a short settle delay so the
answer does not flicker while the user confirms it. Failures never raise;
they land on ``failure`` and ``error``.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from voice_review.errors import (
    NetworkError, NoMicrophone, NoSpeechDetected, RecognitionDenied, RecordingTooShort,
    ServiceDisallowed, UnsupportedCapability, VoiceCaptureError,
)
from voice_review.models import VoiceConfig

logger = logging.getLogger(__name__)

SETTLE_DELAY_MS = 500

ERROR_CODES = {
    "no-speech": NoSpeechDetected,
    "audio-capture": NoMicrophone,
    "not-allowed": RecognitionDenied,
    "network": NetworkError,
    "service-not-allowed": ServiceDisallowed,
}


class CaptureState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    ERROR = "error"


@dataclass
class RecognitionResult:
    transcript: str
    confidence: float = 1.0
    is_final: bool = False


class Recognizer(ABC):
    """Host speech-recognition capability, treated as a black box.

    Implementations report back through the ``on_*`` callbacks, which the
    capture flow assigns before calling ``start``.
    """

    def __init__(self):
        self.continuous = False
        self.interim_results = True
        self.lang = "en-US"
        self.max_alternatives = 1
        self.on_result: Optional[Callable[[RecognitionResult], None]] = None
        self.on_end: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self.on_start: Optional[Callable[[], None]] = None

    def emit(self, event: str, *args) -> None:
        handler = getattr(self, f"on_{event}")
        if handler is not None:
            handler(*args)

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        """Finish listening; the recognizer fires ``on_end`` when done."""

    @abstractmethod
    def abort(self) -> None:
        pass


class ThreadingScheduler:
    """Runs callbacks after a delay on daemon timer threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class VoiceCapture:
    def __init__(
        self,
        recognizer_factory: Optional[Callable[[], Recognizer]],
        config: VoiceConfig | None = None,
        scheduler=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.recognizer_factory = recognizer_factory
        self.config = config or VoiceConfig()
        self.scheduler = scheduler or ThreadingScheduler()
        self.clock = clock

        self.state = CaptureState.IDLE
        self.transcript = ""
        self.confidence: Optional[float] = None
        self.is_recording = False
        self.is_processing = False
        self.failure: Optional[VoiceCaptureError] = None

        self._recognizer: Optional[Recognizer] = None
        self._started_at = 0.0
        self._max_timer = None
        self._settle_timer = None
        self._lock = threading.RLock()

    @property
    def is_supported(self) -> bool:
        return self.recognizer_factory is not None

    @property
    def error(self) -> Optional[str]:
        return str(self.failure) if self.failure else None

    def __enter__(self) -> "VoiceCapture":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def start_recording(self) -> bool:
        """Begin a capture. Returns False if it could not start."""
        with self._lock:
            if not self.is_supported:
                self._fail(UnsupportedCapability())
                return False

            self._release(abort=True)
            self.failure = None

            try:
                recognizer = self.recognizer_factory()
                recognizer.continuous = self.config.continuous
                recognizer.interim_results = self.config.interim_results
                recognizer.lang = self.config.language
                recognizer.max_alternatives = 1
                recognizer.on_result = lambda result: self._handle_result(recognizer, result)
                recognizer.on_end = lambda: self._handle_end(recognizer)
                recognizer.on_error = lambda code: self._handle_error(recognizer, code)
                recognizer.on_start = lambda: self._handle_start(recognizer)

                self._recognizer = recognizer
                self._started_at = self.clock()
                self.is_recording = True
                self.state = CaptureState.RECORDING
                self._max_timer = self.scheduler.call_later(
                    self.config.max_duration_ms / 1000,
                    lambda: self._handle_timeout(recognizer),
                )
                logger.debug("Recording started (%s)", self.config.language)
                recognizer.start()
            except Exception:
                logger.exception("Speech recognition failed to start")
                self._release(abort=False)
                self._fail(VoiceCaptureError("Failed to start speech recognition"))
                return False
            return True

    def stop_recording(self) -> None:
        with self._lock:
            if self._recognizer is None:
                return
            self._cancel_max_timer()
            self._stop_recognizer(self._recognizer)

    def reset_transcript(self) -> None:
        with self._lock:
            self.transcript = ""
            self.confidence = None

    def close(self) -> None:
        """Release the recognizer and every pending timer."""
        with self._lock:
            self._release(abort=True)
            if self.state == CaptureState.RECORDING:
                self.state = CaptureState.IDLE

    def _handle_start(self, recognizer: Recognizer) -> None:
        with self._lock:
            if recognizer is not self._recognizer:
                return
            self._started_at = self.clock()

    def _handle_result(self, recognizer: Recognizer, result: RecognitionResult) -> None:
        with self._lock:
            if recognizer is not self._recognizer:
                return
            self.transcript = result.transcript
            self.confidence = result.confidence
            if result.is_final:
                self.is_processing = True
                self._cancel_settle_timer()
                self._settle_timer = self.scheduler.call_later(SETTLE_DELAY_MS / 1000, self._settle)

    def _settle(self) -> None:
        with self._lock:
            self._settle_timer = None
            self.is_processing = False

    def _handle_timeout(self, recognizer: Recognizer) -> None:
        with self._lock:
            if recognizer is not self._recognizer:
                return
            self._max_timer = None
            logger.debug("Recording hit %d ms limit, stopping", self.config.max_duration_ms)
            self._stop_recognizer(recognizer)

    def _handle_end(self, recognizer: Recognizer) -> None:
        with self._lock:
            if recognizer is not self._recognizer:
                return
            duration_ms = (self.clock() - self._started_at) * 1000
            self._release(abort=False)
            if duration_ms < self.config.min_duration_ms:
                self._fail(RecordingTooShort())
            else:
                self.state = CaptureState.IDLE
                logger.debug("Recording finished after %.0f ms", duration_ms)

    def _handle_error(self, recognizer: Recognizer, code: str) -> None:
        with self._lock:
            if recognizer is not self._recognizer:
                return
            self._release(abort=False)
            if code == "aborted":
                self.state = CaptureState.IDLE
                logger.debug("Recording aborted")
                return
            error_cls = ERROR_CODES.get(code)
            self._fail(error_cls() if error_cls else VoiceCaptureError(f"Error: {code}"))

    def _stop_recognizer(self, recognizer: Recognizer) -> None:
        try:
            recognizer.stop()
        except Exception:
            logger.exception("Speech recognition failed to stop")
            self._release(abort=False)
            self._fail(VoiceCaptureError("Failed to stop speech recognition"))

    def _fail(self, failure: VoiceCaptureError) -> None:
        self.failure = failure
        self.is_recording = False
        self.state = CaptureState.ERROR
        logger.warning("Voice capture failed: %s", failure)

    def _cancel_max_timer(self) -> None:
        if self._max_timer is not None:
            self._max_timer.cancel()
            self._max_timer = None

    def _cancel_settle_timer(self) -> None:
        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None

    def _release(self, abort: bool) -> None:
        self._cancel_max_timer()
        self._cancel_settle_timer()
        self.is_processing = False
        recognizer, self._recognizer = self._recognizer, None
        if recognizer is not None:
            recognizer.on_result = None
            recognizer.on_end = None
            recognizer.on_error = None
            recognizer.on_start = None
            if abort:
                try:
                    recognizer.abort()
                except Exception:
                    logger.exception("Speech recognition failed to abort")
        self.is_recording = False
