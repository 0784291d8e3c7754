"""Microphone transcript source backed by the SpeechRecognition package.

A daemon thread owns the microphone: it listens for one phrase at a time,
recognises it and enqueues ``TranscriptEvent`` values. ``poll()`` drains the
queue on the main loop, so every handler (and therefore every round
mutation) runs on one thread.

A new session never starts while the previous listener thread is still
alive, since both would enter the same microphone context.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable

import speech_recognition as sr

from .input_source import TranscriptEvent, TranscriptEventKind

logger = logging.getLogger(__name__)


class SpeechRecognitionSource:
    _phrase_time_limit_s = 3.0
    _listen_timeout_s = 1.0
    _calibration_s = 0.5
    _join_timeout_s = 0.05

    def __init__(
        self,
        *,
        language: str = "ja-JP",
        recognizer: sr.Recognizer | None = None,
        microphone_factory: Callable[[], sr.AudioSource] | None = None,
    ) -> None:
        self._language = language
        if recognizer is None:
            recognizer = sr.Recognizer()
            # Short pauses end a phrase; answers are a few digits long.
            recognizer.pause_threshold = 0.3
            recognizer.non_speaking_duration = 0.2
            recognizer.dynamic_energy_threshold = True
        self._recognizer = recognizer
        self._microphone_factory = microphone_factory if microphone_factory is not None else sr.Microphone

        self._microphone: sr.AudioSource | None = None
        self._calibrated = False
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._handler: Callable[[TranscriptEvent], None] | None = None
        self._queue: queue.Queue[TranscriptEvent] = queue.Queue(maxsize=64)
        self._lock = threading.Lock()
        self._session = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def on_event(self, handler: Callable[[TranscriptEvent], None]) -> None:
        self._handler = handler

    def start(self) -> None:
        if self.running and not self._stop_event.is_set():
            return
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=self._join_timeout_s)
            if self._thread.is_alive():
                # Still inside the microphone; the owner retries after END.
                logger.debug("voice: previous listener still closing")
                self._dispatch(TranscriptEvent(TranscriptEventKind.END))
                return
        self._thread = None

        try:
            if self._microphone is None:
                self._microphone = self._microphone_factory()
            if not self._calibrated:
                with self._microphone as source:
                    self._recognizer.adjust_for_ambient_noise(source, duration=self._calibration_s)
                self._calibrated = True
        except (OSError, AttributeError) as exc:
            # AttributeError: PyAudio is not installed.
            logger.warning("voice: microphone unavailable: %s", exc)
            self._dispatch(TranscriptEvent(TranscriptEventKind.ERROR, str(exc), fatal=True))
            return

        with self._lock:
            self._session += 1
            session = self._session
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._listen_loop,
            args=(session, self._stop_event),
            name="voice-listener",
            daemon=True,
        )
        self._thread.start()
        logger.info("voice: listener started (%s)", self._language)

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            self._session += 1
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break

    def poll(self) -> int:
        """Dispatch queued transcripts on the calling thread. Returns the count."""

        handled = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return handled
            if event.kind is TranscriptEventKind.END:
                self.stop()
            self._dispatch(event)
            handled += 1

    def _listen_loop(self, session: int, stop_event: threading.Event) -> None:
        # Runs on the listener thread.
        assert self._microphone is not None
        announced = False
        while not stop_event.is_set():
            try:
                with self._microphone as source:
                    if not announced:
                        self._enqueue(session, TranscriptEvent(TranscriptEventKind.START))
                        announced = True
                    audio = self._recognizer.listen(
                        source,
                        timeout=self._listen_timeout_s,
                        phrase_time_limit=self._phrase_time_limit_s,
                    )
            except sr.WaitTimeoutError:
                continue
            except OSError as exc:
                logger.warning("voice: microphone failed: %s", exc)
                self._enqueue(session, TranscriptEvent(TranscriptEventKind.ERROR, str(exc), fatal=True))
                return
            if stop_event.is_set():
                return

            try:
                text = self._recognizer.recognize_google(audio, language=self._language)
            except sr.UnknownValueError:
                continue
            except sr.RequestError as exc:
                logger.warning("voice: recognition request failed: %s", exc)
                self._enqueue(session, TranscriptEvent(TranscriptEventKind.ERROR, str(exc)))
                self._enqueue(session, TranscriptEvent(TranscriptEventKind.END))
                return
            if isinstance(text, str) and text.strip():
                self._enqueue(session, TranscriptEvent(TranscriptEventKind.TEXT, text.strip()))

    def _enqueue(self, session: int, event: TranscriptEvent) -> None:
        with self._lock:
            if session != self._session:
                return
            try:
                self._queue.put_nowait(event)
            except queue.Full:
                logger.debug("voice: transcript queue full, dropping %s", event.kind.value)

    def _dispatch(self, event: TranscriptEvent) -> None:
        if self._handler is not None:
            self._handler(event)
