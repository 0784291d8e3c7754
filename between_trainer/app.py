"""Pygame shell for the Between midpoint reflex game.

Screens only draw snapshots and translate key presses; every rule (timing,
judgment, scoring, high score) lives in the core modules and runs on the
shared ``Scheduler``, which the main loop pumps once per frame.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import pygame

from .clock import RealClock
from .high_score import HighScoreStore, JsonKeyValueStore
from .input_source import (
    AnswerEvent,
    EventKind,
    InputSource,
    KeypadBuffer,
    TranscriptSource,
    VoiceInputAdapter,
)
from .problems import Difficulty, ProblemGenerator
from .round_engine import (
    FeedbackKind,
    RoundConfig,
    RoundEngine,
    RoundEvent,
    RoundEventKind,
    RoundSnapshot,
    RoundStatus,
)
from .scheduler import Scheduler
from .settings import Settings, configure_logging
from .tones import SAMPLE_RATE, ToneBank

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

_DIGIT_KEYS: dict[int, str] = {getattr(pygame, f"K_{d}"): str(d) for d in range(10)}
_DIGIT_KEYS.update({getattr(pygame, f"K_KP{d}"): str(d) for d in range(10)})


class InputMode(str, Enum):
    KEYPAD = "KEYPAD"
    VOICE = "VOICE"


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: Callable[[], str]
    action: Callable[[], None]


@dataclass(slots=True)
class GameOptions:
    difficulty: Difficulty = Difficulty.NORMAL
    input_mode: InputMode = InputMode.KEYPAD
    sound: bool = True


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class GameSession:
    """Wires the round engine to its input and sound collaborators."""

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        engine: RoundEngine,
        tones: ToneBank,
        voice_source: TranscriptSource | None,
    ) -> None:
        self._scheduler = scheduler
        self._engine = engine
        self._tones = tones
        self._voice_source = voice_source
        self._input_mode = InputMode.KEYPAD

        self.keypad = KeypadBuffer(self._on_answer)
        self.voice: VoiceInputAdapter | None = None
        if voice_source is not None:
            self.voice = VoiceInputAdapter(voice_source, scheduler=scheduler, on_event=self._on_answer)
        self._engine.subscribe(self._on_round_event)

    @property
    def engine(self) -> RoundEngine:
        return self._engine

    @property
    def input_mode(self) -> InputMode:
        return self._input_mode

    @property
    def voice_available(self) -> bool:
        return self.voice is not None and self.voice.supported

    def start(self, options: GameOptions) -> None:
        self._input_mode = options.input_mode
        if self._input_mode is InputMode.VOICE and not self.voice_available:
            self._input_mode = InputMode.KEYPAD
        self._tones.set_enabled(options.sound)
        self.keypad.clear()
        self._engine.start(options.difficulty)

    def retry(self) -> None:
        self.keypad.clear()
        self._engine.start()

    def leave(self) -> None:
        self._engine.exit()
        if self.voice is not None:
            self.voice.disable()

    def update(self) -> None:
        poll = getattr(self._voice_source, "poll", None)
        if callable(poll):
            poll()
        self._scheduler.run_due()

    def shutdown(self) -> None:
        if self.voice is not None:
            self.voice.disable()
        self._engine.shutdown()
        self._scheduler.cancel_all()

    def _on_answer(self, event: AnswerEvent) -> None:
        # Typed digits only count in keypad mode; pass works in either mode.
        if (
            event.source is InputSource.KEYPAD
            and event.kind is EventKind.CANDIDATE
            and self._input_mode is not InputMode.KEYPAD
        ):
            return
        self._engine.handle_event(event)

    def _on_round_event(self, event: RoundEvent) -> None:
        if event.kind is RoundEventKind.STATUS:
            playing = event.value is RoundStatus.PLAYING
            if self.voice is not None:
                if playing and self._input_mode is InputMode.VOICE:
                    self.voice.enable()
                elif not playing:
                    self.voice.disable()
            if not playing:
                self.keypad.clear()
        elif event.kind is RoundEventKind.COUNTDOWN:
            self._tones.play("go" if event.value == 0 else "count")
        elif event.kind is RoundEventKind.FEEDBACK:
            kind = getattr(event.value, "kind", None)
            if kind is FeedbackKind.OK:
                self._tones.play("correct")
            elif kind is FeedbackKind.PASS:
                self._tones.play("pass")


_BG = (3, 9, 78)
_PANEL_BG = (8, 18, 104)
_BORDER = (226, 236, 255)
_TEXT_MAIN = (238, 245, 255)
_TEXT_MUTED = (186, 200, 224)
_ACTIVE_BG = (244, 248, 255)
_ACTIVE_TEXT = (14, 26, 74)
_OK = (90, 220, 130)
_NG = (240, 90, 90)
_PASS = (120, 170, 255)


def _frame_rect(surface: pygame.Surface) -> pygame.Rect:
    w, h = surface.get_size()
    margin = max(10, min(26, w // 34))
    return pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))


class HomeScreen:
    def __init__(self, app: App, *, session: GameSession, options: GameOptions) -> None:
        self._app = app
        self._session = session
        self._options = options
        self._selected = 0
        self._title_font = pygame.font.Font(None, 72)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)
        self._items = [
            MenuItem(lambda: "Start", self._start),
            MenuItem(lambda: f"Difficulty: {self._options.difficulty.value}", self._cycle_difficulty),
            MenuItem(lambda: f"Input: {self._options.input_mode.value}", self._toggle_input),
            MenuItem(lambda: f"Sound: {'ON' if self._options.sound else 'OFF'}", self._toggle_sound),
            MenuItem(lambda: "Quit", app.quit),
        ]

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_UP, pygame.K_w):
            self._selected = (self._selected - 1) % len(self._items)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._selected = (self._selected + 1) % len(self._items)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._items[self._selected].action()
        elif key == pygame.K_ESCAPE:
            self._app.quit()

    def _start(self) -> None:
        self._session.start(self._options)
        self._app.push(GameScreen(self._app, session=self._session))

    def _cycle_difficulty(self) -> None:
        tiers = list(Difficulty)
        self._options.difficulty = tiers[(tiers.index(self._options.difficulty) + 1) % len(tiers)]
        self._session.engine.set_difficulty(self._options.difficulty)

    def _toggle_input(self) -> None:
        if self._options.input_mode is InputMode.KEYPAD and self._session.voice_available:
            self._options.input_mode = InputMode.VOICE
        else:
            self._options.input_mode = InputMode.KEYPAD

    def _toggle_sound(self) -> None:
        self._options.sound = not self._options.sound

    def render(self, surface: pygame.Surface) -> None:
        self._session.update()
        surface.fill(_BG)
        frame = _frame_rect(surface)
        pygame.draw.rect(surface, _PANEL_BG, frame)
        pygame.draw.rect(surface, _BORDER, frame, 2)

        title = self._title_font.render("BETWEEN", True, _TEXT_MAIN)
        surface.blit(title, title.get_rect(midtop=(frame.centerx, frame.y + 24)))
        sub = self._hint_font.render("INSTANT REFLEX GAME  |  say the number halfway between", True, _TEXT_MUTED)
        surface.blit(sub, sub.get_rect(midtop=(frame.centerx, frame.y + 88)))
        best = self._item_font.render(f"High score: {self._session.engine.high_score}", True, _TEXT_MUTED)
        surface.blit(best, best.get_rect(midtop=(frame.centerx, frame.y + 118)))

        row_w = min(420, frame.w - 40)
        row_h = 40
        y = frame.y + 170
        for idx, item in enumerate(self._items):
            row = pygame.Rect(frame.centerx - row_w // 2, y, row_w, row_h)
            selected = idx == self._selected
            if selected:
                pygame.draw.rect(surface, _ACTIVE_BG, row)
            else:
                pygame.draw.rect(surface, (9, 20, 106), row)
                pygame.draw.rect(surface, (62, 84, 152), row, 1)
            text = self._item_font.render(item.label(), True, _ACTIVE_TEXT if selected else _TEXT_MAIN)
            surface.blit(text, text.get_rect(center=row.center))
            y += row_h + 8

        if not self._session.voice_available:
            note = self._hint_font.render("Voice input unavailable on this system", True, _TEXT_MUTED)
            surface.blit(note, note.get_rect(midbottom=(frame.centerx, frame.bottom - 34)))
        footer = "Up/Down: Move  |  Enter: Select  |  Esc: Quit"
        foot = self._hint_font.render(footer, True, _TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


class GameScreen:
    def __init__(self, app: App, *, session: GameSession) -> None:
        self._app = app
        self._session = session
        self._header_font = pygame.font.Font(None, 28)
        self._value_font = pygame.font.Font(None, 56)
        self._number_font = pygame.font.Font(None, 140)
        self._feedback_font = pygame.font.Font(None, 80)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        status = self._session.engine.status
        if event.key == pygame.K_ESCAPE:
            self._leave()
            return
        if status is RoundStatus.GAMEOVER:
            if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
                self._session.retry()
            return
        if status is not RoundStatus.PLAYING:
            return

        keypad = self._session.keypad
        if event.key in (pygame.K_SPACE, pygame.K_p, pygame.K_TAB):
            keypad.press_pass()
        elif self._session.input_mode is not InputMode.KEYPAD:
            return
        elif event.key in _DIGIT_KEYS:
            keypad.press_digit(_DIGIT_KEYS[event.key])
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            keypad.enter()
        elif event.key == pygame.K_BACKSPACE:
            keypad.delete()

    def _leave(self) -> None:
        self._session.leave()
        self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        self._session.update()
        snap = self._session.engine.snapshot()
        if snap.status is RoundStatus.IDLE:
            self._app.pop()
            return

        surface.fill(_BG)
        frame = _frame_rect(surface)
        pygame.draw.rect(surface, _PANEL_BG, frame)
        pygame.draw.rect(surface, _BORDER, frame, 2)

        if snap.status is RoundStatus.COUNTDOWN:
            label = "GO" if not snap.countdown else str(snap.countdown)
            text = self._number_font.render(label, True, _TEXT_MAIN)
            surface.blit(text, text.get_rect(center=frame.center))
        elif snap.status is RoundStatus.PLAYING:
            self._render_playing(surface, frame, snap)
        else:
            self._render_result(surface, frame, snap)

    def _render_playing(self, surface: pygame.Surface, frame: pygame.Rect, snap: RoundSnapshot) -> None:
        time_label = self._header_font.render("TIME", True, _TEXT_MUTED)
        surface.blit(time_label, (frame.x + 16, frame.y + 12))
        time_color = _NG if snap.time_left < 10 else _TEXT_MAIN
        time_value = self._value_font.render(str(snap.time_left), True, time_color)
        surface.blit(time_value, (frame.x + 16, frame.y + 36))

        score_label = self._header_font.render("SCORE", True, _TEXT_MUTED)
        surface.blit(score_label, score_label.get_rect(topright=(frame.right - 16, frame.y + 12)))
        score_value = self._value_font.render(str(snap.score), True, _TEXT_MAIN)
        surface.blit(score_value, score_value.get_rect(topright=(frame.right - 16, frame.y + 36)))

        pair = f"{snap.a}   ?   {snap.b}"
        numbers = self._number_font.render(pair, True, _TEXT_MAIN)
        if numbers.get_width() > int(frame.w * 0.9):
            numbers = self._value_font.render(pair, True, _TEXT_MAIN)
        surface.blit(numbers, numbers.get_rect(center=(frame.centerx, frame.y + int(frame.h * 0.4))))

        line_y = frame.y + int(frame.h * 0.68)
        if snap.feedback is not None:
            color = {FeedbackKind.OK: _OK, FeedbackKind.NG: _NG, FeedbackKind.PASS: _PASS}[snap.feedback.kind]
            text = self._feedback_font.render(snap.feedback.message, True, color)
        elif self._session.input_mode is InputMode.KEYPAD:
            text = self._feedback_font.render(self._session.keypad.text or "?", True, _TEXT_MAIN)
        else:
            voice = self._session.voice
            listening = voice is not None and voice.listening
            label = "LISTENING..." if listening else "PAUSED"
            text = self._value_font.render(label, True, _OK if listening else _TEXT_MUTED)
        surface.blit(text, text.get_rect(center=(frame.centerx, line_y)))

        if snap.locked:
            lock = self._header_font.render("LOCKED", True, _NG)
            surface.blit(lock, lock.get_rect(midtop=(frame.centerx, line_y + 44)))

        if self._session.input_mode is InputMode.KEYPAD:
            footer = "Digits + Enter: Answer  |  Backspace: Delete  |  Space: Pass  |  Esc: Abort"
        else:
            footer = 'Say the answer  |  say "pass" to skip  |  Space: Pass  |  Esc: Abort'
        foot = self._hint_font.render(footer, True, _TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))

    def _render_result(self, surface: pygame.Surface, frame: pygame.Rect, snap: RoundSnapshot) -> None:
        head = self._header_font.render("FINISHED", True, _TEXT_MUTED)
        surface.blit(head, head.get_rect(midtop=(frame.centerx, frame.y + 30)))
        score = self._number_font.render(str(snap.score), True, _TEXT_MAIN)
        surface.blit(score, score.get_rect(midtop=(frame.centerx, frame.y + 70)))

        rows = [
            f"Difficulty: {snap.difficulty.value}",
            f"High score: {max(snap.score, snap.high_score)}",
        ]
        if snap.new_record:
            rows.append("NEW RECORD")
        y = frame.y + 200
        for row in rows:
            text = self._value_font.render(row, True, _OK if row == "NEW RECORD" else _TEXT_MAIN)
            surface.blit(text, text.get_rect(midtop=(frame.centerx, y)))
            y += 52

        footer = "Enter: Retry  |  Esc: Home"
        foot = self._hint_font.render(footer, True, _TEXT_MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))


def _build_voice_source(settings: Settings) -> TranscriptSource | None:
    if not settings.voice_enabled:
        return None
    try:
        from .voice import SpeechRecognitionSource
    except ImportError as exc:
        logger.warning("voice input disabled: %s", exc)
        return None
    return SpeechRecognitionSource(language=settings.voice_language)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    pygame.mixer.pre_init(SAMPLE_RATE, -16, 1, 512)
    pygame.init()
    pygame.display.set_caption("Between")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    scheduler = Scheduler(RealClock())
    engine = RoundEngine(
        scheduler=scheduler,
        high_scores=HighScoreStore(JsonKeyValueStore(settings.high_score_path)),
        generator=ProblemGenerator(),
        config=RoundConfig(),
    )
    session = GameSession(
        scheduler=scheduler,
        engine=engine,
        tones=ToneBank(),
        voice_source=_build_voice_source(settings),
    )
    app.push(HomeScreen(app, session=session, options=GameOptions()))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        session.shutdown()
        pygame.quit()

    return 0
