from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from .achievements import UnlockedAchievement, check_achievements
from .choices import MAX_OPTIONS, generate_choices
from .clock import Clock
from .game_core import (
    COUNTDOWN_S,
    FAIL_PHRASES,
    HIDDEN,
    STARTING_LIVES,
    TIMEOUT_MESSAGE,
    WIN_PHRASES,
    CountdownTimer,
    Feedback,
    Mode,
    Outcome,
    SeededRng,
    SessionStats,
    evaluate_answer,
    normalize_answer,
)
from .persistence import KeyValueStore, load_achievements, load_stats, save_achievements, save_stats
from .results import SessionResult
from .rounds import RoundRecord
from .sound import NullSound, SoundCue, SoundPlayer


class SessionPhase(str, Enum):
    AWAITING_CONTENT = "awaiting_content"
    AWAITING_INPUT = "awaiting_input"
    FEEDBACK = "feedback"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class SessionConfig:
    countdown_s: float = COUNTDOWN_S
    win_delay_s: float = 0.9
    fail_delay_s: float = 1.0
    starting_lives: int = STARTING_LIVES
    max_choices: int = MAX_OPTIONS


@dataclass(frozen=True, slots=True)
class _PendingTransition:
    token: int
    due_at_s: float
    advance: bool
    ends_session: bool = False


@dataclass(frozen=True, slots=True)
class GuessSnapshot:
    """View model for the UI (pure data)."""

    phase: SessionPhase
    mode: Mode
    round_index: int
    round_number: int
    total_rounds: int
    image: str
    clue: str
    show_clue: bool
    choices: tuple[str, ...]
    countdown_s: int | None
    lives: int | None
    stats: SessionStats
    feedback: Feedback
    content_ready: bool

    @property
    def progress(self) -> float:
        if self.total_rounds == 0:
            return 0.0
        return min(1.0, self.round_number / float(self.total_rounds))


class GuessSession:
    """Round/session state machine for one play-through.

    - Time comes only from the injected Clock; deferred work runs from update().
    - Randomness (phrases, choices) comes from a SeededRng built from `seed`.
    - Every manual transition bumps the session token, which strands any
      feedback transition or countdown started under the old token.
    """

    def __init__(
        self,
        *,
        rounds: Sequence[RoundRecord],
        clock: Clock,
        seed: int,
        mode: Mode = Mode.TIMED,
        store: KeyValueStore | None = None,
        config: SessionConfig | None = None,
        sound: SoundPlayer | None = None,
        show_clue: bool = True,
    ) -> None:
        cfg = config or SessionConfig()
        if cfg.countdown_s <= 0:
            raise ValueError("countdown_s must be > 0")
        if cfg.win_delay_s < 0 or cfg.fail_delay_s < 0:
            raise ValueError("feedback delays must be >= 0")
        if cfg.starting_lives < 1:
            raise ValueError("starting_lives must be >= 1")
        if cfg.max_choices < 1:
            raise ValueError("max_choices must be >= 1")

        self._cfg = cfg
        self._rounds: tuple[RoundRecord, ...] = tuple(rounds)
        self._clock = clock
        self._seed = int(seed)
        self._rng = SeededRng(seed)
        self._mode = mode
        self._store = store
        self._sound: SoundPlayer = sound or NullSound()
        self._show_clue = bool(show_clue)
        self._timer = CountdownTimer(clock=clock, duration_s=cfg.countdown_s)

        self._stats = load_stats(store) if store is not None else SessionStats()
        self._achievements: dict[str, UnlockedAchievement] = (
            load_achievements(store) if store is not None else {}
        )
        # Stats persist across games; results report the delta from here.
        self._baseline = self._stats
        self._best_streak = 0
        self._lives = cfg.starting_lives

        self._token = 0
        self._round_index = 0
        self._feedback = HIDDEN
        self._pending: _PendingTransition | None = None
        self._content_ready = False
        self._choices: tuple[str, ...] = ()
        self._closed = False

        if self._rounds:
            self._phase = SessionPhase.AWAITING_INPUT
            self._enter_round()
        else:
            self._phase = SessionPhase.AWAITING_CONTENT
            logger.warning("No rounds available; session is waiting for content")

    # ---- accessors -------------------------------------------------------

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def lives(self) -> int:
        return self._lives

    @property
    def round_index(self) -> int:
        return self._round_index

    @property
    def feedback(self) -> Feedback:
        return self._feedback

    @property
    def choices(self) -> tuple[str, ...]:
        return self._choices

    @property
    def rounds(self) -> tuple[RoundRecord, ...]:
        return self._rounds

    @property
    def current_round(self) -> RoundRecord | None:
        if not self._rounds:
            return None
        return self._rounds[self._round_index % len(self._rounds)]

    @property
    def timer_active(self) -> bool:
        return self._timer.active

    def achievements(self) -> dict[str, UnlockedAchievement]:
        return dict(self._achievements)

    # ---- player actions --------------------------------------------------

    def submit_guess(self, raw: str) -> bool:
        """Submit typed text. Returns True if it was evaluated."""

        if not self._accepting_input() or normalize_answer(raw) == "":
            return False
        return self._submit(raw)

    def submit_choice(self, choice: str) -> bool:
        """Submit a multiple-choice option. Returns True if it was evaluated."""

        if not self._mode.uses_choices:
            return False
        if not self._accepting_input() or normalize_answer(choice) == "":
            return False
        return self._submit(choice)

    def skip(self) -> bool:
        """Advance without scoring. Works while feedback is showing too."""

        if self._closed or not self._rounds or self._phase is SessionPhase.COMPLETE:
            return False
        logger.debug("Skipping round {}", self._round_index)
        self._invalidate()
        self._advance()
        return True

    def reset(self) -> None:
        """Play again: zero stats, restore lives, back to the first round."""

        if self._closed:
            return
        self._invalidate()
        self._stats = SessionStats()
        self._baseline = self._stats
        self._best_streak = 0
        self._lives = self._cfg.starting_lives
        self._round_index = 0
        if self._store is not None:
            save_stats(self._store, self._stats)
        if not self._rounds:
            self._phase = SessionPhase.AWAITING_CONTENT
            self._feedback = HIDDEN
            return
        self._phase = SessionPhase.AWAITING_INPUT
        self._enter_round()

    def dismiss_feedback(self) -> bool:
        """Fire the pending feedback transition now instead of waiting."""

        pending = self._pending
        if self._phase is not SessionPhase.FEEDBACK or pending is None:
            return False
        self._pending = None
        if pending.token != self._token:
            return False
        self._finish_feedback(pending)
        return True

    def mark_content_ready(self) -> None:
        """The current round's image has finished loading."""

        if self._phase is not SessionPhase.AWAITING_INPUT or self._content_ready:
            return
        self._content_ready = True
        self._sync_timer()

    def set_mode(self, mode: Mode) -> None:
        if mode is self._mode:
            return
        logger.debug("Mode change {} -> {}", self._mode.value, mode.value)
        self._timer.cancel()
        self._mode = mode
        if self._phase in (SessionPhase.AWAITING_INPUT, SessionPhase.FEEDBACK):
            self._choices = self._make_choices()
        self._sync_timer()

    def cycle_mode(self) -> Mode:
        self.set_mode(self._mode.next_mode())
        return self._mode

    def toggle_clue(self) -> bool:
        self._show_clue = not self._show_clue
        return self._show_clue

    def update(self) -> None:
        """Run due deferred work: feedback transitions and countdown expiry."""

        if self._closed or self._phase in (SessionPhase.AWAITING_CONTENT, SessionPhase.COMPLETE):
            return

        pending = self._pending
        if pending is not None and self._clock.now() >= pending.due_at_s:
            self._pending = None
            if pending.token == self._token:
                self._finish_feedback(pending)
            return

        if self._timer.poll(self._token):
            logger.debug("Round {} timed out", self._round_index)
            self._resolve(Outcome.FAIL, timed_out=True)
            return

        self._sync_timer()

    def close(self) -> None:
        """Tear down: no timer or deferred transition may fire afterwards."""

        self._invalidate()
        self._closed = True

    # ---- views -----------------------------------------------------------

    def snapshot(self) -> GuessSnapshot:
        current = self.current_round
        total = len(self._rounds)
        if total == 0:
            round_number = 0
        elif self._mode.tracks_lives:
            # Survival wraps around the catalog, so the count is unbounded.
            round_number = self._round_index + 1
        else:
            round_number = min(total, self._round_index + 1)
        return GuessSnapshot(
            phase=self._phase,
            mode=self._mode,
            round_index=self._round_index,
            round_number=round_number,
            total_rounds=total,
            image="" if current is None else current.image,
            clue="" if current is None else current.clue,
            show_clue=self._show_clue,
            choices=self._choices,
            countdown_s=self._countdown_display(),
            lives=self._lives if self._mode.tracks_lives else None,
            stats=self._stats,
            feedback=self._feedback,
            content_ready=self._content_ready,
        )

    def result(self) -> SessionResult:
        """Summary of this game only; stored stats stay cumulative."""

        base = self._baseline
        return SessionResult(
            mode=self._mode,
            seed=self._seed,
            catalog_size=len(self._rounds),
            rounds_played=self._stats.rounds_played - base.rounds_played,
            correct=self._stats.correct - base.correct,
            wrong=self._stats.wrong - base.wrong,
            best_streak=self._best_streak,
            lives_remaining=self._lives if self._mode.tracks_lives else None,
            completed=self._phase is SessionPhase.COMPLETE,
        )

    # ---- internals -------------------------------------------------------

    def _accepting_input(self) -> bool:
        return (
            not self._closed
            and bool(self._rounds)
            and self._phase is SessionPhase.AWAITING_INPUT
        )

    def _submit(self, raw: str) -> bool:
        current = self.current_round
        assert current is not None
        self._sound.play(SoundCue.CLICK)
        outcome = evaluate_answer(current.answers, raw)
        self._resolve(outcome, timed_out=False)
        return True

    def _resolve(self, outcome: Outcome, *, timed_out: bool) -> None:
        self._timer.cancel()

        if outcome is Outcome.WIN:
            self._stats = self._stats.won()
            message = self._rng.choice(WIN_PHRASES)
            delay_s = self._cfg.win_delay_s
            advance = True
            ends_session = False
            self._sound.play(SoundCue.WIN)
        else:
            self._stats = self._stats.failed()
            message = TIMEOUT_MESSAGE if timed_out else self._rng.choice(FAIL_PHRASES)
            delay_s = self._cfg.fail_delay_s
            # Wrong guesses retry the same round; only a timeout forfeits it.
            advance = timed_out
            ends_session = False
            if self._mode.tracks_lives:
                self._lives = max(0, self._lives - 1)
                ends_session = self._lives <= 0
            self._sound.play(SoundCue.FAIL)

        self._best_streak = max(self._best_streak, self._stats.streak)
        self._feedback = Feedback(visible=True, kind=outcome, message=message)
        self._phase = SessionPhase.FEEDBACK
        logger.debug(
            "Round {} {} ({}); stats={}",
            self._round_index,
            outcome.value,
            "timeout" if timed_out else "submitted",
            self._stats,
        )
        self._record_progress()

        self._token += 1
        self._pending = _PendingTransition(
            token=self._token,
            due_at_s=self._clock.now() + delay_s,
            advance=advance,
            ends_session=ends_session,
        )

    def _record_progress(self) -> None:
        self._achievements = check_achievements(self._stats, self._mode, self._achievements)
        if self._store is None:
            return
        save_stats(self._store, self._stats)
        save_achievements(self._store, self._achievements)

    def _finish_feedback(self, pending: _PendingTransition) -> None:
        self._token += 1
        if pending.ends_session:
            self._complete()
        elif pending.advance:
            self._advance()
        else:
            self._retry()

    def _session_over(self) -> bool:
        if self._mode.tracks_lives:
            return self._lives <= 0
        return self._round_index + 1 >= len(self._rounds)

    def _advance(self) -> None:
        if self._session_over():
            self._complete()
            return
        self._round_index += 1
        self._sound.play(SoundCue.TRANSITION)
        self._phase = SessionPhase.AWAITING_INPUT
        self._enter_round()

    def _retry(self) -> None:
        self._feedback = HIDDEN
        self._phase = SessionPhase.AWAITING_INPUT
        self._sync_timer()

    def _complete(self) -> None:
        self._timer.cancel()
        self._pending = None
        self._feedback = HIDDEN
        self._phase = SessionPhase.COMPLETE
        logger.info(
            "Session complete: mode={} correct={} wrong={} rounds={}",
            self._mode.value,
            self._stats.correct,
            self._stats.wrong,
            self._stats.rounds_played,
        )

    def _enter_round(self) -> None:
        self._timer.cancel()
        self._feedback = HIDDEN
        self._content_ready = False
        self._choices = self._make_choices()

    def _make_choices(self) -> tuple[str, ...]:
        if not self._mode.uses_choices or not self._rounds:
            return ()
        return generate_choices(
            self._rounds,
            self._round_index % len(self._rounds),
            self._rng,
            max_options=self._cfg.max_choices,
        )

    def _invalidate(self) -> None:
        self._token += 1
        self._pending = None
        self._timer.cancel()

    def _timer_should_run(self) -> bool:
        return (
            not self._closed
            and self._mode.is_timed
            and self._phase is SessionPhase.AWAITING_INPUT
            and self._content_ready
            and not self._feedback.visible
        )

    def _sync_timer(self) -> None:
        if self._timer_should_run():
            if self._timer.token != self._token:
                self._timer.start(self._token)
        elif self._timer.active:
            self._timer.cancel()

    def _countdown_display(self) -> int | None:
        if not self._mode.is_timed:
            return None
        shown = self._timer.display_seconds()
        return int(math.ceil(self._cfg.countdown_s)) if shown is None else shown
