from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import Sequence, TypeVar

from .clock import Clock

T = TypeVar("T")

STARTING_LIVES = 3
COUNTDOWN_S = 5.0
TIMEOUT_MESSAGE = "Time's up!"

WIN_PHRASES: tuple[str, ...] = (
    "Bingo!",
    "Nailed it!",
    "Chef's kiss!",
    "Correctamundo!",
    "You got it!",
    "Boom!",
    "On the money!",
    "Well done!",
    "Spot on!",
    "Fantastic!",
    "Way to go!",
    "Awesome!",
    "Perfect!",
    "Great job!",
    "You're a star!",
)

FAIL_PHRASES: tuple[str, ...] = (
    "Oops, try again!",
    "Not quite!",
    "Missed it!",
    "Better luck next time!",
    "Close, but no cigar!",
    "Oh no!",
    "Swing and a miss!",
    "Try another guess!",
    "Not that one!",
    "Keep trying!",
    "Almost there!",
    "Nope, wrong one!",
    "Give it another shot!",
    "Better luck next round!",
    "That's not it!",
)


class Mode(str, Enum):
    TIMED = "timed"
    CLASSIC = "classic"
    MULTIPLE_CHOICE = "multiple-choice"
    SURVIVAL = "survival"

    @property
    def is_timed(self) -> bool:
        return self in (Mode.TIMED, Mode.MULTIPLE_CHOICE)

    @property
    def tracks_lives(self) -> bool:
        return self is Mode.SURVIVAL

    @property
    def uses_choices(self) -> bool:
        return self is Mode.MULTIPLE_CHOICE

    @property
    def label(self) -> str:
        return _MODE_LABELS[self]

    def next_mode(self) -> "Mode":
        order = tuple(Mode)
        return order[(order.index(self) + 1) % len(order)]

    @classmethod
    def parse(cls, raw: object, default: "Mode") -> "Mode":
        try:
            return cls(str(raw))
        except ValueError:
            return default


_MODE_LABELS = {
    Mode.TIMED: "Timed",
    Mode.CLASSIC: "Classic",
    Mode.MULTIPLE_CHOICE: "Multiple Choice",
    Mode.SURVIVAL: "Survival",
}


class Outcome(str, Enum):
    WIN = "win"
    FAIL = "fail"


@dataclass(frozen=True, slots=True)
class Feedback:
    visible: bool
    kind: Outcome | None = None
    message: str = ""


HIDDEN = Feedback(visible=False)


@dataclass(frozen=True, slots=True)
class SessionStats:
    correct: int = 0
    wrong: int = 0
    streak: int = 0
    rounds_played: int = 0

    def won(self) -> "SessionStats":
        return replace(
            self,
            correct=self.correct + 1,
            streak=self.streak + 1,
            rounds_played=self.rounds_played + 1,
        )

    def failed(self) -> "SessionStats":
        return replace(
            self,
            wrong=self.wrong + 1,
            streak=0,
            rounds_played=self.rounds_played + 1,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "correct": int(self.correct),
            "wrong": int(self.wrong),
            "streak": int(self.streak),
            "rounds": int(self.rounds_played),
        }

    @classmethod
    def from_dict(cls, data: object) -> "SessionStats":
        """Tolerant decode: anything unusable becomes zeroed stats."""

        if not isinstance(data, dict):
            return cls()
        values: list[int] = []
        for key in ("correct", "wrong", "streak", "rounds"):
            raw = data.get(key, 0)
            if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
                return cls()
            values.append(raw)
        return cls(*values)


class SeededRng:
    """Seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(int(seed))

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def random(self) -> float:
        return self._rng.random()

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def sample(self, seq: Sequence[T], k: int) -> list[T]:
        return self._rng.sample(list(seq), k)

    def shuffled(self, seq: Sequence[T]) -> list[T]:
        out = list(seq)
        self._rng.shuffle(out)
        return out


_ASCII_LOWER = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")


def normalize_answer(raw: str) -> str:
    """Trim surrounding whitespace and fold ASCII case.

    Internal whitespace and non-ASCII letters are left untouched.
    """

    return raw.strip().translate(_ASCII_LOWER)


def evaluate_answer(answers: Sequence[str], raw: str) -> Outcome:
    guess = normalize_answer(raw)
    if guess == "":
        raise ValueError("empty guess must be rejected before evaluation")
    if any(guess == normalize_answer(a) for a in answers):
        return Outcome.WIN
    return Outcome.FAIL


class CountdownTimer:
    """Cancellable per-round countdown.

    Every activation carries a token. `poll()` only reports expiry for the
    token the timer was started with, and only once.
    """

    def __init__(self, *, clock: Clock, duration_s: float = COUNTDOWN_S) -> None:
        if duration_s <= 0:
            raise ValueError("duration_s must be > 0")
        self._clock = clock
        self._duration_s = float(duration_s)
        self._token: int | None = None
        self._started_at_s: float | None = None

    @property
    def active(self) -> bool:
        return self._token is not None

    @property
    def token(self) -> int | None:
        return self._token

    @property
    def duration_s(self) -> float:
        return self._duration_s

    def start(self, token: int) -> None:
        self._token = int(token)
        self._started_at_s = self._clock.now()

    def cancel(self) -> None:
        self._token = None
        self._started_at_s = None

    def remaining_s(self) -> float | None:
        if self._started_at_s is None:
            return None
        return max(0.0, self._duration_s - (self._clock.now() - self._started_at_s))

    def display_seconds(self) -> int | None:
        remaining = self.remaining_s()
        if remaining is None:
            return None
        return int(math.ceil(remaining))

    def poll(self, token: int) -> bool:
        """Return True exactly once when the activation for `token` runs out."""

        if self._token is None or self._token != token:
            return False
        remaining = self.remaining_s()
        if remaining is not None and remaining <= 0.0:
            self.cancel()
            return True
        return False
