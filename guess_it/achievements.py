from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger

from .game_core import Mode, SessionStats

COMPLETION_ROUNDS = 10


@dataclass(frozen=True, slots=True)
class Achievement:
    achievement_id: str
    name: str
    description: str
    predicate: Callable[[SessionStats, Mode], bool]


@dataclass(frozen=True, slots=True)
class UnlockedAchievement:
    achievement_id: str
    name: str
    description: str
    unlocked: str  # ISO-8601, UTC

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.achievement_id,
            "name": self.name,
            "description": self.description,
            "unlocked": self.unlocked,
        }

    @classmethod
    def from_dict(cls, achievement_id: str, data: object) -> "UnlockedAchievement | None":
        if not isinstance(data, dict):
            return None
        unlocked = data.get("unlocked")
        if not isinstance(unlocked, str) or unlocked.strip() == "":
            return None
        known = ACHIEVEMENTS_BY_ID.get(achievement_id)
        return cls(
            achievement_id=achievement_id,
            name=str(data.get("name", known.name if known else achievement_id)),
            description=str(data.get("description", known.description if known else "")),
            unlocked=unlocked,
        )


def _completed_in(mode: Mode) -> Callable[[SessionStats, Mode], bool]:
    def predicate(stats: SessionStats, current: Mode) -> bool:
        return current is mode and stats.rounds_played >= COMPLETION_ROUNDS

    return predicate


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement(
        "streak_10",
        "Streak Master",
        "Achieve a streak of 10 correct answers",
        lambda stats, _mode: stats.streak >= 10,
    ),
    Achievement(
        "timed_complete",
        "Timed Champion",
        "Complete a game in Timed mode",
        _completed_in(Mode.TIMED),
    ),
    Achievement(
        "classic_complete",
        "Classic Finisher",
        "Complete a game in Classic mode",
        _completed_in(Mode.CLASSIC),
    ),
    Achievement(
        "multiple_choice_complete",
        "Choice Conqueror",
        "Complete a game in Multiple Choice mode",
        _completed_in(Mode.MULTIPLE_CHOICE),
    ),
    Achievement(
        "correct_20",
        "Sharp Eye",
        "Get 20 correct answers",
        lambda stats, _mode: stats.correct >= 20,
    ),
)

ACHIEVEMENTS_BY_ID: dict[str, Achievement] = {a.achievement_id: a for a in ACHIEVEMENTS}


def utc_timestamp(now: datetime | None = None) -> str:
    moment = now if now is not None else datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def check_achievements(
    stats: SessionStats,
    mode: Mode,
    prior: Mapping[str, UnlockedAchievement],
    *,
    now: datetime | None = None,
) -> dict[str, UnlockedAchievement]:
    """Return `prior` plus every newly satisfied achievement.

    Existing entries are carried over untouched, so unlock timestamps never
    move once set.
    """

    result = dict(prior)
    stamp: str | None = None
    for achievement in ACHIEVEMENTS:
        if achievement.achievement_id in result:
            continue
        if not achievement.predicate(stats, mode):
            continue
        if stamp is None:
            stamp = utc_timestamp(now)
        result[achievement.achievement_id] = UnlockedAchievement(
            achievement_id=achievement.achievement_id,
            name=achievement.name,
            description=achievement.description,
            unlocked=stamp,
        )
        logger.info("Achievement unlocked: {}", achievement.name)
    return result
