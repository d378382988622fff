from __future__ import annotations

from dataclasses import dataclass

from .game_core import Mode


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Persistable summary of a finished (or abandoned) session."""

    mode: Mode
    seed: int
    catalog_size: int

    rounds_played: int
    correct: int
    wrong: int
    best_streak: int
    lives_remaining: int | None
    completed: bool

    @property
    def accuracy(self) -> float:
        return 0.0 if self.rounds_played == 0 else self.correct / self.rounds_played

    def tiles(self) -> list[tuple[str, str]]:
        """Label/value pairs shown on the results screen."""

        out = [
            ("Rounds Played", str(self.rounds_played)),
            ("Correct", str(self.correct)),
            ("Wrong", str(self.wrong)),
        ]
        if self.mode.tracks_lives:
            out.append(("Lives Remaining", str(self.lives_remaining or 0)))
        else:
            out.append(("Longest Streak", str(self.best_streak)))
        out.append(("Accuracy", f"{int(round(self.accuracy * 100))}%"))
        return out
