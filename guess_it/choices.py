from __future__ import annotations

from typing import Sequence

from .game_core import SeededRng, normalize_answer
from .rounds import RoundRecord

MAX_OPTIONS = 4


def distractor_pool(rounds: Sequence[RoundRecord], index: int) -> list[str]:
    """Distinct answers of every other round that the current round doesn't accept.

    Distinctness and membership are judged on the normalized form; the first
    spelling seen wins.
    """

    current = rounds[index]
    accepted = {normalize_answer(a) for a in current.answers}
    seen: set[str] = set()
    pool: list[str] = []
    for i, rec in enumerate(rounds):
        if i == index:
            continue
        for answer in rec.answers:
            key = normalize_answer(answer)
            if key in accepted or key in seen:
                continue
            seen.add(key)
            pool.append(answer)
    return pool


def generate_choices(
    rounds: Sequence[RoundRecord],
    index: int,
    rng: SeededRng,
    *,
    max_options: int = MAX_OPTIONS,
) -> tuple[str, ...]:
    """Build the shuffled option set for one multiple-choice round.

    One accepted answer is the correct option; up to `max_options - 1`
    distractors are drawn without replacement. A small catalog simply yields
    fewer options.
    """

    if max_options < 1:
        raise ValueError("max_options must be >= 1")
    if not rounds:
        return ()

    index = index % len(rounds)
    current = rounds[index]

    options: list[str] = []
    if current.answers:
        options.append(rng.choice(current.answers))

    pool = distractor_pool(rounds, index)
    k = min(max_options - 1, len(pool))
    options.extend(rng.sample(pool, k))
    return tuple(rng.shuffled(options))
