from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

import requests
from loguru import logger

from .game_core import SeededRng

DEFAULT_TIMEOUT_S = 10.0


@dataclass(frozen=True, slots=True)
class RoundRecord:
    round_id: str
    image: str
    clue: str
    answers: tuple[str, ...]


FALLBACK_ROUNDS: tuple[RoundRecord, ...] = (
    RoundRecord(
        round_id="1",
        image="https://images.unsplash.com/photo-1518791841217-8f162f1e1131?q=80&w=1200&auto=format&fit=crop",
        clue="House pet that says meow",
        answers=("cat", "kitten", "feline"),
    ),
    RoundRecord(
        round_id="2",
        image="https://images.unsplash.com/photo-1542291026-7eec264c27ff?q=80&w=1200&auto=format&fit=crop",
        clue="You wear them on your feet",
        answers=("shoe", "sneakers", "footwear"),
    ),
    RoundRecord(
        round_id="3",
        image="https://images.unsplash.com/photo-1517336714731-489689fd1ca8?q=80&w=1200&auto=format&fit=crop",
        clue="Portable computer",
        answers=("laptop", "notebook", "portable computer"),
    ),
)


class CatalogError(ValueError):
    """Raised when catalog JSON does not have the expected shape."""


def parse_rounds(data: object) -> list[RoundRecord]:
    """Decode a JSON array of `{id, image, answers, clue}` objects.

    Entries without at least one non-blank answer string are dropped.
    A top-level value that is not a list raises CatalogError.
    """

    if not isinstance(data, list):
        raise CatalogError("catalog must be a JSON array")

    out: list[RoundRecord] = []
    for idx, item in enumerate(data):
        if not isinstance(item, dict):
            logger.debug("Skipping catalog entry {}: not an object", idx)
            continue
        raw_answers = item.get("answers")
        if not isinstance(raw_answers, list):
            logger.debug("Skipping catalog entry {}: answers missing", idx)
            continue
        answers = tuple(str(a) for a in raw_answers if isinstance(a, str) and a.strip() != "")
        if not answers:
            logger.debug("Skipping catalog entry {}: no usable answers", idx)
            continue
        out.append(
            RoundRecord(
                round_id=str(item.get("id", idx + 1)),
                image=str(item.get("image", "")),
                clue=str(item.get("clue", "")),
                answers=answers,
            )
        )
    return out


def _read_source(source: str, *, timeout_s: float) -> object:
    if source.startswith(("http://", "https://")):
        resp = requests.get(source, timeout=timeout_s)
        resp.raise_for_status()
        return resp.json()
    return json.loads(Path(source).expanduser().read_text(encoding="utf-8"))


def load_rounds(source: str | None, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> list[RoundRecord]:
    """Fetch the round catalog from a URL or local JSON file.

    Any network, status, or parse failure falls back to FALLBACK_ROUNDS.
    Order is preserved; shuffling is the caller's job.
    """

    if not source:
        logger.info("No catalog source configured; using built-in rounds")
        return list(FALLBACK_ROUNDS)
    try:
        rounds = parse_rounds(_read_source(source, timeout_s=timeout_s))
    except (requests.RequestException, OSError, ValueError) as exc:
        # requests' JSONDecodeError and json.JSONDecodeError are both ValueErrors.
        logger.warning("Error fetching rounds from {}: {}; using built-in rounds", source, exc)
        return list(FALLBACK_ROUNDS)
    logger.debug("Loaded {} rounds from {}", len(rounds), source)
    return rounds


def shuffle_rounds(rounds: list[RoundRecord] | tuple[RoundRecord, ...], rng: SeededRng) -> list[RoundRecord]:
    return rng.shuffled(rounds)
