from __future__ import annotations

import json
import os
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from .achievements import UnlockedAchievement
from .game_core import Mode, SessionStats
from .results import SessionResult

SCHEMA_VERSION = 1

DB_PATH_ENV = "GUESS_IT_DB_PATH"

STATS_KEY = "stats"
ACHIEVEMENTS_KEY = "achievements"
SETTINGS_KEY = "settings"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...


class InMemoryStore:
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)


def default_db_path() -> Path:
    explicit = os.environ.get(DB_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".guess_it.sqlite3"


def open_db(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session_result (
                id INTEGER PRIMARY KEY,
                mode TEXT NOT NULL,
                rng_seed INTEGER NOT NULL,
                catalog_size INTEGER NOT NULL,
                rounds_played INTEGER NOT NULL,
                correct INTEGER NOT NULL,
                wrong INTEGER NOT NULL,
                best_streak INTEGER NOT NULL,
                lives_remaining INTEGER,
                completed INTEGER NOT NULL,
                recorded_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteKeyValueStore:
    """Durable key-value store in a single sqlite file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._conn = open_db(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return None if row is None else str(row[0])

    def set(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO kv(key, value, updated_at_utc) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at_utc = excluded.updated_at_utc
                """,
                (key, str(value), _utc_now_iso()),
            )

    def record_session_result(self, result: SessionResult) -> int:
        with self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO session_result(
                    mode, rng_seed, catalog_size, rounds_played, correct, wrong,
                    best_streak, lives_remaining, completed, recorded_at_utc
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(result.mode.value),
                    int(result.seed),
                    int(result.catalog_size),
                    int(result.rounds_played),
                    int(result.correct),
                    int(result.wrong),
                    int(result.best_streak),
                    None if result.lives_remaining is None else int(result.lives_remaining),
                    1 if result.completed else 0,
                    _utc_now_iso(),
                ),
            )
        return int(cur.lastrowid)

    def session_results(self, *, limit: int = 20) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            """
            SELECT id, mode, rounds_played, correct, wrong, best_streak, lives_remaining,
                   completed, recorded_at_utc
            FROM session_result ORDER BY id DESC LIMIT ?
            """,
            (int(limit),),
        ).fetchall()
        keys = (
            "id",
            "mode",
            "rounds_played",
            "correct",
            "wrong",
            "best_streak",
            "lives_remaining",
            "completed",
            "recorded_at_utc",
        )
        return [dict(zip(keys, row)) for row in rows]

    def close(self) -> None:
        self._conn.close()


def _read_json(store: KeyValueStore, key: str) -> object | None:
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.debug("Ignoring malformed JSON under key {!r}", key)
        return None


def load_stats(store: KeyValueStore) -> SessionStats:
    return SessionStats.from_dict(_read_json(store, STATS_KEY))


def save_stats(store: KeyValueStore, stats: SessionStats) -> None:
    store.set(STATS_KEY, json.dumps(stats.to_dict()))


def load_achievements(store: KeyValueStore) -> dict[str, UnlockedAchievement]:
    payload = _read_json(store, ACHIEVEMENTS_KEY)
    if not isinstance(payload, dict):
        return {}
    out: dict[str, UnlockedAchievement] = {}
    for key, value in payload.items():
        entry = UnlockedAchievement.from_dict(str(key), value)
        if entry is not None:
            out[entry.achievement_id] = entry
    return out


def save_achievements(store: KeyValueStore, unlocked: dict[str, UnlockedAchievement]) -> None:
    payload = {key: entry.to_dict() for key, entry in unlocked.items()}
    store.set(ACHIEVEMENTS_KEY, json.dumps(payload))


@dataclass(frozen=True, slots=True)
class GameSettings:
    mode: Mode = Mode.TIMED
    show_clue: bool = True
    sound_volume: float = 0.5

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "show_clue": bool(self.show_clue),
            "sound_volume": float(self.sound_volume),
        }

    @classmethod
    def from_dict(cls, data: object) -> "GameSettings":
        if not isinstance(data, dict):
            return cls()
        volume = data.get("sound_volume", 0.5)
        if isinstance(volume, bool) or not isinstance(volume, (int, float)):
            volume = 0.5
        return cls(
            mode=Mode.parse(data.get("mode"), Mode.TIMED),
            show_clue=bool(data.get("show_clue", True)),
            sound_volume=max(0.0, min(1.0, float(volume))),
        )


def load_settings(store: KeyValueStore) -> GameSettings:
    return GameSettings.from_dict(_read_json(store, SETTINGS_KEY))


def save_settings(store: KeyValueStore, settings: GameSettings) -> None:
    store.set(SETTINGS_KEY, json.dumps(settings.to_dict()))
