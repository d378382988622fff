"""Pygame UI shell for Guess It!

Screens: Home menu, Game, Settings, Results.

Deterministic timing/scoring/RNG/state lives in guess_it/* (core modules);
this module only turns pygame events into session calls and draws snapshots.
"""

from __future__ import annotations

import io
import os
import random
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Protocol

import pygame
import requests
from loguru import logger

from .achievements import ACHIEVEMENTS
from .clock import Clock, RealClock
from .game_core import Mode, Outcome, SeededRng
from .persistence import (
    GameSettings,
    InMemoryStore,
    KeyValueStore,
    SqliteKeyValueStore,
    default_db_path,
    load_achievements,
    load_settings,
    save_settings,
)
from .rounds import RoundRecord, load_rounds, shuffle_rounds
from .session import GuessSession, GuessSnapshot, SessionPhase
from .sound import PygameSound

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

ROUNDS_SOURCE_ENV = "GUESS_IT_ROUNDS_SOURCE"
FETCH_IMAGES_ENV = "GUESS_IT_FETCH_IMAGES"

BG = (15, 23, 42)
PANEL = (30, 41, 59)
BORDER = (71, 85, 105)
TEXT = (241, 245, 249)
MUTED = (148, 163, 184)
ACCENT = (225, 29, 72)
WIN_BG = (5, 150, 105)
FAIL_BG = (225, 29, 72)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


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
        # Never pop the root screen; it handles its own quit.
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


@dataclass(slots=True)
class Services:
    """Everything screens share: catalog, persistence, sound, settings."""

    clock: Clock
    store: KeyValueStore
    sound: PygameSound
    rounds: list[RoundRecord]
    settings: GameSettings

    def update_settings(self, **changes: object) -> None:
        self.settings = replace(self.settings, **changes)
        self.sound.set_volume(self.settings.sound_volume)
        save_settings(self.store, self.settings)


class ImageCache:
    """Loads round images as pygame surfaces; failures resolve to None."""

    def __init__(self, *, fetch_remote: bool) -> None:
        self._fetch_remote = fetch_remote
        self._cache: dict[str, pygame.Surface | None] = {}

    def get(self, ref: str) -> pygame.Surface | None:
        if ref not in self._cache:
            self._cache[ref] = self._load(ref)
        return self._cache[ref]

    def _load(self, ref: str) -> pygame.Surface | None:
        if ref == "":
            return None
        try:
            if ref.startswith(("http://", "https://")):
                if not self._fetch_remote:
                    return None
                resp = requests.get(ref, timeout=5.0)
                resp.raise_for_status()
                return pygame.image.load(io.BytesIO(resp.content))
            path = Path(ref).expanduser()
            if not path.exists():
                return None
            return pygame.image.load(str(path))
        except (requests.RequestException, OSError, pygame.error) as exc:
            logger.debug("Could not load image {}: {}", ref, exc)
            return None


def _draw_tile(surface: pygame.Surface, rect: pygame.Rect, label: str, value: str, font: pygame.font.Font, small: pygame.font.Font) -> None:
    pygame.draw.rect(surface, PANEL, rect, border_radius=12)
    pygame.draw.rect(surface, BORDER, rect, 1, border_radius=12)
    lab = small.render(label.upper(), True, MUTED)
    val = font.render(value, True, TEXT)
    surface.blit(lab, lab.get_rect(midtop=(rect.centerx, rect.y + 8)))
    surface.blit(val, val.get_rect(midbottom=(rect.centerx, rect.bottom - 8)))


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False, subtitle: str = "") -> None:
        self._app = app
        self._title = title
        self._subtitle = subtitle
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 64)
        self._item_font = pygame.font.Font(None, 34)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._items:
                self._items[self._selected].action()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if self._items:
            self._selected = (self._selected + delta) % len(self._items)

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)
        title = self._title_font.render(self._title, True, TEXT)
        surface.blit(title, title.get_rect(center=(w // 2, h // 5)))
        if self._subtitle:
            sub = self._hint_font.render(self._subtitle, True, MUTED)
            surface.blit(sub, sub.get_rect(center=(w // 2, h // 5 + 44)))

        row_h = 48
        y = h // 5 + 90
        for idx, item in enumerate(self._items):
            row = pygame.Rect(w // 2 - 180, y, 360, row_h - 8)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACCENT if selected else PANEL, row, border_radius=14)
            pygame.draw.rect(surface, BORDER, row, 1, border_radius=14)
            text = self._item_font.render(item.label, True, TEXT)
            surface.blit(text, text.get_rect(center=row.center))
            y += row_h

        foot = self._hint_font.render("Up/Down: Move  |  Enter: Select  |  Esc: Back", True, MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


class GameScreen:
    def __init__(self, app: App, *, services: Services, seed: int, images: ImageCache) -> None:
        self._app = app
        self._services = services
        self._images = images
        rng = SeededRng(seed)
        self._session = GuessSession(
            rounds=shuffle_rounds(services.rounds, rng),
            clock=services.clock,
            seed=seed,
            mode=services.settings.mode,
            store=services.store,
            sound=services.sound,
            show_clue=services.settings.show_clue,
        )
        self._input = ""
        self._choice_hitboxes: list[tuple[pygame.Rect, str]] = []
        self._overlay_rect: pygame.Rect | None = None
        self._recorded = False

        self._font = pygame.font.Font(None, 30)
        self._small_font = pygame.font.Font(None, 22)
        self._big_font = pygame.font.Font(None, 72)

    @property
    def session(self) -> GuessSession:
        return self._session

    def handle_event(self, event: pygame.event.Event) -> None:
        snap = self._session.snapshot()
        if event.type == pygame.MOUSEBUTTONDOWN and getattr(event, "button", 0) == 1:
            pos = getattr(event, "pos", None)
            if pos is None:
                return
            if snap.feedback.visible and self._overlay_rect is not None and self._overlay_rect.collidepoint(pos):
                self._session.dismiss_feedback()
                return
            for rect, choice in self._choice_hitboxes:
                if rect.collidepoint(pos):
                    self._session.submit_choice(choice)
                    return
            return

        if event.type != pygame.KEYDOWN:
            return

        if event.key == pygame.K_ESCAPE:
            self._leave()
            return
        if event.key == pygame.K_TAB:
            shown = self._session.toggle_clue()
            self._services.update_settings(show_clue=shown)
            return
        if event.key == pygame.K_F2:
            self._input = ""
            self._session.skip()
            return
        if event.key == pygame.K_F3:
            mode = self._session.cycle_mode()
            self._services.update_settings(mode=mode)
            self._input = ""
            return
        if event.key == pygame.K_F5:
            self._input = ""
            self._session.reset()
            return
        if event.key == pygame.K_F6:
            self._open_results()
            return

        if snap.feedback.visible and event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._session.dismiss_feedback()
            return

        if snap.mode.uses_choices:
            if pygame.K_1 <= event.key <= pygame.K_9:
                idx = event.key - pygame.K_1
                if idx < len(snap.choices):
                    self._session.submit_choice(snap.choices[idx])
            return

        if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            if self._session.submit_guess(self._input):
                self._input = ""
            return
        if event.key == pygame.K_BACKSPACE:
            self._input = self._input[:-1]
            return
        ch = getattr(event, "unicode", "")
        if ch and ch.isprintable() and len(self._input) < 40:
            self._input += ch

    def _leave(self) -> None:
        self._record_result()
        self._session.close()
        self._app.pop()

    def _open_results(self) -> None:
        self._record_result()
        self._app.push(ResultsScreen(self._app, services=self._services, game=self))

    def _record_result(self) -> None:
        if self._recorded or self._session.result().rounds_played == 0:
            return
        store = self._services.store
        if isinstance(store, SqliteKeyValueStore):
            store.record_session_result(self._session.result())
        self._recorded = True

    def play_again(self) -> None:
        self._input = ""
        self._recorded = False
        self._session.reset()

    def render(self, surface: pygame.Surface) -> None:
        self._session.update()
        snap = self._session.snapshot()

        if snap.phase is SessionPhase.AWAITING_INPUT and not snap.content_ready:
            # Resolve (or fail) the image load before the countdown may start.
            self._images.get(snap.image)
            self._session.mark_content_ready()
            snap = self._session.snapshot()

        if snap.phase is SessionPhase.COMPLETE:
            self._open_results()
            return

        surface.fill(BG)
        w, h = surface.get_size()

        if snap.phase is SessionPhase.AWAITING_CONTENT:
            msg = self._font.render("Loading rounds...", True, TEXT)
            surface.blit(msg, msg.get_rect(center=(w // 2, h // 2)))
            return

        self._render_header(surface, snap, w)
        card = pygame.Rect(40, 120, w - 80, h - 230)
        self._render_card(surface, snap, card)
        self._render_input(surface, snap, pygame.Rect(40, card.bottom + 12, w - 80, 48))

        hint = "Tab: Clue  F2: Skip  F3: Mode  F5: Reset  F6: Results  Esc: Home"
        foot = self._small_font.render(hint, True, MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 6)))

    def _render_header(self, surface: pygame.Surface, snap: GuessSnapshot, w: int) -> None:
        title = self._font.render(f"Guess It!  [{snap.mode.label}]", True, TEXT)
        surface.blit(title, (40, 16))

        if snap.mode.tracks_lives:
            last = ("Lives", str(snap.lives))
        elif snap.mode.is_timed:
            last = ("Timer", f"{snap.countdown_s}s")
        else:
            last = ("Mode", "inf")
        tiles = [
            ("Round", f"{snap.round_number}/{snap.total_rounds}"),
            ("Streak", str(snap.stats.streak)),
            ("Correct", str(snap.stats.correct)),
            last,
        ]
        tile_w = (w - 80 - 3 * 12) // 4
        for i, (label, value) in enumerate(tiles):
            rect = pygame.Rect(40 + i * (tile_w + 12), 48, tile_w, 56)
            _draw_tile(surface, rect, label, value, self._font, self._small_font)

        bar = pygame.Rect(40, 108, w - 80, 6)
        pygame.draw.rect(surface, PANEL, bar, border_radius=3)
        fill = _with_width(bar, int(bar.w * snap.progress))
        pygame.draw.rect(surface, ACCENT, fill, border_radius=3)

    def _render_card(self, surface: pygame.Surface, snap: GuessSnapshot, card: pygame.Rect) -> None:
        pygame.draw.rect(surface, PANEL, card, border_radius=18)
        image = self._images.get(snap.image)
        if image is not None:
            scaled = pygame.transform.smoothscale(image, (card.w, card.h))
            surface.blit(scaled, card.topleft)
        else:
            placeholder = self._small_font.render("(image unavailable)", True, MUTED)
            surface.blit(placeholder, placeholder.get_rect(center=card.center))
        pygame.draw.rect(surface, BORDER, card, 1, border_radius=18)

        clue_text = f"Clue: {snap.clue}" if snap.show_clue else "Press Tab to show the clue"
        clue = self._small_font.render(clue_text, True, TEXT if snap.show_clue else MUTED)
        surface.blit(clue, (card.x + 14, card.bottom - clue.get_height() - 10))

        self._overlay_rect = None
        if snap.feedback.visible:
            overlay = pygame.Surface(card.size, pygame.SRCALPHA)
            color = WIN_BG if snap.feedback.kind is Outcome.WIN else FAIL_BG
            overlay.fill((*color, 190))
            surface.blit(overlay, card.topleft)
            msg = self._big_font.render(snap.feedback.message, True, TEXT)
            surface.blit(msg, msg.get_rect(center=card.center))
            self._overlay_rect = card

    def _render_input(self, surface: pygame.Surface, snap: GuessSnapshot, area: pygame.Rect) -> None:
        self._choice_hitboxes = []
        if snap.mode.uses_choices:
            n = max(1, len(snap.choices))
            gap = 10
            bw = (area.w - gap * (n - 1)) // n
            for i, choice in enumerate(snap.choices):
                rect = pygame.Rect(area.x + i * (bw + gap), area.y, bw, area.h)
                pygame.draw.rect(surface, PANEL, rect, border_radius=14)
                pygame.draw.rect(surface, BORDER, rect, 1, border_radius=14)
                text = self._font.render(f"{i + 1}. {choice}", True, TEXT)
                surface.blit(text, text.get_rect(center=rect.center))
                self._choice_hitboxes.append((rect, choice))
            return

        pygame.draw.rect(surface, PANEL, area, border_radius=14)
        pygame.draw.rect(surface, ACCENT, area, 2, border_radius=14)
        shown = self._input if self._input else "Type your guess..."
        text = self._font.render(shown, True, TEXT if self._input else MUTED)
        surface.blit(text, (area.x + 14, area.centery - text.get_height() // 2))


def _with_width(rect: pygame.Rect, width: int) -> pygame.Rect:
    return pygame.Rect(rect.x, rect.y, max(0, width), rect.h)


class SettingsScreen:
    _rows = ("mode", "clues", "volume", "back")

    def __init__(self, app: App, *, services: Services) -> None:
        self._app = app
        self._services = services
        self._selected = 0
        self._title_font = pygame.font.Font(None, 56)
        self._font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        row = self._rows[self._selected]
        if event.key in (pygame.K_UP, pygame.K_w):
            self._selected = (self._selected - 1) % len(self._rows)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._selected = (self._selected + 1) % len(self._rows)
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()
        elif event.key in (pygame.K_LEFT, pygame.K_RIGHT, pygame.K_RETURN, pygame.K_SPACE):
            step = -1 if event.key == pygame.K_LEFT else 1
            self._adjust(row, step)

    def _adjust(self, row: str, step: int) -> None:
        settings = self._services.settings
        if row == "mode":
            order = tuple(Mode)
            mode = order[(order.index(settings.mode) + step) % len(order)]
            self._services.update_settings(mode=mode)
        elif row == "clues":
            self._services.update_settings(show_clue=not settings.show_clue)
        elif row == "volume":
            volume = round(max(0.0, min(1.0, settings.sound_volume + 0.1 * step)), 2)
            self._services.update_settings(sound_volume=volume)
        else:
            self._app.pop()

    def _labels(self) -> list[str]:
        s = self._services.settings
        mode_label = {
            Mode.TIMED: "Timed (5s)",
            Mode.CLASSIC: "Classic (Untimed)",
            Mode.MULTIPLE_CHOICE: "Multiple Choice (5s)",
            Mode.SURVIVAL: "Survival (3 Lives)",
        }[s.mode]
        return [
            f"Game Mode: {mode_label}",
            "Clues Enabled" if s.show_clue else "Clues Disabled",
            f"Sound Volume ({int(round(s.sound_volume * 100))}%)",
            "Back to Home",
        ]

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)
        title = self._title_font.render("Settings", True, TEXT)
        surface.blit(title, title.get_rect(center=(w // 2, 70)))
        y = 140
        for idx, label in enumerate(self._labels()):
            row = pygame.Rect(w // 2 - 220, y, 440, 44)
            pygame.draw.rect(surface, ACCENT if idx == self._selected else PANEL, row, border_radius=14)
            text = self._font.render(label, True, TEXT)
            surface.blit(text, text.get_rect(center=row.center))
            y += 56
        foot = self._hint_font.render("Left/Right: Change  |  Esc: Back", True, MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


class ResultsScreen:
    def __init__(self, app: App, *, services: Services, game: GameScreen | None = None) -> None:
        self._app = app
        self._services = services
        self._game = game
        self._unlocked = load_achievements(services.store)
        self._title_font = pygame.font.Font(None, 56)
        self._font = pygame.font.Font(None, 30)
        self._small_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER) and self._game is not None:
            self._game.play_again()
            self._app.pop()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._game is not None:
                self._game.session.close()
                self._app.pop()
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill(BG)
        title = self._title_font.render("Results", True, TEXT)
        surface.blit(title, title.get_rect(center=(w // 2, 50)))

        if self._game is not None:
            tiles = self._game.session.result().tiles()
            tile_w = (w - 80 - (len(tiles) - 1) * 12) // len(tiles)
            for i, (label, value) in enumerate(tiles):
                rect = pygame.Rect(40 + i * (tile_w + 12), 90, tile_w, 64)
                _draw_tile(surface, rect, label, value, self._font, self._small_font)

        y = 180
        for ach in ACHIEVEMENTS:
            entry = self._unlocked.get(ach.achievement_id)
            rect = pygame.Rect(40, y, w - 80, 44)
            pygame.draw.rect(surface, WIN_BG if entry else PANEL, rect, border_radius=12)
            status = f"Unlocked on {entry.unlocked[:10]}" if entry else "Not unlocked yet"
            line = self._font.render(f"{ach.name}: {ach.description}", True, TEXT)
            surface.blit(line, (rect.x + 12, rect.y + 4))
            st = self._small_font.render(status, True, MUTED if entry is None else TEXT)
            surface.blit(st, (rect.x + 12, rect.y + 26))
            y += 52

        hint = "Enter: Play Again  |  Esc: Back to Home" if self._game is not None else "Esc: Back"
        foot = self._small_font.render(hint, True, MUTED)
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def _open_store() -> KeyValueStore:
    try:
        return SqliteKeyValueStore(default_db_path())
    except OSError as exc:
        logger.warning("Could not open progress store ({}); progress will not be saved", exc)
        return InMemoryStore()


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    store: KeyValueStore | None = None,
    rounds: list[RoundRecord] | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("Guess It!")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    kv = store if store is not None else _open_store()
    settings = load_settings(kv)
    services = Services(
        clock=RealClock(),
        store=kv,
        sound=PygameSound(volume=settings.sound_volume),
        rounds=rounds if rounds is not None else load_rounds(os.environ.get(ROUNDS_SOURCE_ENV)),
        settings=settings,
    )
    images = ImageCache(fetch_remote=os.environ.get(FETCH_IMAGES_ENV, "0") == "1")

    def start_game() -> None:
        app.push(GameScreen(app, services=services, seed=_new_seed(), images=images))

    main_items = [
        MenuItem("Start Game", start_game),
        MenuItem("Settings", lambda: app.push(SettingsScreen(app, services=services))),
        MenuItem("View Results", lambda: app.push(ResultsScreen(app, services=services))),
        MenuItem("Quit", app.quit),
    ]
    app.push(
        MenuScreen(
            app,
            "Guess It!",
            main_items,
            is_root=True,
            subtitle="Guess the object in the image!",
        )
    )

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

            frame_clock.tick(TARGET_FPS)
    finally:
        if isinstance(kv, SqliteKeyValueStore) and store is None:
            kv.close()
        pygame.quit()

    return 0
