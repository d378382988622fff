"""Fire-and-forget sound cues.

The game engine only ever calls `play(cue)`; whether anything is audible is
up to the player object. The pygame player synthesizes short tones at
startup and silently disables itself when no mixer is available.
"""

from __future__ import annotations

import math
import os
from array import array
from enum import Enum
from typing import Protocol

import pygame
from loguru import logger

DISABLE_SOUND_ENV = "GUESS_IT_DISABLE_SOUND"


class SoundCue(str, Enum):
    CLICK = "click"
    WIN = "win"
    FAIL = "fail"
    TRANSITION = "transition"


class SoundPlayer(Protocol):
    def play(self, cue: SoundCue) -> None: ...


class NullSound:
    """Discards every cue."""

    def play(self, cue: SoundCue) -> None:
        _ = cue


class RecordingSound:
    """Remembers cues instead of playing them."""

    def __init__(self) -> None:
        self.cues: list[SoundCue] = []

    def play(self, cue: SoundCue) -> None:
        self.cues.append(cue)


# (waveform, start Hz, end Hz, sweep seconds, total seconds, gain)
_CUE_SHAPES: dict[SoundCue, tuple[str, float, float, float, float, float]] = {
    SoundCue.WIN: ("sine", 600.0, 800.0, 0.30, 0.50, 0.50),
    SoundCue.FAIL: ("square", 300.0, 200.0, 0.40, 0.40, 0.40),
    SoundCue.CLICK: ("triangle", 1000.0, 1000.0, 0.10, 0.10, 0.30),
    SoundCue.TRANSITION: ("sine", 500.0, 700.0, 0.20, 0.30, 0.40),
}


def _wave(kind: str, phase: float) -> float:
    if kind == "square":
        return 1.0 if math.sin(phase) >= 0.0 else -1.0
    if kind == "triangle":
        return (2.0 / math.pi) * math.asin(math.sin(phase))
    return math.sin(phase)


def render_cue_pcm(cue: SoundCue, *, sample_rate: int, channels: int = 1) -> array[int]:
    """Signed 16-bit PCM for a cue: a frequency sweep with exponential fade-out."""

    kind, f0, f1, sweep_s, total_s, gain = _CUE_SHAPES[cue]
    amp = 32767
    count = max(1, int(sample_rate * total_s))
    out = array("h")
    phase = 0.0
    for idx in range(count):
        t = idx / float(sample_rate)
        frac = min(1.0, t / sweep_s) if sweep_s > 0 else 1.0
        freq = f0 + (f1 - f0) * frac
        phase += 2.0 * math.pi * freq / float(sample_rate)
        # Exponential ramp from gain down to ~0.001 over the cue length.
        envelope = gain * math.pow(0.001 / gain, t / total_s)
        sample = int(max(-1.0, min(1.0, _wave(kind, phase) * envelope)) * amp)
        for _ in range(channels):
            out.append(sample)
    return out


class PygameSound:
    def __init__(self, *, volume: float = 0.5) -> None:
        self._volume = max(0.0, min(1.0, float(volume)))
        self._sounds: dict[SoundCue, pygame.mixer.Sound] = {}
        self._available = False

        if os.environ.get(DISABLE_SOUND_ENV, "0") == "1":
            return

        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=22050, size=-16, channels=1, buffer=512)
            init = pygame.mixer.get_init()
            if init is None:
                return
            sample_rate, size, channels = init
            if size != -16:
                logger.debug("Mixer format {} unsupported; sound disabled", size)
                return
            for cue in SoundCue:
                pcm = render_cue_pcm(cue, sample_rate=sample_rate, channels=channels)
                self._sounds[cue] = pygame.mixer.Sound(buffer=pcm.tobytes())
            self._available = True
        except pygame.error as exc:
            logger.debug("Audio unavailable: {}", exc)
            self._available = False

    @property
    def available(self) -> bool:
        return self._available

    @property
    def volume(self) -> float:
        return self._volume

    def set_volume(self, volume: float) -> None:
        self._volume = max(0.0, min(1.0, float(volume)))

    def play(self, cue: SoundCue) -> None:
        if not self._available or self._volume <= 0.0:
            return
        sound = self._sounds.get(cue)
        if sound is None:
            return
        sound.set_volume(self._volume)
        sound.play()
