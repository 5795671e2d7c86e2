"""Deterministic in-process machine for tests and headless demos.

The mock keeps just enough state to make save/load, reset, battery RAM and
controller routing observable: a simulated clock, a frame counter, the
buttons held on each port and an optional battery RAM region.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from . import register_backend
from .base import NUM_KEYS, PathLike, check_buttons
from gameview.streams import Channel

FRAME_SHAPE = (240, 256, 3)
DEFAULT_SRAM_SIZE = 0x2000
TONE_HZ = 440.0


class MockController:
    def __init__(self) -> None:
        self.buttons: Tuple[bool, ...] = (False,) * NUM_KEYS
        self.history: List[Tuple[bool, ...]] = []

    def set_buttons(self, buttons: Sequence[bool]) -> None:
        self.buttons = check_buttons(buttons)
        self.history.append(self.buttons)


class MockMachine:
    """Machine with NES timing but no CPU.

    ``reset_calls``, ``stepped`` and ``loaded_from`` record what the view did
    so tests can assert on it.
    """

    def __init__(
        self,
        *,
        battery: bool = False,
        sram_size: int = DEFAULT_SRAM_SIZE,
        fps: float = 60.0,
        tone_hz: float = TONE_HZ,
    ) -> None:
        self.fps = float(fps)
        self.tone_hz = float(tone_hz)
        self.controller1 = MockController()
        self.controller2 = MockController()
        self._battery = bool(battery)
        self._sram = np.zeros(int(sram_size) if battery else 0, dtype=np.uint8)
        self._audio_channel: Optional[Channel[float]] = None
        self.sample_rate = 0.0
        self._audio_phase = 0.0
        self._audio_carry = 0.0

        self.seconds = 0.0
        self.frame_count = 0
        self.power_on = False

        self.reset_calls = 0
        self.stepped: List[float] = []
        self.saved_to: List[Path] = []
        self.loaded_from: List[Path] = []

    # ---------------------------- lifecycle
    def reset(self) -> None:
        self.seconds = 0.0
        self.frame_count = 0
        self.power_on = True
        self._audio_phase = 0.0
        self._audio_carry = 0.0
        self.reset_calls += 1

    def step_seconds(self, seconds: float) -> None:
        seconds = max(0.0, float(seconds))
        self.stepped.append(seconds)
        self.seconds += seconds
        self.frame_count = int(math.floor(self.seconds * self.fps + 1e-9))
        self._emit_audio(seconds)

    # ---------------------------- full state
    def save_state(self, path: PathLike) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as fp:
            np.savez(
                fp,
                seconds=np.float64(self.seconds),
                frame_count=np.int64(self.frame_count),
                buttons=np.asarray(self.controller1.buttons + self.controller2.buttons, dtype=bool),
                sram=self._sram,
            )
        self.saved_to.append(target)

    def load_state(self, path: PathLike) -> None:
        source = Path(path)
        with source.open("rb") as fp:
            with np.load(fp) as data:
                seconds = float(data["seconds"])
                frame_count = int(data["frame_count"])
                sram = np.array(data["sram"], dtype=np.uint8)
        self.seconds = seconds
        self.frame_count = frame_count
        self.power_on = True
        if self._battery and sram.size:
            self._sram = sram
        self.loaded_from.append(source)

    # ---------------------------- video
    def buffer(self) -> np.ndarray:
        frame = np.zeros(FRAME_SHAPE, dtype=np.uint8)
        frame[:, :, 0] = self.frame_count & 0xFF
        # One column band per held button; player 2 uses the blue channel.
        band = FRAME_SHAPE[1] // NUM_KEYS
        for i, pressed in enumerate(self.controller1.buttons):
            if pressed:
                frame[:, i * band:(i + 1) * band, 1] = 0xFF
        for i, pressed in enumerate(self.controller2.buttons):
            if pressed:
                frame[:, i * band:(i + 1) * band, 2] = 0xFF
        return frame

    # ---------------------------- audio
    def set_audio_sample_rate(self, sample_rate: float) -> None:
        self.sample_rate = max(0.0, float(sample_rate))
        self._audio_carry = 0.0

    def set_audio_channel(self, channel: Optional[Channel[float]]) -> None:
        self._audio_channel = channel

    def _emit_audio(self, seconds: float) -> None:
        channel = self._audio_channel
        if channel is None or self.sample_rate <= 0 or seconds <= 0:
            return
        exact = seconds * self.sample_rate + self._audio_carry
        count = int(exact)
        self._audio_carry = exact - count
        step = 2.0 * math.pi * self.tone_hz / self.sample_rate
        for _ in range(count):
            channel.offer(0.25 * math.sin(self._audio_phase))
            self._audio_phase = (self._audio_phase + step) % (2.0 * math.pi)

    # ---------------------------- battery RAM
    @property
    def has_battery(self) -> bool:
        return self._battery

    def read_sram(self) -> bytes:
        return self._sram.tobytes()

    def write_sram(self, data: bytes) -> None:
        if not self._battery:
            raise ValueError("Cartridge has no battery-backed RAM.")
        incoming = np.frombuffer(bytes(data), dtype=np.uint8)
        sram = np.zeros_like(self._sram)
        n = min(incoming.size, sram.size)
        sram[:n] = incoming[:n]
        self._sram = sram

    def poke_sram(self, offset: int, value: int) -> None:
        """Simulate the game writing to battery RAM."""
        self._sram[int(offset)] = int(value) & 0xFF


register_backend("mock", MockMachine)
