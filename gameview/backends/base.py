"""Machine capability shared by every emulation backend."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

import numpy as np

from gameview.streams import Channel

# Order matches the wire layout of the input bitfield (bit 0 first).
BUTTON_NAMES: tuple[str, ...] = ("A", "B", "SELECT", "START", "UP", "DOWN", "LEFT", "RIGHT")
NUM_KEYS = len(BUTTON_NAMES)

PathLike = Union[str, Path]


class Controller(Protocol):
    """One NES joypad port."""

    def set_buttons(self, buttons: Sequence[bool]) -> None:
        """Replace the held buttons with ``NUM_KEYS`` flags in ``BUTTON_NAMES`` order."""


class Machine(Protocol):
    """Protocol all emulated machines must satisfy.

    Full-state and battery RAM persistence raise ``OSError`` (or a backend
    specific ``BackendError``) on failure; the caller decides what to do.
    """

    controller1: Controller
    controller2: Controller

    def reset(self) -> None:
        """Return the machine to its power-on state."""

    def step_seconds(self, seconds: float) -> None:
        """Advance emulation by ``seconds`` of simulated time."""

    def save_state(self, path: PathLike) -> None:
        """Serialize the full machine state to ``path``."""

    def load_state(self, path: PathLike) -> None:
        """Restore the full machine state from ``path``."""

    def buffer(self) -> np.ndarray:
        """Return the current rendered frame as a ``uint8`` HxWx3 array."""

    def set_audio_sample_rate(self, sample_rate: float) -> None:
        """Set the rate audio samples are produced at; 0 disables audio."""

    def set_audio_channel(self, channel: Optional[Channel[float]]) -> None:
        """Bind (or detach with ``None``) the sink receiving mono samples."""

    @property
    def has_battery(self) -> bool:
        """Whether the loaded cartridge carries battery-backed RAM."""

    def read_sram(self) -> bytes:
        """Return a copy of the battery RAM region."""

    def write_sram(self, data: bytes) -> None:
        """Overwrite the battery RAM region with ``data``."""


def check_buttons(buttons: Sequence[bool]) -> tuple[bool, ...]:
    """Validate a per-controller button vector and normalise it to bools."""
    if len(buttons) != NUM_KEYS:
        raise ValueError(f"Expected {NUM_KEYS} buttons, got {len(buttons)}.")
    return tuple(bool(b) for b in buttons)


__all__ = ["BUTTON_NAMES", "NUM_KEYS", "Controller", "Machine", "PathLike", "check_buttons"]
