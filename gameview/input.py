"""Remote input decoding into the shared two-controller button state."""

from __future__ import annotations

import threading
from typing import Iterable, Sequence, Tuple

from gameview.backends.base import BUTTON_NAMES, NUM_KEYS

NUM_BUTTONS = NUM_KEYS * 2
INPUT_MASK = (1 << NUM_BUTTONS) - 1

# Index of each button in the 16-entry state, e.g. BUTTON_INDEX["START2"] == 11.
BUTTON_INDEX = {
    **{f"{name}1": i for i, name in enumerate(BUTTON_NAMES)},
    **{f"{name}2": NUM_KEYS + i for i, name in enumerate(BUTTON_NAMES)},
}


class ButtonState:
    """Guarded 16-flag buffer shared by the input listener and the stepping loop.

    Writers replace the whole buffer and readers take a whole snapshot, both
    under one lock, so the stepping loop never sees a half-applied decode.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: Tuple[bool, ...] = (False,) * NUM_BUTTONS

    def write(self, values: Sequence[bool]) -> None:
        if len(values) != NUM_BUTTONS:
            raise ValueError(f"Expected {NUM_BUTTONS} button flags, got {len(values)}.")
        keys = tuple(bool(v) for v in values)
        with self._lock:
            self._keys = keys

    def snapshot(self) -> Tuple[bool, ...]:
        with self._lock:
            return self._keys

    def split(self) -> Tuple[Tuple[bool, ...], Tuple[bool, ...]]:
        """Return ``(player1, player2)``; the first 8 keys belong to player 1."""
        keys = self.snapshot()
        return keys[:NUM_KEYS], keys[NUM_KEYS:]

    def clear(self) -> None:
        with self._lock:
            self._keys = (False,) * NUM_BUTTONS


class InputDecoder:
    """Apply packed input bitfields to a ``ButtonState``."""

    def __init__(self, state: ButtonState) -> None:
        self.state = state
        self._lock = threading.Lock()
        self.decoded = 0

    def decode(self, bits: int) -> None:
        """Replace the button state with bits 0..15 of ``bits`` (LSB first).

        Each key merges as ``(old and pressed) or pressed``, which reduces to
        ``pressed``: every call overwrites all 16 keys from the incoming word.
        """
        bits = int(bits) & INPUT_MASK
        with self._lock:
            old = self.state.snapshot()
            new = []
            for i in range(NUM_BUTTONS):
                pressed = (bits & 1) == 1
                new.append((old[i] and pressed) or pressed)
                bits >>= 1
            self.state.write(new)
            self.decoded += 1


def decode_bits(bits: int) -> Tuple[bool, ...]:
    """Stateless variant of ``InputDecoder.decode``."""
    bits = int(bits) & INPUT_MASK
    return tuple(((bits >> i) & 1) == 1 for i in range(NUM_BUTTONS))


def encode_buttons(keys: Iterable[bool]) -> int:
    """Pack up to 16 flags into the wire bitfield (index 0 -> bit 0)."""
    bits = 0
    for i, pressed in enumerate(keys):
        if i >= NUM_BUTTONS:
            raise ValueError(f"At most {NUM_BUTTONS} button flags can be encoded.")
        if pressed:
            bits |= 1 << i
    return bits


__all__ = [
    "NUM_BUTTONS",
    "INPUT_MASK",
    "BUTTON_INDEX",
    "ButtonState",
    "InputDecoder",
    "decode_bits",
    "encode_buttons",
]
