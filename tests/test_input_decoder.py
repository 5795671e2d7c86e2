from __future__ import annotations

import threading

import numpy as np
import pytest

from gameview.input import (
    BUTTON_INDEX,
    NUM_BUTTONS,
    ButtonState,
    InputDecoder,
    decode_bits,
    encode_buttons,
)


def test_decode_replaces_previous_state():
    state = ButtonState()
    state.write([True] * NUM_BUTTONS)
    decoder = InputDecoder(state)

    decoder.decode(0)

    assert state.snapshot() == (False,) * NUM_BUTTONS


def test_decode_matches_bits_for_any_previous_state():
    rng = np.random.default_rng(0)
    state = ButtonState()
    decoder = InputDecoder(state)
    for _ in range(200):
        previous = [bool(v) for v in rng.integers(0, 2, size=NUM_BUTTONS)]
        state.write(previous)
        bits = int(rng.integers(0, 1 << NUM_BUTTONS))
        decoder.decode(bits)
        expected = tuple(((bits >> i) & 1) == 1 for i in range(NUM_BUTTONS))
        assert state.snapshot() == expected


def test_merge_formula_reduces_to_overwrite():
    for old in (False, True):
        for pressed in (False, True):
            assert ((old and pressed) or pressed) == pressed


def test_bit_layout_is_fixed():
    assert BUTTON_INDEX["A1"] == 0
    assert BUTTON_INDEX["START1"] == 3
    assert BUTTON_INDEX["RIGHT1"] == 7
    assert BUTTON_INDEX["A2"] == 8
    assert BUTTON_INDEX["SELECT2"] == 10
    assert BUTTON_INDEX["RIGHT2"] == 15

    keys = decode_bits(1 << BUTTON_INDEX["START2"])
    assert [i for i, k in enumerate(keys) if k] == [11]


def test_bits_above_sixteen_are_ignored():
    state = ButtonState()
    decoder = InputDecoder(state)
    decoder.decode((1 << 16) | (1 << 20) | 0b101)
    assert state.snapshot() == decode_bits(0b101)

    decoder.decode(-1)
    assert state.snapshot() == (True,) * NUM_BUTTONS


def test_encode_inverts_decode():
    keys = [False] * NUM_BUTTONS
    keys[BUTTON_INDEX["A1"]] = True
    keys[BUTTON_INDEX["LEFT2"]] = True
    bits = encode_buttons(keys)
    assert bits == (1 << 0) | (1 << 14)
    assert decode_bits(bits) == tuple(keys)

    with pytest.raises(ValueError):
        encode_buttons([False] * (NUM_BUTTONS + 1))


def test_split_gives_first_eight_to_player_one():
    state = ButtonState()
    values = [True] + [False] * 7 + [False, True] + [False] * 6
    state.write(values)
    p1, p2 = state.split()
    assert p1 == (True, False, False, False, False, False, False, False)
    assert p2 == (False, True, False, False, False, False, False, False)


def test_write_rejects_wrong_length():
    state = ButtonState()
    with pytest.raises(ValueError):
        state.write([True] * 8)


def test_concurrent_decode_never_tears():
    state = ButtonState()
    decoder = InputDecoder(state)
    stop = threading.Event()

    def writer() -> None:
        bits = 0
        while not stop.is_set():
            bits ^= 0xFFFF
            decoder.decode(bits)

    thread = threading.Thread(target=writer)
    thread.start()
    try:
        for _ in range(5000):
            snap = state.snapshot()
            assert all(snap) or not any(snap)
    finally:
        stop.set()
        thread.join()
    assert decoder.decoded > 0
