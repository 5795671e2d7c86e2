"""Native libretro machine implemented via ctypes (no external binding)."""

from __future__ import annotations

import ctypes as C
import math
import os
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from . import register_backend
from .base import BUTTON_NAMES, NUM_KEYS, PathLike, check_buttons
from gameview.errors import BackendError
from gameview.streams import Channel


# libretro environment/pixel constants we need
RETRO_ENVIRONMENT_SET_PIXEL_FORMAT = 10
RETRO_ENVIRONMENT_GET_SYSTEM_DIRECTORY = 9
RETRO_ENVIRONMENT_GET_SAVE_DIRECTORY = 31
RETRO_ENVIRONMENT_SET_SUPPORT_NO_GAME = 18

RETRO_MEMORY_SAVE_RAM = 0
RETRO_MEMORY_SYSTEM_RAM = 2

RETRO_DEVICE_JOYPAD = 1
RETRO_DEVICE_ID_JOYPAD_MAP = {
    "B": 0,
    "SELECT": 2,
    "START": 3,
    "UP": 4,
    "DOWN": 5,
    "LEFT": 6,
    "RIGHT": 7,
    "A": 8,
}

RETRO_PIXEL_FORMAT_0RGB1555 = 0
RETRO_PIXEL_FORMAT_XRGB8888 = 1
RETRO_PIXEL_FORMAT_RGB565 = 2

NUM_PORTS = 2


class RetroGameInfo(C.Structure):
    _fields_ = [
        ("path", C.c_char_p),
        ("data", C.c_void_p),
        ("size", C.c_size_t),
        ("meta", C.c_char_p),
    ]


class RetroSystemInfo(C.Structure):
    _fields_ = [
        ("library_name", C.c_char_p),
        ("library_version", C.c_char_p),
        ("valid_extensions", C.c_char_p),
        ("need_fullpath", C.c_bool),
        ("block_extract", C.c_bool),
    ]


class RetroGameGeometry(C.Structure):
    _fields_ = [
        ("base_width", C.c_uint),
        ("base_height", C.c_uint),
        ("max_width", C.c_uint),
        ("max_height", C.c_uint),
        ("aspect_ratio", C.c_float),
    ]


class RetroSystemTiming(C.Structure):
    _fields_ = [
        ("fps", C.c_double),
        ("sample_rate", C.c_double),
    ]


class RetroSystemAVInfo(C.Structure):
    _fields_ = [
        ("geometry", RetroGameGeometry),
        ("timing", RetroSystemTiming),
    ]


retro_environment_t = C.CFUNCTYPE(C.c_bool, C.c_uint, C.c_void_p)
retro_video_refresh_t = C.CFUNCTYPE(None, C.c_void_p, C.c_uint, C.c_uint, C.c_size_t)
retro_audio_sample_t = C.CFUNCTYPE(None, C.c_int16, C.c_int16)
retro_audio_sample_batch_t = C.CFUNCTYPE(C.c_size_t, C.c_void_p, C.c_size_t)
retro_input_poll_t = C.CFUNCTYPE(None)
retro_input_state_t = C.CFUNCTYPE(C.c_int16, C.c_uint, C.c_uint, C.c_uint, C.c_uint)


class _LibretroCore:
    """Minimal libretro driver using ctypes."""

    def __init__(self, core_path: str, system_dir: str, save_dir: str) -> None:
        self.core_path = core_path
        self.system_dir = system_dir
        self.save_dir = save_dir

        self._lib = C.CDLL(core_path)
        self._need_fullpath = True
        self._rom_bytes: Optional[bytes] = None
        self._rom_buffer = None
        self._pixel_format = RETRO_PIXEL_FORMAT_XRGB8888
        self._frame = np.zeros((240, 256, 3), dtype=np.uint8)
        self._joypad_state = [[False] * NUM_KEYS for _ in range(NUM_PORTS)]
        self._audio_blocks: List[np.ndarray] = []

        # Buffers we must keep alive for libretro
        self._system_dir_buf = C.create_string_buffer(system_dir.encode("utf-8"))
        self._save_dir_buf = C.create_string_buffer(save_dir.encode("utf-8"))

        # Prepare callbacks (keep references on self to avoid GC)
        self._env_cb = retro_environment_t(self._environment_cb)
        self._video_cb = retro_video_refresh_t(self._video_cb_wrapper)
        self._audio_cb = retro_audio_sample_t(self._audio_cb_wrapper)
        self._audio_batch_cb = retro_audio_sample_batch_t(self._audio_batch_cb_wrapper)
        self._input_poll_cb = retro_input_poll_t(self._input_poll_cb_wrapper)
        self._input_state_cb = retro_input_state_t(self._input_state_cb_wrapper)

        self._lib.retro_set_environment.argtypes = [retro_environment_t]
        self._lib.retro_set_video_refresh.argtypes = [retro_video_refresh_t]
        self._lib.retro_set_audio_sample.argtypes = [retro_audio_sample_t]
        self._lib.retro_set_audio_sample_batch.argtypes = [retro_audio_sample_batch_t]
        self._lib.retro_set_input_poll.argtypes = [retro_input_poll_t]
        self._lib.retro_set_input_state.argtypes = [retro_input_state_t]
        self._lib.retro_set_controller_port_device.argtypes = [C.c_uint, C.c_uint]
        self._lib.retro_serialize_size.restype = C.c_size_t
        self._lib.retro_serialize.argtypes = [C.c_void_p, C.c_size_t]
        self._lib.retro_serialize.restype = C.c_bool
        self._lib.retro_unserialize.argtypes = [C.c_void_p, C.c_size_t]
        self._lib.retro_unserialize.restype = C.c_bool
        self._lib.retro_get_memory_size.argtypes = [C.c_uint]
        self._lib.retro_get_memory_size.restype = C.c_size_t
        self._lib.retro_get_memory_data.argtypes = [C.c_uint]
        self._lib.retro_get_memory_data.restype = C.c_void_p

        self._lib.retro_set_environment(self._env_cb)
        self._lib.retro_set_video_refresh(self._video_cb)
        self._lib.retro_set_audio_sample(self._audio_cb)
        self._lib.retro_set_audio_sample_batch(self._audio_batch_cb)
        self._lib.retro_set_input_poll(self._input_poll_cb)
        self._lib.retro_set_input_state(self._input_state_cb)

        self._lib.retro_init()
        sys_info = RetroSystemInfo()
        self._lib.retro_get_system_info.argtypes = [C.POINTER(RetroSystemInfo)]
        self._lib.retro_get_system_info(C.byref(sys_info))
        self._need_fullpath = bool(sys_info.need_fullpath)
        self.fps = 60.0
        self.core_sample_rate = 0.0

    def load_game(self, rom_path: str) -> None:
        self._lib.retro_load_game.argtypes = [C.POINTER(RetroGameInfo)]
        self._lib.retro_load_game.restype = C.c_bool
        game = RetroGameInfo()
        if self._need_fullpath:
            game.path = rom_path.encode("utf-8")
            game.data = None
            game.size = 0
        else:
            with open(rom_path, "rb") as f:
                self._rom_bytes = f.read()
            self._rom_buffer = C.create_string_buffer(self._rom_bytes)
            game.path = None
            game.size = len(self._rom_bytes or b"")
            game.data = C.cast(self._rom_buffer, C.c_void_p)  # type: ignore[arg-type]
        ok = self._lib.retro_load_game(C.byref(game))
        if not ok:
            raise BackendError("retro_load_game failed")
        for port in range(NUM_PORTS):
            self._lib.retro_set_controller_port_device(port, RETRO_DEVICE_JOYPAD)

        # Timing is only reliable once a game is loaded.
        av_info = RetroSystemAVInfo()
        self._lib.retro_get_system_av_info.argtypes = [C.POINTER(RetroSystemAVInfo)]
        self._lib.retro_get_system_av_info(C.byref(av_info))
        self.fps = float(av_info.timing.fps or 60.0)
        self.core_sample_rate = float(av_info.timing.sample_rate or 0.0)

    def reset(self) -> None:
        self._lib.retro_reset()

    def run(self) -> None:
        self._lib.retro_run()

    def unload(self) -> None:
        try:
            self._lib.retro_unload_game()
        finally:
            self._lib.retro_deinit()

    # Callback implementations -------------------------------------------------

    def _environment_cb(self, cmd: C.c_uint, data: C.c_void_p) -> bool:
        cmd_int = int(cmd)
        if cmd_int == RETRO_ENVIRONMENT_SET_PIXEL_FORMAT:
            ptr = C.cast(data, C.POINTER(C.c_uint))
            if ptr:
                ptr[0] = RETRO_PIXEL_FORMAT_XRGB8888
            self._pixel_format = RETRO_PIXEL_FORMAT_XRGB8888
            return True
        if cmd_int == RETRO_ENVIRONMENT_GET_SYSTEM_DIRECTORY:
            ptr = C.cast(data, C.POINTER(C.c_char_p))
            ptr[0] = C.cast(self._system_dir_buf, C.c_char_p)
            return True
        if cmd_int == RETRO_ENVIRONMENT_GET_SAVE_DIRECTORY:
            ptr = C.cast(data, C.POINTER(C.c_char_p))
            ptr[0] = C.cast(self._save_dir_buf, C.c_char_p)
            return True
        return False

    def _video_cb_wrapper(self, data: C.c_void_p, width: int, height: int, pitch: int) -> None:
        if not data:
            return
        w = int(width)
        h = int(height)
        if h <= 0 or w <= 0:
            return
        raw = C.string_at(data, pitch * h)
        if self._pixel_format == RETRO_PIXEL_FORMAT_XRGB8888:
            arr = np.frombuffer(raw, dtype=np.uint8).reshape(h, pitch // 4, 4)
            usable_w = min(w, arr.shape[1])
            if usable_w <= 0:
                return
            # XRGB8888 is stored little-endian as B, G, R, X.
            self._frame = np.ascontiguousarray(arr[:, :usable_w, 2::-1])
            return
        arr = np.frombuffer(raw, dtype=np.uint16).reshape(h, pitch // 2)
        usable_w = min(w, arr.shape[1])
        if usable_w <= 0:
            return
        px = arr[:, :usable_w]
        frame = np.empty((h, usable_w, 3), dtype=np.uint8)
        if self._pixel_format == RETRO_PIXEL_FORMAT_RGB565:
            frame[:, :, 0] = (((px >> 11) & 0x1F) * 255) // 31
            frame[:, :, 1] = (((px >> 5) & 0x3F) * 255) // 63
            frame[:, :, 2] = ((px & 0x1F) * 255) // 31
        else:
            frame[:, :, 0] = (((px >> 10) & 0x1F) * 255) // 31
            frame[:, :, 1] = (((px >> 5) & 0x1F) * 255) // 31
            frame[:, :, 2] = ((px & 0x1F) * 255) // 31
        self._frame = frame

    def _audio_cb_wrapper(self, left: int, right: int) -> None:
        self._audio_blocks.append(np.array([[left, right]], dtype=np.int16))

    def _audio_batch_cb_wrapper(self, data: C.c_void_p, frames: int) -> int:
        n = int(frames)
        if data and n > 0:
            raw = C.string_at(data, n * 2 * 2)
            self._audio_blocks.append(np.frombuffer(raw, dtype=np.int16).reshape(n, 2).copy())
        return n

    def _input_poll_cb_wrapper(self) -> None:
        # Nothing to do; state pulled via _input_state_cb_wrapper.
        return

    def _input_state_cb_wrapper(self, port: int, device: int, index: int, key_id: int) -> int:
        if port >= NUM_PORTS or device != RETRO_DEVICE_JOYPAD:
            return 0
        state = self._joypad_state[port]
        for idx, name in enumerate(BUTTON_NAMES):
            if RETRO_DEVICE_ID_JOYPAD_MAP.get(name, -1) == key_id:
                return 1 if state[idx] else 0
        return 0

    # Public helpers -----------------------------------------------------------

    def set_buttons(self, port: int, buttons: Sequence[bool]) -> None:
        self._joypad_state[port] = list(buttons)

    def get_frame(self) -> np.ndarray:
        return np.ascontiguousarray(self._frame)

    def pop_audio(self) -> np.ndarray:
        """Return captured stereo int16 samples as an (N, 2) array and clear them."""
        if not self._audio_blocks:
            return np.zeros((0, 2), dtype=np.int16)
        blocks, self._audio_blocks = self._audio_blocks, []
        return np.concatenate(blocks, axis=0)

    def serialize(self) -> bytes:
        size = int(self._lib.retro_serialize_size())
        if size <= 0:
            raise BackendError("Core does not support serialization.")
        buf = C.create_string_buffer(size)
        if not self._lib.retro_serialize(buf, size):
            raise BackendError("retro_serialize failed")
        return buf.raw

    def unserialize(self, blob: bytes) -> None:
        buf = C.create_string_buffer(blob, len(blob))
        if not self._lib.retro_unserialize(buf, len(blob)):
            raise BackendError("retro_unserialize failed")

    def memory(self, region: int) -> tuple[Optional[int], int]:
        size = int(self._lib.retro_get_memory_size(region))
        ptr = self._lib.retro_get_memory_data(region)
        return ptr, size


class _LibretroPort:
    def __init__(self, core: _LibretroCore, port: int) -> None:
        self._core = core
        self._port = port

    def set_buttons(self, buttons: Sequence[bool]) -> None:
        self._core.set_buttons(self._port, check_buttons(buttons))


class LibretroMachine:
    """Machine driving a libretro NES core via ctypes."""

    def __init__(
        self,
        *,
        core_path: Optional[str] = None,
        rom_path: Optional[str] = None,
        system_dir: Optional[str] = None,
        save_dir: Optional[str] = None,
    ) -> None:
        resolved_core = Path(core_path or os.environ.get("GAMEVIEW_CORE_PATH", "")).expanduser()
        if not resolved_core.is_file():
            raise FileNotFoundError(
                f"Libretro core not found. Set GAMEVIEW_CORE_PATH or pass core_path. "
                f"Tried: {resolved_core}"
            )
        resolved_rom = Path(rom_path or os.environ.get("GAMEVIEW_ROM_PATH", "")).expanduser()
        if not resolved_rom.is_file():
            raise FileNotFoundError(
                "NES ROM not found. Set GAMEVIEW_ROM_PATH or pass rom_path."
            )
        self._core = _LibretroCore(
            str(resolved_core),
            system_dir or resolved_core.parent.as_posix(),
            save_dir or resolved_core.parent.as_posix(),
        )
        self._core.load_game(str(resolved_rom))
        self.controller1 = _LibretroPort(self._core, 0)
        self.controller2 = _LibretroPort(self._core, 1)
        self._audio_channel: Optional[Channel[float]] = None
        self.sample_rate = 0.0
        self._pending_time = 0.0

    @property
    def fps(self) -> float:
        return self._core.fps

    def reset(self) -> None:
        self._core.reset()
        self._core.pop_audio()
        self._pending_time = 0.0

    def step_seconds(self, seconds: float) -> None:
        self._pending_time += max(0.0, float(seconds))
        frames = int(math.floor(self._pending_time * self._core.fps))
        self._pending_time -= frames / self._core.fps
        for _ in range(frames):
            self._core.run()
        self._push_audio(self._core.pop_audio())

    def save_state(self, path: PathLike) -> None:
        blob = self._core.serialize()
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".tmp")
        tmp.write_bytes(blob)
        os.replace(tmp, target)

    def load_state(self, path: PathLike) -> None:
        self._core.unserialize(Path(path).read_bytes())

    def buffer(self) -> np.ndarray:
        return self._core.get_frame()

    def set_audio_sample_rate(self, sample_rate: float) -> None:
        self.sample_rate = max(0.0, float(sample_rate))

    def set_audio_channel(self, channel: Optional[Channel[float]]) -> None:
        self._audio_channel = channel

    def _push_audio(self, stereo: np.ndarray) -> None:
        channel = self._audio_channel
        if channel is None or self.sample_rate <= 0 or stereo.shape[0] == 0:
            return
        mono = stereo.astype(np.float32).mean(axis=1) / 32768.0
        src_rate = self._core.core_sample_rate or self.sample_rate
        if src_rate != self.sample_rate:
            n_out = int(mono.size * self.sample_rate / src_rate)
            if n_out <= 0:
                return
            src_t = np.arange(mono.size, dtype=np.float64) / src_rate
            dst_t = np.arange(n_out, dtype=np.float64) / self.sample_rate
            mono = np.interp(dst_t, src_t, mono).astype(np.float32)
        for sample in mono:
            channel.offer(float(sample))

    @property
    def has_battery(self) -> bool:
        ptr, size = self._core.memory(RETRO_MEMORY_SAVE_RAM)
        return bool(ptr) and size > 0

    def read_sram(self) -> bytes:
        ptr, size = self._core.memory(RETRO_MEMORY_SAVE_RAM)
        if not ptr or size == 0:
            return b""
        return C.string_at(ptr, size)

    def write_sram(self, data: bytes) -> None:
        ptr, size = self._core.memory(RETRO_MEMORY_SAVE_RAM)
        if not ptr or size == 0:
            raise BackendError("Cartridge has no battery-backed RAM.")
        payload = bytes(data)[:size]
        C.memmove(ptr, payload, len(payload))

    def close(self) -> None:
        if self._core is not None:
            self._core.unload()


register_backend("libretro", LibretroMachine)
