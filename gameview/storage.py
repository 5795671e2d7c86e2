"""Per-session file locations and battery RAM image I/O.

Both artifacts are addressed by the session's content hash::

    <data_dir>/save/<hash>.dat   full machine snapshot (machine-defined format)
    <data_dir>/sram/<hash>.dat   raw battery RAM bytes
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import numpy as np

DATA_DIR_ENV = "GAMEVIEW_DATA_DIR"
DEFAULT_DATA_DIR = "~/.nes"


def resolve_data_dir(data_dir: Optional[str | Path] = None) -> Path:
    raw = data_dir or os.environ.get(DATA_DIR_ENV) or DEFAULT_DATA_DIR
    return Path(raw).expanduser()


def save_path(hash_: str, data_dir: Optional[str | Path] = None) -> Path:
    return resolve_data_dir(data_dir) / "save" / f"{hash_}.dat"


def sram_path(hash_: str, data_dir: Optional[str | Path] = None) -> Path:
    return resolve_data_dir(data_dir) / "sram" / f"{hash_}.dat"


def read_sram(path: str | Path) -> np.ndarray:
    """Load a battery RAM image; raises ``FileNotFoundError`` when absent."""
    data = Path(path).read_bytes()
    return np.frombuffer(data, dtype=np.uint8).copy()


def write_sram(path: str | Path, sram: bytes | bytearray | np.ndarray) -> Path:
    """Persist a battery RAM image, replacing any previous file atomically."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(sram, (bytes, bytearray)):
        payload = np.frombuffer(bytes(sram), dtype=np.uint8)
    else:
        payload = np.asarray(sram, dtype=np.uint8)
    tmp = target.with_suffix(target.suffix + ".tmp")
    tmp.write_bytes(payload.tobytes())
    os.replace(tmp, target)
    return target


__all__ = [
    "DATA_DIR_ENV",
    "DEFAULT_DATA_DIR",
    "resolve_data_dir",
    "save_path",
    "sram_path",
    "read_sram",
    "write_sram",
]
