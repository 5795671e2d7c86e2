"""Backend factory for emulated machines driven by a game view.

Built-in backends are imported on first use so that ``mock`` never pulls in
ctypes setup for ``libretro``. Other packages add machines with
``register_backend``.
"""

from __future__ import annotations

import importlib
from typing import Dict, Tuple, Type

from .base import BUTTON_NAMES, NUM_KEYS, Controller, Machine

# name -> "module:ClassName", resolved lazily
_BUILTINS: Dict[str, str] = {
    "mock": "gameview.backends.mock_backend:MockMachine",
    "libretro": "gameview.backends.libretro_backend:LibretroMachine",
}
_registry: Dict[str, Type[Machine]] = {}


def register_backend(name: str, backend_cls: Type[Machine]) -> None:
    """Make ``backend_cls`` available to ``make_machine`` under ``name`` (case-insensitive)."""
    _registry[name.lower()] = backend_cls


def _lookup(key: str) -> Type[Machine]:
    if key not in _registry and key in _BUILTINS:
        module_name, _, attr = _BUILTINS[key].partition(":")
        register_backend(key, getattr(importlib.import_module(module_name), attr))
    try:
        return _registry[key]
    except KeyError:
        raise ValueError(
            f"Unknown backend '{key}'. Available: {list(get_backend_names())}"
        ) from None


def make_machine(name: str, **kwargs) -> Machine:
    """Build the machine registered as ``name`` with backend specific ``kwargs``."""
    return _lookup(name.lower())(**kwargs)


def get_backend_names() -> Tuple[str, ...]:
    return tuple(sorted(_registry.keys() | _BUILTINS.keys()))


__all__ = [
    "BUTTON_NAMES",
    "NUM_KEYS",
    "Controller",
    "Machine",
    "register_backend",
    "make_machine",
    "get_backend_names",
]
