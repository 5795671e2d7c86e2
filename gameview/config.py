"""Session settings: defaults, YAML files and ``a.b=value`` overrides."""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml

# Audio constants of the reference deployment.
SAMPLE_RATE = 16000
CHANNELS = 1
TIME_FRAME = 60

DEFAULT_CFG_PATH = Path(__file__).resolve().parent.parent / "configs" / "session.yaml"


@dataclass(slots=True)
class SessionConfig:
    """Settings for one game view session."""

    data_dir: Optional[str] = None
    sample_rate: int = SAMPLE_RATE
    fps: float = float(TIME_FRAME)
    max_step_seconds: float = 1.0
    frame_queue_size: int = 1
    audio_queue_size: int = SAMPLE_RATE
    input_queue_size: int = 64
    listener_join_timeout: float = 1.0
    backend: str = "mock"
    backend_kwargs: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SessionConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown session config keys: {unknown}")
        kwargs = {k: copy.deepcopy(v) for k, v in data.items()}
        cfg = cls(**kwargs)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.sample_rate < 0:
            raise ValueError(f"sample_rate must be >= 0, got {self.sample_rate}")
        if self.fps <= 0:
            raise ValueError(f"fps must be > 0, got {self.fps}")
        if self.max_step_seconds <= 0:
            raise ValueError(f"max_step_seconds must be > 0, got {self.max_step_seconds}")
        if not isinstance(self.backend_kwargs, Mapping):
            raise TypeError("backend_kwargs must be a mapping")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _deep_update(target: MutableMapping[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively fold ``updates`` into ``target``; nested mappings merge key by key."""
    for key, value in updates.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, MutableMapping):
            _deep_update(current, value)
        else:
            target[key] = copy.deepcopy(value)


def load_yaml(path: str | Path) -> Dict[str, Any]:
    """Read one YAML config file; an empty file yields ``{}``."""
    text = Path(path).read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError(f"{path}: expected a mapping at the top level, got {type(data).__name__}")
    return data


def apply_dot_overrides(cfg: MutableMapping[str, Any], overrides: str | None) -> None:
    """Apply comma separated ``a.b=value`` pairs to ``cfg`` in place.

    Values use YAML scalar syntax, so ``true``, ``null``, ``0x800`` and ``0.5``
    arrive typed; anything YAML cannot read stays a string.
    """
    for pair in filter(None, (overrides or "").split(",")):
        key, sep, raw = pair.partition("=")
        if not sep:
            raise ValueError(f"Invalid override '{pair}', expected key=value")
        *parents, leaf = key.strip().split(".")
        node = cfg
        for name in parents:
            child = node.get(name)
            if not isinstance(child, MutableMapping):
                child = node[name] = {}
            node = child
        node[leaf] = _scalar(raw.strip())


def _scalar(token: str) -> Any:
    try:
        return yaml.safe_load(token)
    except yaml.YAMLError:
        return token


def load_config(path: str | Path | None = None, overrides: str | None = None) -> SessionConfig:
    """Load defaults, merge ``path`` on top, then apply ``a.b=value`` overrides.

    The YAML may hold the settings at the root or under a ``session`` key.
    """
    cfg: Dict[str, Any] = asdict(SessionConfig())
    for candidate in (DEFAULT_CFG_PATH, path):
        if candidate is None:
            continue
        candidate = Path(candidate)
        if candidate == DEFAULT_CFG_PATH and not candidate.is_file():
            continue
        data = load_yaml(candidate)
        _deep_update(cfg, data.get("session", data))
    apply_dot_overrides(cfg, overrides)
    return SessionConfig.from_mapping(cfg)


__all__ = [
    "SAMPLE_RATE",
    "CHANNELS",
    "TIME_FRAME",
    "DEFAULT_CFG_PATH",
    "SessionConfig",
    "load_yaml",
    "apply_dot_overrides",
    "load_config",
]
