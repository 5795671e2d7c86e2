from __future__ import annotations

import pytest

from gameview.config import (
    SAMPLE_RATE,
    SessionConfig,
    apply_dot_overrides,
    load_config,
)
from gameview.storage import DATA_DIR_ENV, resolve_data_dir, save_path, sram_path


def test_defaults_match_reference_deployment():
    cfg = load_config()
    assert cfg.sample_rate == SAMPLE_RATE == 16000
    assert cfg.max_step_seconds == 1.0
    assert cfg.fps == 60.0
    assert cfg.backend == "mock"


def test_yaml_file_and_overrides_merge(tmp_path):
    path = tmp_path / "session.yaml"
    path.write_text(
        "session:\n"
        "  data_dir: /srv/nes\n"
        "  frame_queue_size: 4\n"
        "  backend_kwargs:\n"
        "    battery: true\n",
        encoding="utf-8",
    )
    cfg = load_config(path, "max_step_seconds=0.5,backend_kwargs.sram_size=0x800")
    assert cfg.data_dir == "/srv/nes"
    assert cfg.frame_queue_size == 4
    assert cfg.max_step_seconds == 0.5
    assert cfg.backend_kwargs == {"battery": True, "sram_size": 0x800}


def test_root_level_yaml_is_accepted(tmp_path):
    path = tmp_path / "flat.yaml"
    path.write_text("sample_rate: 44100\n", encoding="utf-8")
    assert load_config(path).sample_rate == 44100


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError):
        SessionConfig.from_mapping({"sample_rte": 1})


def test_invalid_values_are_rejected():
    with pytest.raises(ValueError):
        SessionConfig.from_mapping({"max_step_seconds": 0})
    with pytest.raises(ValueError):
        SessionConfig.from_mapping({"fps": -1})


def test_dot_override_parsing():
    cfg: dict = {}
    apply_dot_overrides(cfg, "a.b=true,a.c=1.5,d=0x3,e=null,f=hello")
    assert cfg == {"a": {"b": True, "c": 1.5}, "d": 3, "e": None, "f": "hello"}
    with pytest.raises(ValueError):
        apply_dot_overrides(cfg, "missing_equals")


def test_session_paths_follow_hash(tmp_path, monkeypatch):
    assert save_path("abc", tmp_path) == tmp_path / "save" / "abc.dat"
    assert sram_path("abc", tmp_path) == tmp_path / "sram" / "abc.dat"

    monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "env"))
    assert resolve_data_dir() == tmp_path / "env"
    assert save_path("abc") == tmp_path / "env" / "save" / "abc.dat"
