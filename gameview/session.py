"""Session lifecycle of a single game view.

A ``GameView`` owns the input listener, the pending job slots and the
stepping driver for one machine. It moves through three states::

    NOT_ENTERED --enter()--> ACTIVE --exit()--> EXITED

``enter`` resumes from the session's snapshot when one exists (a player
rejoining a running room) and otherwise powers the machine on and restores
battery RAM. No step runs until that restore is done. ``exit`` stops the
listener and closes the frame channel, then detaches audio and persists
battery RAM. Full-state snapshots are only written through ``request_save``.
"""

from __future__ import annotations

import enum
import threading
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from gameview.backends import make_machine
from gameview.backends.base import Machine
from gameview.config import SessionConfig
from gameview.driver import EmulationDriver
from gameview.errors import ChannelClosed
from gameview.events import EventBus
from gameview.input import ButtonState, InputDecoder
from gameview.jobs import ExtraAction, StateJobQueue
from gameview.storage import read_sram, save_path, sram_path, write_sram
from gameview.streams import Channel


class SessionState(enum.Enum):
    NOT_ENTERED = "not_entered"
    ACTIVE = "active"
    EXITED = "exited"


class GameView:
    """View controller binding one machine to its input, video and audio streams."""

    def __init__(
        self,
        machine: Machine,
        title: str,
        hash: str,
        frames: Channel[np.ndarray],
        audio: Channel[float],
        inputs: Channel[int],
        *,
        config: Optional[SessionConfig] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        self.machine = machine
        self.title = str(title)
        self.hash = str(hash)
        self.frames = frames
        self.audio = audio
        self.inputs = inputs
        self.config = config or SessionConfig()
        self.events = events or EventBus()

        self.buttons = ButtonState()
        self.decoder = InputDecoder(self.buttons)
        self.jobs = StateJobQueue()
        self.driver = EmulationDriver(
            machine,
            self.buttons,
            self.jobs,
            frames,
            max_step_seconds=self.config.max_step_seconds,
            events=self.events,
        )

        self._state = SessionState.NOT_ENTERED
        self._state_lock = threading.Lock()
        # Held for a whole step so exit never releases the machine mid-tick.
        self._step_lock = threading.Lock()
        self._listener: Optional[threading.Thread] = None
        self.resumed = False

    @classmethod
    def from_config(cls, title: str, hash: str, config: SessionConfig, **kwargs: Any) -> "GameView":
        """Build the machine named by ``config.backend`` and fresh channels for it."""
        machine = make_machine(config.backend, **dict(config.backend_kwargs))
        return cls(
            machine,
            title,
            hash,
            Channel(config.frame_queue_size),
            Channel(config.audio_queue_size),
            Channel(config.input_queue_size),
            config=config,
            **kwargs,
        )

    # ---------------------------- identity
    @property
    def save_path(self) -> Path:
        return save_path(self.hash, self.config.data_dir)

    @property
    def sram_path(self) -> Path:
        return sram_path(self.hash, self.config.data_dir)

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    # ---------------------------- input listener
    def _listen(self) -> None:
        while True:
            try:
                bits = self.inputs.get()
            except ChannelClosed:
                return
            try:
                self.decoder.decode(bits)
            except (TypeError, ValueError, OverflowError) as exc:
                warnings.warn(f"Dropping malformed input {bits!r}: {exc}")

    def _start_listener(self) -> None:
        if self._listener is not None and self._listener.is_alive():
            return
        self._listener = threading.Thread(
            target=self._listen, name=f"gameview-input-{self.hash}", daemon=True
        )
        self._listener.start()

    def _stop_listener(self) -> None:
        self.inputs.close()
        listener = self._listener
        if listener is None:
            return
        listener.join(timeout=self.config.listener_join_timeout)
        if listener.is_alive():
            warnings.warn("Input listener did not stop before exit; leaving it detached.")
        self._listener = None

    # ---------------------------- lifecycle
    def enter(self) -> bool:
        """Start the session; return ``True`` when resumed from a snapshot."""
        # Steps queue behind the step lock until the machine is restored.
        with self._step_lock:
            with self._state_lock:
                if self._state is not SessionState.NOT_ENTERED:
                    raise RuntimeError(f"Cannot enter a session in state {self._state.value}.")
                self._state = SessionState.ACTIVE

            self.machine.set_audio_sample_rate(self.config.sample_rate)
            self.machine.set_audio_channel(self.audio)

            self.resumed = self._restore_snapshot()
            if not self.resumed:
                self.machine.reset()
                self._restore_sram()

        self._start_listener()
        self.events.emit("entered", title=self.title, hash=self.hash, resumed=self.resumed)
        return self.resumed

    def _restore_snapshot(self) -> bool:
        path = self.save_path
        if not path.is_file():
            return False
        try:
            self.machine.load_state(path)
        except Exception as exc:
            warnings.warn(f"Ignoring unreadable snapshot {path}: {exc}. Resetting machine.")
            return False
        return True

    def _restore_sram(self) -> None:
        if not self.machine.has_battery:
            return
        try:
            sram = read_sram(self.sram_path)
        except FileNotFoundError:
            return
        except OSError as exc:
            warnings.warn(f"Failed to read battery RAM {self.sram_path}: {exc}")
            return
        self.machine.write_sram(sram.tobytes())

    def exit(self) -> None:
        """End the session: stop input, detach audio, persist battery RAM."""
        with self._state_lock:
            if self._state is not SessionState.ACTIVE:
                raise RuntimeError(f"Cannot exit a session in state {self._state.value}.")
            self._state = SessionState.EXITED

        self._stop_listener()
        # Releases a step blocked on a full frame channel.
        self.frames.close()
        with self._step_lock:
            self.machine.set_audio_channel(None)
            self.machine.set_audio_sample_rate(0)
            if self.machine.has_battery:
                try:
                    write_sram(self.sram_path, self.machine.read_sram())
                except OSError as exc:
                    warnings.warn(f"Failed to persist battery RAM {self.sram_path}: {exc}")
        self.events.emit("exited", title=self.title, hash=self.hash)

    def __enter__(self) -> "GameView":
        self.enter()
        return self

    def __exit__(self, *args) -> None:
        if self.state is SessionState.ACTIVE:
            self.exit()

    # ---------------------------- control surface
    def step(self, dt: float) -> float:
        """Advance the session by ``dt`` seconds of wall-clock time."""
        with self._step_lock:
            if self.state is not SessionState.ACTIVE:
                raise RuntimeError("Session is not active.")
            return self.driver.step(dt)

    def update(self, t: float, dt: float) -> float:
        """Render-loop entry point; ``t`` is the absolute time and is unused."""
        return self.step(dt)

    def request_save(self, hash: Optional[str] = None, extra: Optional[ExtraAction] = None) -> Path:
        """Queue a full-state save for the next step; returns the target path."""
        path = save_path(hash or self.hash, self.config.data_dir)
        self.jobs.request_save(path, extra)
        return path

    def request_load(
        self, path: Optional[str | Path] = None, extra: Optional[ExtraAction] = None
    ) -> Path:
        """Queue a full-state load for the next step; defaults to the session snapshot."""
        target = Path(path) if path is not None else self.save_path
        self.jobs.request_load(target, extra)
        return target

    def stats(self) -> Dict[str, Any]:
        stats = self.driver.stats_snapshot()
        stats.update(
            {
                "title": self.title,
                "hash": self.hash,
                "state": self.state.value,
                "resumed": bool(self.resumed),
                "inputs_decoded": int(self.decoder.decoded),
                "jobs_superseded": int(self.jobs.superseded),
                "audio_dropped": int(self.audio.dropped),
            }
        )
        return stats


__all__ = ["SessionState", "GameView"]
