"""Real-time stepping of one machine: input, pending jobs, time, frame."""

from __future__ import annotations

import math
import threading
import warnings
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from gameview.backends.base import Machine
from gameview.errors import ChannelClosed, JobFailed, JobFailedWarning
from gameview.events import EventBus
from gameview.input import ButtonState
from gameview.jobs import LOAD, SAVE, Job, StateJobQueue, launch_detached
from gameview.streams import Channel

MAX_STEP_SECONDS = 1.0


@dataclass
class DriverStats:
    steps: int = 0
    clamped_steps: int = 0
    simulated_seconds: float = 0.0
    frames_published: int = 0
    frames_discarded: int = 0
    saves: int = 0
    loads: int = 0
    job_failures: int = 0
    extra_failures: int = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "steps": int(self.steps),
            "clamped_steps": int(self.clamped_steps),
            "simulated_seconds": float(self.simulated_seconds),
            "frames_published": int(self.frames_published),
            "frames_discarded": int(self.frames_discarded),
            "saves": int(self.saves),
            "loads": int(self.loads),
            "job_failures": int(self.job_failures),
            "extra_failures": int(self.extra_failures),
        }


class EmulationDriver:
    """Advance ``machine`` once per render tick.

    Each ``step`` pushes the decoded buttons into both controllers, applies at
    most one pending save and then one pending load, advances simulated time
    and publishes the rendered frame. Jobs run before the machine advances so
    a save captures the state left by the previous tick and a freshly loaded
    state is the one rendered this tick.
    """

    def __init__(
        self,
        machine: Machine,
        buttons: ButtonState,
        jobs: StateJobQueue,
        frames: Channel[np.ndarray],
        *,
        max_step_seconds: float = MAX_STEP_SECONDS,
        events: Optional[EventBus] = None,
    ) -> None:
        self.machine = machine
        self.buttons = buttons
        self.jobs = jobs
        self.frames = frames
        self.max_step_seconds = float(max_step_seconds)
        self.events = events or EventBus()
        self.stats = DriverStats()
        self._stats_lock = threading.Lock()

    def step(self, elapsed_seconds: float) -> float:
        """Run one tick and return the simulated seconds actually advanced.

        A gap longer than ``max_step_seconds`` (a stall or pause) advances no
        time at all. The frame publish blocks while the frame channel is full;
        once the channel is closed the frame is discarded and the tick still
        completes.
        """
        dt = float(elapsed_seconds)
        clamped = False
        if math.isnan(dt) or dt > self.max_step_seconds or dt < 0.0:
            dt = 0.0
            clamped = True

        self._update_controllers()
        self._update_jobs()
        self.machine.step_seconds(dt)

        frame = self.machine.buffer()
        try:
            self.frames.put(frame)
            published = True
        except ChannelClosed:
            published = False

        with self._stats_lock:
            self.stats.steps += 1
            self.stats.clamped_steps += int(clamped)
            self.stats.simulated_seconds += dt
            self.stats.frames_published += int(published)
            self.stats.frames_discarded += int(not published)
        return dt

    def stats_snapshot(self) -> Dict[str, Any]:
        with self._stats_lock:
            return self.stats.snapshot()

    def _update_controllers(self) -> None:
        player1, player2 = self.buttons.split()
        self.machine.controller1.set_buttons(player1)
        self.machine.controller2.set_buttons(player2)

    def _update_jobs(self) -> None:
        save_job = self.jobs.consume_save()
        if save_job is not None:
            self._apply(save_job)
        load_job = self.jobs.consume_load()
        if load_job is not None:
            self._apply(load_job)

    def _apply(self, job: Job) -> bool:
        try:
            if job.kind == SAVE:
                self.machine.save_state(job.path)
            elif job.kind == LOAD:
                self.machine.load_state(job.path)
            else:
                raise ValueError(f"Unknown job kind '{job.kind}'")
        except Exception as exc:
            failure = JobFailed(job.kind, job.path, exc)
            with self._stats_lock:
                self.stats.job_failures += 1
            warnings.warn(str(failure), JobFailedWarning)
            self.events.emit("job_failed", kind=job.kind, path=str(job.path), error=failure)
            return False

        with self._stats_lock:
            if job.kind == SAVE:
                self.stats.saves += 1
            else:
                self.stats.loads += 1
        self.events.emit("job_done", kind=job.kind, path=str(job.path))
        if job.extra is not None:
            launch_detached(
                job.extra,
                name=f"gameview-{job.kind}-extra",
                on_error=lambda exc, job=job: self._extra_failed(job, exc),
            )
        return True

    def _extra_failed(self, job: Job, exc: BaseException) -> None:
        with self._stats_lock:
            self.stats.extra_failures += 1
        warnings.warn(f"Extra {job.kind} action for {job.path} failed: {exc}", JobFailedWarning)
        self.events.emit("extra_failed", kind=job.kind, path=str(job.path), error=exc)


__all__ = ["MAX_STEP_SECONDS", "DriverStats", "EmulationDriver"]
