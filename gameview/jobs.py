"""Deferred save/load jobs handed from any thread to the stepping loop."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

ExtraAction = Callable[[], Any]

SAVE = "save"
LOAD = "load"


@dataclass(frozen=True, slots=True)
class Job:
    """A pending full-state save or load.

    ``extra`` runs on its own thread once the machine operation succeeded
    (e.g. pushing the file to remote storage). Its outcome never reaches the
    stepping loop.
    """

    kind: str
    path: Path
    extra: Optional[ExtraAction] = None


class JobSlot:
    """Single-slot mailbox with last-write-wins semantics.

    ``put`` replaces any unconsumed job; ``take`` atomically reads and clears
    the slot. A job put after a ``take`` stays queued for the next one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._job: Optional[Job] = None
        self.superseded = 0

    def put(self, job: Job) -> Optional[Job]:
        """Store ``job`` and return the unconsumed job it replaced, if any."""
        with self._lock:
            previous, self._job = self._job, job
            if previous is not None:
                self.superseded += 1
            return previous

    def take(self) -> Optional[Job]:
        with self._lock:
            job, self._job = self._job, None
            return job

    def peek(self) -> Optional[Job]:
        with self._lock:
            return self._job

    @property
    def pending(self) -> bool:
        return self.peek() is not None


class StateJobQueue:
    """One save slot and one load slot, filled by requests and drained by steps."""

    def __init__(self) -> None:
        self._save = JobSlot()
        self._load = JobSlot()

    # ---------------------------- request side (any thread)
    def request_save(self, path: Path | str, extra: Optional[ExtraAction] = None) -> None:
        self._save.put(Job(SAVE, Path(path), extra))

    def request_load(self, path: Path | str, extra: Optional[ExtraAction] = None) -> None:
        self._load.put(Job(LOAD, Path(path), extra))

    # ---------------------------- stepping loop side
    def consume_save(self) -> Optional[Job]:
        return self._save.take()

    def consume_load(self) -> Optional[Job]:
        return self._load.take()

    @property
    def save_pending(self) -> bool:
        return self._save.pending

    @property
    def load_pending(self) -> bool:
        return self._load.pending

    @property
    def superseded(self) -> int:
        return self._save.superseded + self._load.superseded


def launch_detached(
    action: ExtraAction,
    *,
    name: str,
    on_error: Optional[Callable[[BaseException], None]] = None,
) -> threading.Thread:
    """Run ``action`` on a daemon thread without waiting for it.

    Exceptions are handed to ``on_error`` on that thread (or left to
    ``threading.excepthook`` without one); nothing is reported back to the
    caller.
    """

    def _run() -> None:
        try:
            action()
        except Exception as exc:
            if on_error is None:
                raise
            on_error(exc)

    thread = threading.Thread(target=_run, name=name, daemon=True)
    thread.start()
    return thread


__all__ = ["SAVE", "LOAD", "ExtraAction", "Job", "JobSlot", "StateJobQueue", "launch_detached"]
