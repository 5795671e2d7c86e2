"""Exception and warning types raised by the view controller."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class GameViewError(RuntimeError):
    """Base class for errors raised by ``gameview``."""


class ChannelClosed(GameViewError):
    """Raised when putting to or getting from a closed, drained channel."""


class BackendError(GameViewError):
    """Raised by machine backends when the emulation core rejects a call."""


class JobFailed(GameViewError):
    """A save/load job could not be applied to the machine."""

    def __init__(self, kind: str, path: Path, cause: Optional[BaseException] = None) -> None:
        self.kind = kind
        self.path = Path(path)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{kind} job for {self.path} failed{detail}")


class JobFailedWarning(RuntimeWarning):
    """Category used when a job or its follow-up action fails."""


__all__ = ["GameViewError", "ChannelClosed", "BackendError", "JobFailed", "JobFailedWarning"]
