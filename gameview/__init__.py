"""Per-session NES view controller: remote input in, frames and audio out."""

from .config import CHANNELS, SAMPLE_RATE, TIME_FRAME, SessionConfig, load_config
from .driver import EmulationDriver
from .errors import BackendError, ChannelClosed, GameViewError, JobFailed, JobFailedWarning
from .events import EventBus
from .input import ButtonState, InputDecoder, decode_bits, encode_buttons
from .jobs import Job, JobSlot, StateJobQueue
from .session import GameView, SessionState
from .streams import Channel

__all__ = [
    "CHANNELS",
    "SAMPLE_RATE",
    "TIME_FRAME",
    "SessionConfig",
    "load_config",
    "EmulationDriver",
    "BackendError",
    "ChannelClosed",
    "GameViewError",
    "JobFailed",
    "JobFailedWarning",
    "EventBus",
    "ButtonState",
    "InputDecoder",
    "decode_bits",
    "encode_buttons",
    "Job",
    "JobSlot",
    "StateJobQueue",
    "GameView",
    "SessionState",
    "Channel",
]
