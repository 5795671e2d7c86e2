"""Run one game view session in real time.

Drives ``GameView.step`` at the configured frame rate while a consumer thread
drains video and audio, optionally requesting a save and a load part way
through. Useful as a smoke test for a backend and for the save/load paths.

Usage:
  python tools/run_session.py --title demo --hash abc123 --seconds 3
  python tools/run_session.py --hash abc123 --cfg my.yaml \
      --overrides backend=libretro,backend_kwargs.core_path=/cores/nes.so
"""
from __future__ import annotations

import argparse
import queue
import sys
import threading
import time
from pathlib import Path
from typing import Dict, Optional

import numpy as np

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from gameview import ChannelClosed, GameView, load_config


def _consume(view: GameView, counts: Dict[str, int], stop: threading.Event) -> None:
    while not stop.is_set():
        try:
            frame = view.frames.get(timeout=0.1)
        except ChannelClosed:
            return
        except queue.Empty:
            continue
        counts["frames"] += 1
        counts["last_mean"] = int(np.asarray(frame).mean())
        counts["samples"] += len(view.audio.drain())


def run(
    title: str,
    hash_: str,
    seconds: float,
    cfg_path: Optional[str],
    overrides: Optional[str],
    input_bits: int,
    save_at: Optional[float],
    load_at: Optional[float],
) -> Dict[str, object]:
    cfg = load_config(cfg_path, overrides)
    view = GameView.from_config(title, hash_, cfg)
    view.events.on("job_done", lambda e: print(f"[gameview] {e['kind']} -> {e['path']}"))
    view.events.on("job_failed", lambda e: print(f"[gameview] {e['kind']} failed: {e['error']}"))

    counts: Dict[str, int] = {"frames": 0, "samples": 0, "last_mean": 0}
    stop = threading.Event()
    consumer = threading.Thread(target=_consume, args=(view, counts, stop), daemon=True)
    consumer.start()

    resumed = view.enter()
    print(f"[gameview] entered '{title}' ({hash_}) resumed={resumed}")
    view.inputs.put(input_bits)

    period = 1.0 / cfg.fps
    start = time.perf_counter()
    last = start
    saved = loaded = False
    try:
        while True:
            now = time.perf_counter()
            elapsed = now - start
            if elapsed >= seconds:
                break
            if save_at is not None and not saved and elapsed >= save_at:
                view.request_save()
                saved = True
            if load_at is not None and not loaded and elapsed >= load_at:
                view.request_load()
                loaded = True
            view.update(elapsed, now - last)
            last = now
            sleep_for = period - (time.perf_counter() - now)
            if sleep_for > 0:
                time.sleep(sleep_for)
    finally:
        view.exit()
        stop.set()
        view.frames.close()
        consumer.join(timeout=1.0)
        close = getattr(view.machine, "close", None)
        if close is not None:
            close()

    stats = view.stats()
    stats["frames_consumed"] = counts["frames"]
    stats["audio_samples_consumed"] = counts["samples"]
    return stats


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a single game view session")
    parser.add_argument("--title", type=str, default="session")
    parser.add_argument("--hash", type=str, required=True, help="Content hash naming the save files")
    parser.add_argument("--seconds", type=float, default=3.0)
    parser.add_argument("--cfg", type=str, default=None)
    parser.add_argument("--overrides", type=str, default=None, help="Comma separated key=value pairs")
    parser.add_argument("--input-bits", type=lambda s: int(s, 0), default=0,
                        help="Packed button bitfield held for the whole run (e.g. 0x0008 = Start)")
    parser.add_argument("--save-at", type=float, default=None)
    parser.add_argument("--load-at", type=float, default=None)
    args = parser.parse_args()

    stats = run(
        args.title,
        args.hash,
        args.seconds,
        args.cfg,
        args.overrides,
        args.input_bits,
        args.save_at,
        args.load_at,
    )
    for key, value in stats.items():
        print(f"{key:>24}: {value}")


if __name__ == "__main__":
    main()
