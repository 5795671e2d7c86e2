from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from gameview.backends.mock_backend import MockMachine
from gameview.driver import EmulationDriver
from gameview.errors import JobFailedWarning
from gameview.input import ButtonState
from gameview.jobs import StateJobQueue
from gameview.streams import Channel


def _make_driver(machine=None, frames=None):
    machine = machine or MockMachine()
    buttons = ButtonState()
    jobs = StateJobQueue()
    frames = frames if frames is not None else Channel()
    return EmulationDriver(machine, buttons, jobs, frames), machine


def test_long_gap_advances_no_time():
    driver, machine = _make_driver()
    assert driver.step(1.5) == 0.0
    assert machine.stepped[-1] == 0.0
    assert driver.step(0.5) == 0.5
    assert machine.stepped[-1] == 0.5
    assert machine.seconds == pytest.approx(0.5)
    stats = driver.stats_snapshot()
    assert stats["clamped_steps"] == 1
    assert stats["steps"] == 2


def test_exactly_one_second_is_not_clamped():
    driver, machine = _make_driver()
    assert driver.step(1.0) == 1.0
    assert machine.frame_count == 60


def test_negative_and_nan_gaps_advance_no_time():
    driver, machine = _make_driver()
    assert driver.step(-0.1) == 0.0
    assert driver.step(float("nan")) == 0.0
    assert machine.seconds == 0.0


def test_buttons_split_between_controllers():
    driver, machine = _make_driver()
    driver.buttons.write([True] + [False] * 7 + [False, True] + [False] * 6)
    driver.step(0.0)
    assert machine.controller1.buttons == (True,) + (False,) * 7
    assert machine.controller2.buttons == (False, True) + (False,) * 6


def test_one_frame_published_per_step():
    driver, machine = _make_driver()
    for _ in range(3):
        driver.step(1 / 60)
    frames = driver.frames.drain()
    assert len(frames) == 3
    assert all(isinstance(f, np.ndarray) and f.dtype == np.uint8 for f in frames)
    assert frames[-1].shape == (240, 256, 3)


def test_superseded_save_runs_only_latest(tmp_path):
    driver, machine = _make_driver()
    ran = {"f1": threading.Event(), "f2": threading.Event()}
    driver.jobs.request_save(tmp_path / "h1.dat", ran["f1"].set)
    driver.jobs.request_save(tmp_path / "h2.dat", ran["f2"].set)

    driver.step(0.0)

    assert ran["f2"].wait(2.0)
    assert not ran["f1"].is_set()
    assert machine.saved_to == [tmp_path / "h2.dat"]
    assert not (tmp_path / "h1.dat").exists()


def test_save_consumed_once(tmp_path):
    driver, machine = _make_driver()
    driver.jobs.request_save(tmp_path / "state.dat")
    driver.step(0.0)
    driver.step(0.0)
    assert len(machine.saved_to) == 1
    assert driver.stats_snapshot()["saves"] == 1


def test_save_runs_before_time_advances(tmp_path):
    driver, machine = _make_driver()
    driver.step(0.5)
    driver.jobs.request_save(tmp_path / "state.dat")
    driver.step(0.25)

    probe = MockMachine()
    probe.load_state(tmp_path / "state.dat")
    assert probe.seconds == pytest.approx(0.5)


def test_loaded_state_is_the_one_advanced(tmp_path):
    driver, machine = _make_driver()
    driver.step(0.5)
    machine.save_state(tmp_path / "state.dat")
    driver.step(0.5)
    driver.step(0.5)

    driver.jobs.request_load(tmp_path / "state.dat")
    driver.step(0.25)
    assert machine.seconds == pytest.approx(0.75)


def test_save_then_load_in_same_step_order(tmp_path):
    driver, machine = _make_driver()
    driver.step(0.5)
    machine.save_state(tmp_path / "old.dat")
    driver.step(0.5)

    driver.jobs.request_save(tmp_path / "new.dat")
    driver.jobs.request_load(tmp_path / "old.dat")
    driver.step(0.0)

    probe = MockMachine()
    probe.load_state(tmp_path / "new.dat")
    assert probe.seconds == pytest.approx(1.0)
    assert machine.seconds == pytest.approx(0.5)


def test_failed_load_is_reported_and_stepping_continues(tmp_path):
    driver, machine = _make_driver()
    failures = []
    driver.events.on("job_failed", failures.append)
    extra = threading.Event()
    driver.step(0.5)

    driver.jobs.request_load(tmp_path / "missing.dat", extra.set)
    with pytest.warns(JobFailedWarning):
        driver.step(0.25)

    assert machine.seconds == pytest.approx(0.75)
    assert not extra.wait(0.1)
    assert failures and failures[0]["kind"] == "load"
    assert driver.stats_snapshot()["job_failures"] == 1

    # The failed job was discarded, not retried.
    driver.step(0.25)
    assert driver.stats_snapshot()["job_failures"] == 1


@pytest.mark.filterwarnings("ignore::gameview.errors.JobFailedWarning")
def test_failing_extra_action_does_not_reach_step(tmp_path):
    driver, machine = _make_driver()
    reported = threading.Event()
    driver.events.on("extra_failed", lambda _e: reported.set())

    def upload() -> None:
        raise ConnectionError("remote storage down")

    driver.jobs.request_save(tmp_path / "state.dat", upload)
    driver.step(0.0)
    assert reported.wait(2.0)

    assert (tmp_path / "state.dat").exists()
    driver.step(0.1)
    assert driver.stats_snapshot()["extra_failures"] == 1


def test_frame_publish_blocks_until_consumed():
    frames: Channel[np.ndarray] = Channel(maxsize=1)
    driver, machine = _make_driver(frames=frames)
    driver.step(0.0)

    stepper = threading.Thread(target=driver.step, args=(0.1,))
    stepper.start()
    time.sleep(0.2)
    assert stepper.is_alive()

    frames.get(timeout=1.0)
    stepper.join(timeout=2.0)
    assert not stepper.is_alive()
    assert driver.stats_snapshot()["frames_published"] == 2


def test_closed_frame_channel_discards_frame():
    frames: Channel[np.ndarray] = Channel(maxsize=1)
    driver, machine = _make_driver(frames=frames)
    frames.close()
    assert driver.step(0.5) == 0.5
    assert machine.seconds == pytest.approx(0.5)
    stats = driver.stats_snapshot()
    assert stats["frames_published"] == 0
    assert stats["frames_discarded"] == 1
