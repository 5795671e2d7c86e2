from __future__ import annotations

import threading
from pathlib import Path

from gameview.jobs import LOAD, SAVE, Job, JobSlot, StateJobQueue, launch_detached


def test_slot_take_clears():
    slot = JobSlot()
    job = Job(SAVE, Path("a.dat"))
    assert slot.put(job) is None
    assert slot.pending
    assert slot.take() is job
    assert slot.take() is None
    assert not slot.pending


def test_slot_last_write_wins():
    slot = JobSlot()
    first = Job(SAVE, Path("a.dat"))
    second = Job(SAVE, Path("b.dat"))
    slot.put(first)
    assert slot.put(second) is first
    assert slot.superseded == 1
    assert slot.take() is second


def test_queue_keeps_save_and_load_apart():
    jobs = StateJobQueue()
    jobs.request_save("s.dat")
    jobs.request_load("l.dat")

    save = jobs.consume_save()
    load = jobs.consume_load()
    assert save is not None and save.kind == SAVE and save.path == Path("s.dat")
    assert load is not None and load.kind == LOAD and load.path == Path("l.dat")
    assert jobs.consume_save() is None
    assert jobs.consume_load() is None


def test_request_after_consume_is_kept_for_next_take():
    jobs = StateJobQueue()
    jobs.request_save("one.dat")
    assert jobs.consume_save() is not None
    jobs.request_save("two.dat")
    assert jobs.save_pending
    job = jobs.consume_save()
    assert job is not None and job.path == Path("two.dat")


def test_concurrent_requests_are_taken_or_superseded_exactly_once():
    slot = JobSlot()
    producers = 8
    per_producer = 500
    taken = []
    done = threading.Event()

    def produce(idx: int) -> None:
        for n in range(per_producer):
            slot.put(Job(SAVE, Path(f"{idx}-{n}.dat")))

    def consume() -> None:
        while not done.is_set():
            job = slot.take()
            if job is not None:
                taken.append(job)

    consumer = threading.Thread(target=consume)
    consumer.start()
    threads = [threading.Thread(target=produce, args=(i,)) for i in range(producers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    done.set()
    consumer.join()

    leftover = 1 if slot.take() is not None else 0
    assert len(taken) + slot.superseded + leftover == producers * per_producer
    assert len({job.path for job in taken}) == len(taken)


def test_launch_detached_reports_errors_to_callback():
    seen = []
    finished = threading.Event()

    def boom() -> None:
        raise OSError("upload failed")

    def on_error(exc: BaseException) -> None:
        seen.append(exc)
        finished.set()

    launch_detached(boom, name="test-extra", on_error=on_error)
    assert finished.wait(2.0)
    assert isinstance(seen[0], OSError)
