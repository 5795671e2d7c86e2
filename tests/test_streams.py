from __future__ import annotations

import queue
import threading
import time

import pytest

from gameview.errors import ChannelClosed
from gameview.streams import Channel


def test_get_drains_before_reporting_close():
    ch: Channel[int] = Channel()
    ch.put(1)
    ch.put(2)
    ch.close()
    assert ch.get(timeout=1.0) == 1
    assert ch.get(timeout=1.0) == 2
    with pytest.raises(ChannelClosed):
        ch.get(timeout=1.0)
    with pytest.raises(ChannelClosed):
        ch.put(3)


def test_get_times_out_on_open_empty_channel():
    ch: Channel[int] = Channel()
    with pytest.raises(queue.Empty):
        ch.get(timeout=0.1)
    with pytest.raises(queue.Empty):
        ch.get_nowait()


def test_put_times_out_when_full():
    ch: Channel[int] = Channel(maxsize=1)
    ch.put(1)
    with pytest.raises(queue.Full):
        ch.put(2, timeout=0.1)


def test_close_releases_blocked_producer():
    ch: Channel[int] = Channel(maxsize=1)
    ch.put(1)
    errors = []

    def produce() -> None:
        try:
            ch.put(2)
        except ChannelClosed as exc:
            errors.append(exc)

    producer = threading.Thread(target=produce)
    producer.start()
    time.sleep(0.1)
    ch.close()
    producer.join(timeout=1.0)
    assert not producer.is_alive()
    assert len(errors) == 1


def test_offer_evicts_oldest_when_full():
    ch: Channel[float] = Channel(maxsize=3)
    for value in range(5):
        assert ch.offer(float(value))
    assert ch.drain() == [2.0, 3.0, 4.0]
    assert ch.dropped == 2

    ch.close()
    assert ch.offer(9.0) is False


def test_iteration_stops_on_close():
    ch: Channel[int] = Channel()
    for value in (3, 1, 4):
        ch.put(value)
    ch.close()
    assert list(ch) == [3, 1, 4]
