# tests/client/test_poller.py
import asyncio

import pytest

from marketplace.client.poller import PollerState, UnreadPoller
from marketplace.schemas.messages import UnreadCountResponse


class ScriptedFetcher:
    """Returns queued responses; an Exception instance in the queue is raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        item = self.responses.pop(0) if self.responses else UnreadCountResponse()
        if isinstance(item, Exception):
            raise item
        return item


@pytest.mark.asyncio
async def test_cue_plays_only_when_count_rises():
    played = []
    fetcher = ScriptedFetcher(
        UnreadCountResponse(count=1, sound="chime"),
        UnreadCountResponse(count=1, sound="chime"),
        UnreadCountResponse(count=0, sound="chime"),
        UnreadCountResponse(count=2, sound="alert"),
    )
    poller = UnreadPoller(fetcher, played.append)

    for _ in range(4):
        await poller.refresh()

    assert played == ["chime", "alert"]
    assert poller.unread_count == 2
    assert poller.sound == "alert"


@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_count():
    played = []
    poller = UnreadPoller(
        ScriptedFetcher(UnreadCountResponse(count=3), RuntimeError("offline"), UnreadCountResponse(count=3)),
        played.append,
    )

    await poller.refresh()
    await poller.refresh()
    await poller.refresh()

    assert poller.unread_count == 3
    assert played == ["default"]


@pytest.mark.asyncio
async def test_cue_failure_does_not_stop_updates():
    def broken_cue(kind):
        raise RuntimeError("audio device busy")

    poller = UnreadPoller(ScriptedFetcher(UnreadCountResponse(count=5)), broken_cue)
    await poller.refresh()
    assert poller.unread_count == 5


@pytest.mark.asyncio
async def test_polls_on_interval_until_stopped():
    fetcher = ScriptedFetcher(UnreadCountResponse(count=1), UnreadCountResponse(count=2))
    poller = UnreadPoller(fetcher, interval=0.01, initial_delay=0)

    poller.start()
    assert poller.state == PollerState.POLLING
    await asyncio.sleep(0.1)
    await poller.stop()

    assert poller.state == PollerState.IDLE
    assert fetcher.calls >= 2


@pytest.mark.asyncio
async def test_cancelled_request_is_discarded():
    released = asyncio.Event()
    played = []

    async def slow_fetch():
        await released.wait()
        return UnreadCountResponse(count=9, sound="alert")

    poller = UnreadPoller(slow_fetch, played.append, initial_delay=0)
    poller.start()
    await asyncio.sleep(0.01)

    await poller.navigate()
    await poller.stop()
    released.set()
    await asyncio.sleep(0.01)

    assert poller.unread_count == 0
    assert played == []


@pytest.mark.asyncio
async def test_start_is_idempotent():
    poller = UnreadPoller(ScriptedFetcher(), interval=10, initial_delay=10)
    poller.start()
    first = poller._task
    poller.start()
    assert poller._task is first
    await poller.stop()
