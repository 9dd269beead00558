import asyncio
import enum
import logging
from typing import Awaitable, Callable, Optional

from marketplace.schemas.messages import UnreadCountResponse

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
INITIAL_DELAY = 0.05

UnreadFetcher = Callable[[], Awaitable[UnreadCountResponse]]
CuePlayer = Callable[[str], None]


class PollerState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"


class UnreadPoller:
    """
    Keeps the viewer's unread badge fresh by asking the server on a fixed interval.

    A cue is played whenever the count goes up. Stopping or navigating
    cancels the request in flight; a cancelled request never plays a cue
    and never touches ``unread_count``.
    """

    def __init__(
        self,
        fetch_unread: UnreadFetcher,
        play_cue: Optional[CuePlayer] = None,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        initial_delay: float = INITIAL_DELAY,
    ):
        self.fetch_unread = fetch_unread
        self.play_cue = play_cue
        self.interval = interval
        self.initial_delay = initial_delay

        self.state = PollerState.IDLE
        self.unread_count = 0
        self.sound = "default"
        self._previous_count = 0
        self._task: Optional[asyncio.Task] = None

    async def refresh(self):
        """Fetch once and apply the result. Failures are logged, never raised."""
        try:
            result = await self.fetch_unread()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Failed to fetch unread count: {e}")
            return
        self._apply(result)

    def _apply(self, result: UnreadCountResponse):
        new_count = result.count or 0
        sound = result.sound.value if hasattr(result.sound, "value") else (result.sound or "default")
        self.sound = sound

        if new_count > self._previous_count and new_count > 0 and self.play_cue is not None:
            try:
                self.play_cue(sound)
            except Exception as e:
                logger.warning(f"Could not play notification cue '{sound}': {e}")

        self.unread_count = new_count
        self._previous_count = new_count

    async def _run(self):
        await asyncio.sleep(self.initial_delay)
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    def start(self):
        if self._task is not None and not self._task.done():
            return
        self.state = PollerState.POLLING
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        task, self._task = self._task, None
        self.state = PollerState.IDLE
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def navigate(self):
        """Drop whatever is in flight and poll again, as on a route change."""
        await self.stop()
        self.start()
