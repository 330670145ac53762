from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

_NOTHING = object()


class Debouncer:
    """
    Coalesce rapid writes into one call of `callback` with the latest value,
    `delay_sec` after the last push. `flush()` writes the pending value now.
    """

    def __init__(self, delay_sec: float, callback: Callable[[Any], Awaitable[None]]) -> None:
        self.delay_sec = delay_sec
        self.callback = callback
        self.last_error: Optional[BaseException] = None
        self._pending: Any = _NOTHING
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._pending is not _NOTHING

    def push(self, value: Any) -> None:
        self._pending = value
        self._cancel_timer()
        self._task = asyncio.get_running_loop().create_task(self._fire_later())

    async def flush(self) -> None:
        """Write the pending value immediately. Errors propagate to the caller."""
        self._cancel_timer()
        value = self._take()
        if value is _NOTHING:
            return
        await self.callback(value)

    def take_error(self) -> Optional[BaseException]:
        """Hand over the last background failure and forget it."""
        err, self.last_error = self.last_error, None
        return err

    def cancel(self) -> None:
        self._cancel_timer()
        self._pending = _NOTHING

    def _take(self) -> Any:
        value, self._pending = self._pending, _NOTHING
        return value

    def _cancel_timer(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _fire_later(self) -> None:
        await asyncio.sleep(self.delay_sec)
        value = self._take()
        if value is _NOTHING:
            return
        # detach, so a push from inside the callback schedules a fresh timer
        self._task = None
        try:
            await self.callback(value)
            self.last_error = None
        except Exception as e:
            self.last_error = e
            logger.warning("Debounced write failed: %s", e)
