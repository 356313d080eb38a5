"""Connectivity signal: current online state plus became-online/offline events."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from utils.logger import logger


Listener = Callable[[], Any]


class ConnectivityMonitor:
    """
    Tracks whether the document store is reachable.

    Listeners fire only on a real transition. Async listeners are scheduled
    on the running loop and are not awaited by ``set_online``.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._online_listeners: list[Listener] = []
        self._offline_listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_online(self) -> bool:
        return self._online

    def on_online(self, listener: Listener) -> None:
        self._online_listeners.append(listener)

    def on_offline(self, listener: Listener) -> None:
        self._offline_listeners.append(listener)

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return

        self._online = online
        if online:
            logger.info("Connection restored")
            listeners = self._online_listeners
        else:
            logger.info("Connection lost, writes will be queued")
            listeners = self._offline_listeners

        for listener in list(listeners):
            self._notify(listener)

    def _notify(self, listener: Listener) -> None:
        try:
            result = listener()
        except Exception as e:
            logger.error(f"Connectivity listener {listener!r} failed: {e}", exc_info=True)
            return

        if inspect.isawaitable(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning(f"No running event loop, dropped async listener {listener!r}")
                if inspect.iscoroutine(result):
                    result.close()
                return
            task = asyncio.ensure_future(result, loop=loop)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Connectivity listener failed: {task.exception()}")

    async def probe(self, check: Callable[[], Awaitable[Any]], timeout: float = 5.0) -> bool:
        """Run a health check and set the state from its outcome."""
        try:
            await asyncio.wait_for(check(), timeout=timeout)
        except Exception as e:
            if self._online:
                logger.warning(f"Connectivity check failed: {e}")
            self.set_online(False)
            return False

        self.set_online(True)
        return True

    async def wait_idle(self) -> None:
        """Wait for listener tasks started by transitions."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
