"""Debounce and throttle scheduling on the asyncio event loop.

Two coalescing policies are provided:

- Debouncer: every call resets one pending timer; only the last call within
  the quiet window fires, once the window elapses.
- Throttler: the first call fires immediately and opens a cooldown window.
  Calls made during the window are remembered (latest arguments win) and
  exactly one trailing call fires when the window closes. The trailing call
  opens a fresh window, so at most one call starts per window.

Wrapped functions may be plain callables or coroutine functions. Coroutines
are run as tasks and tracked, so they can be awaited with ``join()`` and
cancelled on ``dispose()``.

UpdateScheduler groups every debouncer, throttler and one-shot timer used by
a form so they can all be torn down together. All of these must be called
while an event loop is running.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, Set, Tuple

from typing_extensions import ParamSpec

logger = logging.getLogger(__name__)

P = ParamSpec("P")

DEFAULT_DEBOUNCE_MS = 300
DEFAULT_THROTTLE_MS = 1000


class TaskTracker:
    """Tracks tasks spawned from scheduled callbacks.

    Exceptions raised by a tracked task are logged when it finishes; they are
    never left unretrieved.
    """

    def __init__(self, name: str = "task") -> None:
        self._name = name
        self._tasks: Set["asyncio.Task[Any]"] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, outcome: Any) -> Optional["asyncio.Task[Any]"]:
        """Track ``outcome`` as a task if it is awaitable."""
        if not inspect.isawaitable(outcome):
            return None
        task = asyncio.ensure_future(outcome)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Scheduled %s failed", self._name, exc_info=exc)

    async def join(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, is done."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()


async def _sleep_until(handle: asyncio.TimerHandle) -> None:
    loop = asyncio.get_running_loop()
    await asyncio.sleep(max(0.0, handle.when() - loop.time()))


class Debouncer(Generic[P]):
    """Delays calls to ``func`` until ``wait_ms`` pass without another call.

    Examples:
        >>> async def main():
        ...     seen = []
        ...     d = Debouncer(seen.append, wait_ms=10)
        ...     d(1); d(2); d(3)
        ...     await d.join()
        ...     return seen
        >>> asyncio.run(main())
        [3]
    """

    def __init__(self, func: Callable[P, Any], wait_ms: float = DEFAULT_DEBOUNCE_MS) -> None:
        self._func = func
        self._wait = wait_ms / 1000.0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks = TaskTracker(getattr(func, "__name__", "debounced call"))
        self._disposed = False

    @property
    def pending(self) -> bool:
        """Whether a call is waiting for its quiet window to elapse."""
        return self._handle is not None

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> None:
        if self._disposed:
            return
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._wait, self._fire, args, kwargs)

    def _fire(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        self._handle = None
        if self._disposed:
            return
        self._tasks.spawn(self._func(*args, **kwargs))

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def join(self) -> None:
        """Wait for the pending call to fire and for its work to finish."""
        while self._handle is not None or len(self._tasks):
            if self._handle is not None:
                await _sleep_until(self._handle)
                # let the timer callback run before re-checking
                await asyncio.sleep(0)
            else:
                await self._tasks.join()

    def dispose(self) -> None:
        self._disposed = True
        self.cancel()
        self._tasks.cancel()


class Throttler(Generic[P]):
    """Limits calls to ``func`` to one start per ``limit_ms`` window.

    The first call runs immediately. Later calls inside the window are not
    dropped: the most recent arguments are kept and replayed once when the
    window closes.

    Examples:
        >>> async def main():
        ...     seen = []
        ...     t = Throttler(seen.append, limit_ms=10)
        ...     for n in range(5):
        ...         t(n)
        ...     await t.join()
        ...     return seen
        >>> asyncio.run(main())
        [0, 4]
    """

    def __init__(self, func: Callable[P, Any], limit_ms: float = DEFAULT_THROTTLE_MS) -> None:
        self._func = func
        self._limit = limit_ms / 1000.0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._trailing: Optional[Tuple[Tuple[Any, ...], Dict[str, Any]]] = None
        self._tasks = TaskTracker(getattr(func, "__name__", "throttled call"))
        self._window = 0
        self._disposed = False

    @property
    def in_window(self) -> bool:
        """Whether a cooldown window is currently open."""
        return self._handle is not None

    @property
    def window(self) -> int:
        """Token of the most recently opened window.

        It is already updated when the wrapped function is called, so the
        function can read the token of the window it started in.
        """
        return self._window

    @property
    def has_trailing(self) -> bool:
        return self._trailing is not None

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> None:
        if self._disposed:
            return
        if self._handle is None:
            self._invoke(args, kwargs)
        else:
            self._trailing = (args, kwargs)

    def _invoke(self, args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        self._window += 1
        self._handle = loop.call_later(self._limit, self._window_closed)
        self._tasks.spawn(self._func(*args, **kwargs))

    def _window_closed(self) -> None:
        self._handle = None
        if self._disposed or self._trailing is None:
            return
        args, kwargs = self._trailing
        self._trailing = None
        self._invoke(args, kwargs)

    def release(self, window: Optional[int] = None) -> None:
        """Close the current window now, flushing any remembered call.

        Args:
            window: If given, only close the window when it is still the one
                with this token; a later window is left alone
        """
        if self._handle is None:
            return
        if window is not None and window != self._window:
            return
        self._handle.cancel()
        self._window_closed()

    async def join(self) -> None:
        """Wait until no trailing call is pending and all started work is done."""
        while self._trailing is not None or len(self._tasks):
            if self._trailing is not None and self._handle is not None:
                await _sleep_until(self._handle)
                await asyncio.sleep(0)
            else:
                await self._tasks.join()

    def dispose(self) -> None:
        self._disposed = True
        self._trailing = None
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._tasks.cancel()


def debounce(func: Callable[P, Any], wait_ms: float = DEFAULT_DEBOUNCE_MS) -> Debouncer[P]:
    """Return a debounced wrapper around ``func``."""
    return Debouncer(func, wait_ms)


def throttle(func: Callable[P, Any], limit_ms: float = DEFAULT_THROTTLE_MS) -> Throttler[P]:
    """Return a throttled wrapper around ``func``."""
    return Throttler(func, limit_ms)


class UpdateScheduler:
    """Owns every timer a form uses, so disposal can clear them all.

    Attributes:
        debounce_ms: Quiet window for debounced callbacks
        throttle_ms: Cooldown window for throttled callbacks
    """

    def __init__(
        self,
        debounce_ms: float = DEFAULT_DEBOUNCE_MS,
        throttle_ms: float = DEFAULT_THROTTLE_MS,
    ) -> None:
        self.debounce_ms = debounce_ms
        self.throttle_ms = throttle_ms
        self._debouncers: Dict[Hashable, Debouncer] = {}
        self._throttlers: Dict[Hashable, Throttler] = {}
        self._timers: Dict[Hashable, asyncio.TimerHandle] = {}
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def debounced(self, key: Hashable, func: Callable[P, Any]) -> Debouncer[P]:
        """Return the debouncer registered under ``key``, creating it on first use."""
        debouncer = self._debouncers.get(key)
        if debouncer is None:
            debouncer = Debouncer(func, self.debounce_ms)
            if self._disposed:
                debouncer.dispose()
            self._debouncers[key] = debouncer
        return debouncer

    def throttled(self, key: Hashable, func: Callable[P, Any]) -> Throttler[P]:
        """Return the throttler registered under ``key``, creating it on first use."""
        throttler = self._throttlers.get(key)
        if throttler is None:
            throttler = Throttler(func, self.throttle_ms)
            if self._disposed:
                throttler.dispose()
            self._throttlers[key] = throttler
        return throttler

    def cancel_debounced(self) -> None:
        """Drop every pending debounced call without disposing the debouncers."""
        for debouncer in self._debouncers.values():
            debouncer.cancel()

    def call_later(self, key: Hashable, delay_ms: float, callback: Callable[[], Any]) -> None:
        """Run ``callback`` after ``delay_ms``, replacing any timer with the same key."""
        if self._disposed:
            return
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(delay_ms / 1000.0, self._run_timer, key, callback)

    def _run_timer(self, key: Hashable, callback: Callable[[], Any]) -> None:
        self._timers.pop(key, None)
        callback()

    def cancel(self, key: Hashable) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def is_pending(self, key: Hashable) -> bool:
        return key in self._timers

    async def join(self) -> None:
        """Wait for all debounced and throttled work to settle.

        One-shot timers are not awaited.
        """
        waiters: List[Any] = list(self._debouncers.values()) + list(self._throttlers.values())
        for waiter in waiters:
            await waiter.join()

    def dispose(self) -> None:
        """Cancel every timer and task; later calls become no-ops."""
        if self._disposed:
            return
        self._disposed = True
        for debouncer in self._debouncers.values():
            debouncer.dispose()
        for throttler in self._throttlers.values():
            throttler.dispose()
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        logger.debug("Scheduler disposed")


__all__ = [
    "TaskTracker",
    "Debouncer",
    "Throttler",
    "UpdateScheduler",
    "debounce",
    "throttle",
    "DEFAULT_DEBOUNCE_MS",
    "DEFAULT_THROTTLE_MS",
]
