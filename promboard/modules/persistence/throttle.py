import asyncio
from typing import Any, Callable, Optional, Tuple


class Throttle:
    """Run ``func`` at most once per ``wait_s`` seconds.

    The first call runs immediately. Calls made within the following
    ``wait_s`` seconds are coalesced into a single trailing call, made with
    the latest arguments once the window closes. Nothing is dropped: the last
    call always runs eventually.

    Scheduling uses the running asyncio loop. Called outside a running loop,
    every call runs synchronously.
    """

    def __init__(self, func: Callable[..., Any], wait_s: float):
        self._func = func
        self._wait_s = wait_s
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[Tuple[tuple, dict]] = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def __call__(self, *args, **kwargs):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None or self._wait_s <= 0:
            self._func(*args, **kwargs)
            return

        if self._timer is None:
            self._func(*args, **kwargs)
            self._start_window(loop)
        else:
            self._pending = (args, kwargs)

    def _start_window(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._timer = loop.call_later(self._wait_s, self._on_window_closed)

    def _on_window_closed(self):
        self._timer = None
        if self._pending is None:
            return
        args, kwargs = self._pending
        self._pending = None
        self._start_window(self._loop)
        self._func(*args, **kwargs)

    def flush(self):
        """Run the pending trailing call now, if there is one."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending is not None:
            args, kwargs = self._pending
            self._pending = None
            self._func(*args, **kwargs)

    def cancel(self):
        """Drop the pending trailing call, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None
