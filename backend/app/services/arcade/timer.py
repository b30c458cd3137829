import heapq
import itertools
import logging
import math
import threading
import time
from typing import Callable, List, Optional, Set, Tuple


logger = logging.getLogger(__name__)


class ManualScheduler:
    """Virtual millisecond clock. Callbacks run only when ``advance`` is called.

    Used in TESTING mode (the web app wires it instead of the Socket.IO
    scheduler) so that countdowns are deterministic.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []
        self._seq = itertools.count()
        self._cancelled: Set[int] = set()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> int:
        token = next(self._seq)
        heapq.heappush(self._queue, (self._now + max(0.0, delay_ms), token, fn))
        return token

    def cancel(self, token: int) -> None:
        self._cancelled.add(token)

    def pending(self) -> int:
        return sum(1 for _, token, _ in self._queue if token not in self._cancelled)

    def advance(self, ms: float) -> None:
        """Move the clock forward, firing every callback that falls due, in order."""
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            due, token, fn = heapq.heappop(self._queue)
            if token in self._cancelled:
                self._cancelled.discard(token)
                continue
            self._now = max(self._now, due)
            fn()
        self._now = target


class SocketIOScheduler:
    """Real-time scheduler backed by Socket.IO background tasks."""

    def __init__(self, socketio, clock: Callable[[], float] = time.monotonic):
        self._socketio = socketio
        self._clock = clock
        self._seq = itertools.count()
        self._live: Set[int] = set()
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock() * 1000.0

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> int:
        token = next(self._seq)
        with self._lock:
            self._live.add(token)
        self._socketio.start_background_task(self._run, token, max(0.0, delay_ms) / 1000.0, fn)
        return token

    def cancel(self, token: int) -> None:
        with self._lock:
            self._live.discard(token)

    def _run(self, token: int, delay: float, fn: Callable[[], None]) -> None:
        self._socketio.sleep(delay)
        with self._lock:
            if token not in self._live:
                return
            self._live.discard(token)
        try:
            fn()
        except Exception:
            logger.exception(f"[timer-error] token={token}")


class TimerHandle:
    """A cancellable countdown returned by ``TimerService.start_countdown``."""

    def __init__(self, service: 'TimerService', generation: int, duration_ms: float,
                 on_tick: Optional[Callable[[int], None]], on_expire: Optional[Callable[[], None]]):
        self._service = service
        self.generation = generation
        self.duration_ms = duration_ms
        self.started_at = service.now()
        self.deadline = self.started_at + max(0.0, duration_ms)
        self.on_tick = on_tick
        self.on_expire = on_expire
        self.cancelled = False
        self.expired = False
        self._token: Optional[int] = None

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.expired)

    def remaining_ms(self) -> int:
        if not self.active:
            return 0
        return max(0, int(math.ceil(self.deadline - self._service.now())))

    def cancel(self) -> None:
        # Idempotent: cancelling an expired or cancelled handle is a no-op.
        if not self.active:
            return
        self.cancelled = True
        self._service._release(self)


class TimerService:
    """Monotonic countdowns and elapsed-time marks over a pluggable scheduler.

    Every handle is stamped with the service generation it was created in.
    ``next_generation`` cancels all outstanding handles and bumps the counter,
    so a callback from a replaced session can never fire into a new one.
    """

    def __init__(self, scheduler=None, tick_ms: int = 100):
        self.scheduler = scheduler if scheduler is not None else ManualScheduler()
        self.tick_ms = max(1, int(tick_ms))
        self.generation = 0
        self._handles: Set[TimerHandle] = set()

    def now(self) -> float:
        return self.scheduler.now()

    def mark(self) -> float:
        return self.now()

    def elapsed_since(self, mark: float) -> int:
        return max(0, int(round(self.now() - mark)))

    def start_countdown(self, duration_ms: float,
                        on_tick: Optional[Callable[[int], None]] = None,
                        on_expire: Optional[Callable[[], None]] = None) -> TimerHandle:
        handle = TimerHandle(self, self.generation, duration_ms, on_tick, on_expire)
        self._handles.add(handle)
        self._arm(handle)
        return handle

    def active_handles(self) -> int:
        return sum(1 for h in self._handles if h.active)

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()

    def next_generation(self) -> int:
        self.cancel_all()
        self.generation += 1
        logger.debug(f"[timer-generation] generation={self.generation}")
        return self.generation

    def _arm(self, handle: TimerHandle) -> None:
        remaining = max(0.0, handle.deadline - self.now())
        step = remaining if handle.on_tick is None else min(float(self.tick_ms), remaining)
        handle._token = self.scheduler.call_later(step, lambda: self._fire(handle))

    def _release(self, handle: TimerHandle) -> None:
        if handle._token is not None:
            self.scheduler.cancel(handle._token)
            handle._token = None
        self._handles.discard(handle)

    def _fire(self, handle: TimerHandle) -> None:
        handle._token = None
        if not handle.active:
            return
        if handle.generation != self.generation:
            logger.debug(f"[timer-stale] generation={handle.generation} current={self.generation}")
            handle.cancelled = True
            self._handles.discard(handle)
            return
        remaining = handle.deadline - self.now()
        if remaining <= 0:
            handle.expired = True
            self._handles.discard(handle)
            if handle.on_expire is not None:
                handle.on_expire()
            return
        if handle.on_tick is not None:
            handle.on_tick(int(math.ceil(remaining)))
        # on_tick may have cancelled the handle
        if handle.active:
            self._arm(handle)
