"""
Network activity tracking on a rendering surface.

NetworkIdleDetector decides when a page has stopped loading by counting
in-flight requests reported through Playwright-style ``on``/``remove_listener``
events, with three layered timers:

* first-request grace: no request started at all -> idle
* settle grace: in-flight count stayed at or below the threshold -> idle
* hard timeout: whatever the count -> timed out
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from .errors import IdleTimeoutError

log = logging.getLogger(__name__)

REQUEST_STARTED = "request"
REQUEST_FINISHED = "requestfinished"
REQUEST_FAILED = "requestfailed"
RESPONSE_RECEIVED = "response"

COMPUTE_BATCH_URL_FRAGMENT = "computation/compute-batch"


class EventSource(Protocol):
    def on(self, event: str, handler: Callable[..., Any]) -> Any:
        ...

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> Any:
        ...


class IdleState(str, Enum):
    ARMED = "armed"
    WAITING_FIRST_REQUEST = "waiting_first_request"
    SETTLING = "settling"
    IDLE = "idle"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = (IdleState.IDLE, IdleState.TIMED_OUT)


class NetworkIdleDetector:
    def __init__(
        self,
        events: EventSource,
        first_request_grace_ms: float = 1000,
        settle_grace_ms: float = 3000,
        hard_timeout_ms: float = 180000,
        max_inflight_requests: int = 0,
        label: str = "network",
    ):
        self.events = events
        self.first_request_grace_ms = first_request_grace_ms
        self.settle_grace_ms = settle_grace_ms
        self.hard_timeout_ms = hard_timeout_ms
        self.max_inflight_requests = max(max_inflight_requests, 0)
        self.label = label

        self.state = IdleState.ARMED
        self.inflight = 0
        self.requests_seen = 0
        self.started_at: Optional[float] = None
        self.resolved_at: Optional[float] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._future: Optional[asyncio.Future] = None
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        # Bound once so remove_listener receives the exact object passed to on().
        self._handlers: Dict[str, Callable[..., None]] = {
            REQUEST_STARTED: self._on_request_started,
            REQUEST_FINISHED: self._on_request_done,
            REQUEST_FAILED: self._on_request_done,
        }
        self._attached = False

    @property
    def elapsed_ms(self) -> Optional[float]:
        if self.started_at is None or self.resolved_at is None:
            return None
        return (self.resolved_at - self.started_at) * 1000

    def start(self) -> None:
        """Subscribe to request events and start the timers.

        Call before navigating so requests issued by the navigation itself
        are counted; ``wait`` starts the detector if this was skipped.
        """
        if self.state is not IdleState.ARMED:
            raise RuntimeError(f"{self.label} idle detector was already started")

        self._loop = asyncio.get_running_loop()
        self._future = self._loop.create_future()
        self.started_at = self._loop.time()
        self._attach()
        self._start_timer("hard", self.hard_timeout_ms, self._on_hard_timeout)
        self._start_timer("first", self.first_request_grace_ms, self._on_first_request_timeout)
        self.state = IdleState.WAITING_FIRST_REQUEST

    async def wait(self) -> IdleState:
        """Block until the network is idle.

        Returns IdleState.IDLE, raises IdleTimeoutError on the hard timeout.
        Listeners and timers are released on every exit path, cancellation
        included.
        """
        if self.state is IdleState.ARMED:
            self.start()

        try:
            state = await self._future
        finally:
            self._cleanup()

        if state is IdleState.TIMED_OUT:
            raise IdleTimeoutError(
                f"{self.label} did not become idle within {self.hard_timeout_ms:.0f}ms "
                f"({self.inflight} requests still in flight)"
            )
        log.debug(
            "%s idle after %.0fms (requests=%s)", self.label, self.elapsed_ms or 0, self.requests_seen
        )
        return state

    def close(self) -> None:
        """Abandon the wait, e.g. when navigation failed first."""
        self._cleanup()
        if self._future is not None and not self._future.done():
            self._future.cancel()

    def _on_request_started(self, *_: Any) -> None:
        if self.state in TERMINAL_STATES:
            return
        self._cancel_timer("first")
        self._cancel_timer("settle")
        self.inflight += 1
        self.requests_seen += 1
        self.state = IdleState.SETTLING

    def _on_request_done(self, *_: Any) -> None:
        if self.state in TERMINAL_STATES:
            return
        if self.inflight == 0:
            # Started before we subscribed.
            log.debug("%s: finish event with no request in flight", self.label)
        else:
            self.inflight -= 1
        if self.state is IdleState.SETTLING and self.inflight <= self.max_inflight_requests:
            self._start_timer("settle", self.settle_grace_ms, self._on_settle_timeout)

    def _on_first_request_timeout(self) -> None:
        if self.state is IdleState.WAITING_FIRST_REQUEST:
            self._resolve(IdleState.IDLE)

    def _on_settle_timeout(self) -> None:
        if self.state is IdleState.SETTLING and self.inflight <= self.max_inflight_requests:
            self._resolve(IdleState.IDLE)

    def _on_hard_timeout(self) -> None:
        self._resolve(IdleState.TIMED_OUT)

    def _resolve(self, state: IdleState) -> None:
        if self.state in TERMINAL_STATES:
            return
        self.state = state
        self.resolved_at = self._loop.time()
        self._cleanup()
        if self._future is not None and not self._future.done():
            self._future.set_result(state)

    def _start_timer(self, name: str, delay_ms: float, callback: Callable[[], None]) -> None:
        self._cancel_timer(name)
        self._timers[name] = self._loop.call_later(delay_ms / 1000, callback)

    def _cancel_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def _attach(self) -> None:
        for event, handler in self._handlers.items():
            self.events.on(event, handler)
        self._attached = True

    def _cleanup(self) -> None:
        for name in list(self._timers):
            self._cancel_timer(name)
        if not self._attached:
            return
        self._attached = False
        for event, handler in self._handlers.items():
            self.events.remove_listener(event, handler)


class ComputeResultTracker:
    """Counts computation batch requests and responses seen by a page.

    A sheet widget has its computed result once both its request and its
    response were observed, so the number of completed results is the smaller
    of the two counters.
    """

    def __init__(self, url_fragment: str = COMPUTE_BATCH_URL_FRAGMENT):
        self.url_fragment = url_fragment
        self.requests = 0
        self.responses = 0
        self._events: Optional[EventSource] = None
        self._handlers: Dict[str, Callable[..., None]] = {
            REQUEST_STARTED: self._on_request,
            RESPONSE_RECEIVED: self._on_response,
        }

    @property
    def completed(self) -> int:
        return min(self.requests, self.responses)

    def attach(self, events: EventSource) -> None:
        if self._events is not None:
            raise RuntimeError("ComputeResultTracker is already attached")
        self._events = events
        for event, handler in self._handlers.items():
            events.on(event, handler)

    def detach(self) -> None:
        if self._events is None:
            return
        events, self._events = self._events, None
        for event, handler in self._handlers.items():
            events.remove_listener(event, handler)

    async def count(self) -> int:
        return self.completed

    def _on_request(self, request: Any) -> None:
        if self.url_fragment in request.url:
            self.requests += 1

    def _on_response(self, response: Any) -> None:
        if self.url_fragment in response.url:
            self.responses += 1


def attach_debug_console(events: EventSource) -> Callable[[], None]:
    """Log browser console output and network results at DEBUG level.

    Returns a function that detaches every listener it added.
    """

    def on_console(message: Any) -> None:
        log.debug("%s %s", str(message.type)[:3].upper(), message.text)

    def on_page_error(error: Any) -> None:
        log.debug("page error: %s", getattr(error, "message", error))

    def on_response(response: Any) -> None:
        log.debug("%s %s", response.status, response.url)

    def on_request_failed(request: Any) -> None:
        log.debug("%s %s", request.failure, request.url)

    handlers = {
        "console": on_console,
        "pageerror": on_page_error,
        RESPONSE_RECEIVED: on_response,
        REQUEST_FAILED: on_request_failed,
    }
    for event, handler in handlers.items():
        events.on(event, handler)

    def detach() -> None:
        for event, handler in handlers.items():
            events.remove_listener(event, handler)

    return detach
