"""
Readiness convergence: wait until rendered element counts reach the counts
the page announced, then let the network and layout settle.

Dynamic widgets do not reliably emit a completion event, so counts are
re-sampled on a fixed interval until they converge or the deadline passes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .errors import ConvergenceTimeoutError
from .network import EventSource, NetworkIdleDetector

log = logging.getLogger(__name__)

Sampler = Callable[[], Awaitable[int]]


@dataclass
class ConvergenceTarget:
    name: str
    expected: int
    sample: Sampler
    current: int = 0
    polls: int = 0

    @property
    def satisfied(self) -> bool:
        return self.current >= self.expected


class ReadinessConvergencePoller:
    def __init__(
        self,
        deadline_ms: float = 60000,
        poll_interval_ms: float = 250,
        render_idle_grace_ms: float = 2000,
        render_idle_timeout_ms: float = 30000,
        render_settle_ms: float = 2000,
    ):
        if poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be positive")
        self.deadline_ms = deadline_ms
        self.poll_interval_ms = poll_interval_ms
        self.render_idle_grace_ms = render_idle_grace_ms
        self.render_idle_timeout_ms = render_idle_timeout_ms
        self.render_settle_ms = render_settle_ms

    async def await_convergence(
        self,
        targets: Sequence[ConvergenceTarget],
        deadline_ms: Optional[float] = None,
        poll_interval_ms: Optional[float] = None,
    ) -> float:
        """Poll until every target has ``current >= expected``.

        Targets expecting zero are satisfied up front and never sampled;
        converged targets are not sampled again. Returns the elapsed time in
        ms, raises ConvergenceTimeoutError with the last observed counts.
        """
        deadline_ms = self.deadline_ms if deadline_ms is None else deadline_ms
        interval = (self.poll_interval_ms if poll_interval_ms is None else poll_interval_ms) / 1000

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + deadline_ms / 1000
        pending: List[ConvergenceTarget] = [t for t in targets if t.expected > 0]

        while pending:
            for target in pending:
                target.current = await target.sample()
                target.polls += 1
            pending = [t for t in pending if not t.satisfied]
            if not pending:
                break

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ConvergenceTimeoutError(
                    expected={t.name: t.expected for t in pending},
                    actual={t.name: t.current for t in pending},
                    waited_ms=(loop.time() - started) * 1000,
                )
            await asyncio.sleep(min(interval, remaining))

        elapsed_ms = (loop.time() - started) * 1000
        log.info("Converged after %.0fms: %s", elapsed_ms, format_counts(targets))
        return elapsed_ms

    async def await_render_settle(self, events: EventSource) -> None:
        """Second stage: short network-idle window, then a fixed settle delay.

        Element counts can be correct before charts have finished painting.
        """
        detector = NetworkIdleDetector(
            events,
            first_request_grace_ms=self.render_idle_grace_ms,
            settle_grace_ms=self.render_idle_grace_ms,
            hard_timeout_ms=self.render_idle_timeout_ms,
            label="render network",
        )
        await detector.wait()
        if self.render_settle_ms > 0:
            await asyncio.sleep(self.render_settle_ms / 1000)

    async def await_ready(self, targets: Sequence[ConvergenceTarget], events: EventSource) -> float:
        elapsed_ms = await self.await_convergence(targets)
        await self.await_render_settle(events)
        return elapsed_ms


def format_counts(targets: Sequence[ConvergenceTarget]) -> Dict[str, str]:
    return {t.name: f"{t.current}/{t.expected}" for t in targets}
