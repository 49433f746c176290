"""
Polling orchestrator for rate quotes and order status.

A Poller invokes an async fetch on a fixed interval and exposes the latest
result and error as an immutable PollState snapshot. Guarantees:

  - No overlapping polls from the timer. A tick that fires while the
    previous call is outstanding is skipped. A manual refresh() cancels the
    stale call when the transport can abort (abort_stale=True).
  - Out-of-order completions never clobber fresher state. Every call gets a
    sequence number. A completion is dropped if a call issued later has
    already been applied.
  - Teardown is final. After stop() nothing is scheduled and no late
    completion updates the state.
  - Failures back off. Retriable errors reschedule with RetryPolicy delays.
    The poller gives up on a non-retriable error or after max_attempts
    consecutive failures. The last good result stays in the state so
    callers can show "unavailable, retrying" next to it.

Polling stops on its own when `is_terminal(result)` holds, or when
`timeout` elapses, in which case `on_timeout()` supplies a final result
(for orders: the EXPIRED handle).
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from app.config import settings
from app.engine.errors import OfframpError
from app.engine.orders import OrderHandle, OrderLifecycleClient
from app.engine.rates import RateQuote, RateQuoteClient
from app.engine.retry import RetryPolicy

logger = logging.getLogger("offramp.poller")

T = TypeVar("T")


@dataclass(frozen=True)
class PollState(Generic[T]):
    """Snapshot of the latest applied poll."""

    result: Optional[T] = None
    error: Optional[Exception] = None
    last_updated: Optional[datetime] = None
    sequence: int = 0
    gave_up: bool = False

    @property
    def unavailable(self) -> bool:
        return self.error is not None


class Poller(Generic[T]):
    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        *,
        interval: float,
        retry_policy: Optional[RetryPolicy] = None,
        is_terminal: Optional[Callable[[T], bool]] = None,
        timeout: Optional[float] = None,
        on_timeout: Optional[Callable[[], T]] = None,
        abort_stale: bool = True,
        name: str = "poll",
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.name = name
        self._fetch = fetch
        self._interval = interval
        self._retry = retry_policy or RetryPolicy.from_settings()
        self._is_terminal = is_terminal
        self._timeout = timeout
        self._on_timeout = on_timeout
        self._abort_stale = abort_stale

        self.state: PollState[T] = PollState()
        self._issued = 0
        self._applied = 0
        self._failures = 0
        self._closed = False
        self._inflight: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_loading(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def finished(self) -> bool:
        if self.state.gave_up:
            return True
        return (
            self._is_terminal is not None
            and self.state.result is not None
            and self._is_terminal(self.state.result)
        )

    def start(self) -> None:
        if self._closed:
            raise RuntimeError(f"{self.name}: poller already stopped")
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._run(), name=f"{self.name}-loop")

    async def stop(self) -> None:
        """Tear down: cancel the timer and, if abortable, the in-flight call."""
        if self._closed:
            return
        self._closed = True

        cancelled = []
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            cancelled.append(self._loop_task)
        if self._abort_stale:
            for task in list(self._tasks):
                if not task.done():
                    task.cancel()
                    cancelled.append(task)
        if cancelled:
            await asyncio.gather(*cancelled, return_exceptions=True)
        logger.debug("%s: stopped", self.name)

    async def refresh(self) -> PollState[T]:
        """Poll now and return the latest state once this call settles."""
        if self._closed:
            return self.state
        if self.is_loading and self._abort_stale:
            self._inflight.cancel()
        task = self._launch()
        await asyncio.wait({task})
        return self.state

    async def wait(self) -> PollState[T]:
        """Wait for the polling loop to end on its own."""
        if self._loop_task is not None:
            await asyncio.wait({self._loop_task})
        return self.state

    async def __aenter__(self) -> "Poller[T]":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout if self._timeout is not None else None

        while not self._closed and not self.finished:
            if deadline is not None and loop.time() >= deadline:
                self._handle_timeout()
                break

            if self.is_loading:
                logger.debug("%s: previous poll still outstanding, skipping tick", self.name)
            else:
                self._launch()

            delay = self._next_delay()
            if deadline is not None:
                # Never sleep past the deadline, even under backoff
                delay = max(0.0, min(delay, deadline - loop.time()))
            await asyncio.sleep(delay)

    def _next_delay(self) -> float:
        if self._failures == 0:
            return self._interval
        return max(self._interval, self._retry.delay_for(self._failures))

    def _launch(self) -> asyncio.Task:
        self._issued += 1
        seq = self._issued
        task = asyncio.create_task(self._invoke(seq), name=f"{self.name}-{seq}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._inflight = task
        return task

    async def _invoke(self, seq: int) -> None:
        try:
            result = await self._fetch()
        except asyncio.CancelledError:
            logger.debug("%s: poll #%d cancelled", self.name, seq)
            raise
        except OfframpError as e:
            self._apply(seq, error=e)
        except Exception as e:
            logger.exception("%s: unexpected failure in poll #%d", self.name, seq)
            self._apply(seq, error=e)
        else:
            self._apply(seq, result=result)

    def _apply(self, seq: int, result: Optional[T] = None, error: Optional[Exception] = None) -> bool:
        if self._closed:
            logger.debug("%s: dropping poll #%d after teardown", self.name, seq)
            return False
        if seq <= self._applied:
            logger.debug("%s: dropping stale poll #%d (applied #%d)", self.name, seq, self._applied)
            return False

        self._applied = seq
        if error is None:
            self._failures = 0
            self.state = PollState(result=result, last_updated=datetime.now(timezone.utc), sequence=seq)
            return True

        self._failures += 1
        retriable = getattr(error, "retriable", True)
        gave_up = not retriable or self._failures >= self._retry.max_attempts
        if gave_up:
            logger.warning("%s: giving up after %d failure(s): %s", self.name, self._failures, error)
        else:
            logger.info(
                "%s: poll failed (%d/%d), retrying: %s",
                self.name, self._failures, self._retry.max_attempts, error,
            )
        self.state = replace(self.state, error=error, sequence=seq, gave_up=gave_up)
        return True

    def _handle_timeout(self) -> None:
        logger.info("%s: no terminal result after %.1fs", self.name, self._timeout)
        if self._abort_stale and self.is_loading:
            self._inflight.cancel()

        if self._on_timeout is None:
            self.state = replace(self.state, gave_up=True)
            return

        self._issued += 1
        try:
            result = self._on_timeout()
        except OfframpError as e:
            self._apply(self._issued, error=e)
            self.state = replace(self.state, gave_up=True)
        except Exception as e:
            logger.exception("%s: timeout handler failed", self.name)
            self._apply(self._issued, error=e)
            self.state = replace(self.state, gave_up=True)
        else:
            self._apply(self._issued, result=result)


def watch_rate(
    client: RateQuoteClient,
    token: str,
    amount,
    fiat_currency: str,
    *,
    network: Optional[str] = None,
    interval: Optional[float] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> Poller[RateQuote]:
    """Auto-refreshing quote. Each tick supersedes the previous quote."""
    return Poller(
        lambda: client.get_rate(token, amount, fiat_currency, network),
        interval=interval or settings.rate_refresh_interval_seconds,
        retry_policy=retry_policy,
        name=f"rate:{token}/{fiat_currency}",
    )


def watch_order(
    client: OrderLifecycleClient,
    order_id: str,
    *,
    interval: Optional[float] = None,
    timeout: Optional[float] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> Poller[OrderHandle]:
    """Poll an order until it reaches a terminal state or expires."""
    return Poller(
        lambda: client.get_order_status(order_id),
        interval=interval or settings.order_poll_interval_seconds,
        retry_policy=retry_policy,
        is_terminal=lambda handle: handle.is_terminal,
        timeout=timeout if timeout is not None else settings.order_timeout_seconds,
        on_timeout=lambda: client.expire(order_id),
        name=f"order:{order_id}",
    )
