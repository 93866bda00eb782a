"""
Refresh Scheduler - the single periodic driver.

Each tick:
1. starts a data refresh unless the previous one is still running
2. evaluates the autotrade schedule against the latest stored document;
   a due schedule is disabled first (only if it is still the stored one)
   and the trade is dispatched only once that write has succeeded
3. requests a redraw

Ticks never overlap. The data refresh runs as its own task so a slow
refresh never delays autotrade evaluation.
"""

import asyncio
import time
from contextlib import suppress
from typing import Awaitable, Callable, Optional, Union

from core.autotrade import AutotradeController, Fire, Wait
from core.errors import BitvisionError
from core.logging_utils import get_logger
from execution.command_dispatcher import CommandDispatcher, format_amount

logger = get_logger(__name__)

RefreshFn = Callable[[], Awaitable[object]]
RedrawFn = Callable[[], None]


class RefreshScheduler:
    """Periodic driver for data refresh, autotrade evaluation and redraw."""

    def __init__(
        self,
        autotrade: AutotradeController,
        dispatcher: CommandDispatcher,
        refresh_data: Optional[RefreshFn] = None,
        on_tick: Optional[RedrawFn] = None,
        interval: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.autotrade = autotrade
        self.dispatcher = dispatcher
        self.refresh_data = refresh_data
        self.on_tick = on_tick
        self.interval = interval
        self._clock = clock
        self._tick_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    # === Tick ===

    async def tick(self) -> Optional[Union[Fire, Wait]]:
        """Run one refresh/evaluate/redraw cycle. Returns the schedule evaluation."""
        async with self._tick_lock:
            self.tick_count += 1
            self._start_refresh()
            result = await self._evaluate()
            self._request_redraw()
            return result

    def _start_refresh(self) -> None:
        if self.refresh_data is None:
            return
        if self.refresh_in_flight:
            logger.debug("[SCHED] Previous refresh still running, not starting another")
            return
        self._refresh_task = asyncio.create_task(self._run_refresh(), name="data-refresh")

    async def _run_refresh(self) -> None:
        try:
            await self.refresh_data()
        except Exception as e:
            logger.warning("[SCHED] Data refresh failed: %s", e)

    async def _evaluate(self) -> Optional[Union[Fire, Wait]]:
        try:
            result = await self.autotrade.evaluate_schedule(self._clock())
        except BitvisionError as e:
            logger.error("[SCHED] Autotrade evaluation failed: %s", e)
            return None

        if isinstance(result, Fire):
            await self._fire(result)
        return result

    async def _fire(self, fire: Fire) -> None:
        """Consume the schedule (one-shot), then dispatch the due trade."""
        label = f"{fire.side.value} {format_amount(fire.amount)}"
        logger.info("[SCHED] Scheduled trade due: %s", label)
        try:
            consumed = await self.autotrade.consume(fire)
        except BitvisionError as e:
            logger.error("[SCHED] Scheduled trade %s not dispatched: could not disable autotrade: %s", label, e)
            return
        if not consumed:
            logger.info("[SCHED] Scheduled trade %s not dispatched: schedule changed", label)
            return

        try:
            handle = await self.dispatcher.trade(fire.side, fire.amount)
            logger.info("[SCHED] Scheduled trade dispatched: %s (pid %s)", label, handle.pid)
        except BitvisionError as e:
            logger.error("[SCHED] Scheduled trade %s failed: %s", label, e)

    def _request_redraw(self) -> None:
        if self.on_tick is None:
            return
        try:
            self.on_tick()
        except Exception as e:
            logger.warning("[SCHED] Redraw callback failed: %s", e)

    # === Timer ===

    def start(self) -> None:
        if self.running:
            logger.debug("[SCHED] Already running")
            return
        logger.info("[SCHED] Starting (every %.2fs)", self.interval)
        self._task = asyncio.create_task(self._run(), name="refresh-scheduler")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self.tick()
            except Exception as e:
                logger.error("[SCHED] Tick failed: %s", e)
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.interval - elapsed))

    async def stop(self) -> None:
        """Cancel the timer and any in-flight refresh; leaves nothing scheduled."""
        tasks = [t for t in (self._task, self._refresh_task) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        if self._task is not None:
            logger.info("[SCHED] Stopped")
        self._task = None
        self._refresh_task = None
