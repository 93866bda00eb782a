"""
Autotrade Controller - one-shot scheduled trade state machine.

States:
    DISABLED  initial state, and the state reached after a fired trade
    ENABLED   a single trade (amount + side) is scheduled for a UTC timestamp

Requesting the state the document is already in is a no-op: nothing is
written and REDUNDANT is returned instead of raising.
"""

import math
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Optional, Union

from core.config_store import ConfigStore
from core.errors import ConfigNotFound, InvalidParameters
from core.logging_utils import get_logger
from core.models import AutotradeSettings, ConfigDocument, TradeSide
from core.models.document import fits_json_number

logger = get_logger(__name__)

SECONDS_PER_HOUR = 3600

# Satoshi precision
AMOUNT_DECIMALS = 8

Amount = Union[Decimal, float, int, str]


class AutotradeState(str, Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"


class Transition(str, Enum):
    """Outcome of an enable/disable request."""
    CHANGED = "changed"
    REDUNDANT = "redundant"


@dataclass(frozen=True)
class Fire:
    """Schedule is due; the caller consumes it, then dispatches the trade."""
    amount: Decimal
    side: TradeSide
    scheduled_at: int


@dataclass(frozen=True)
class Wait:
    seconds_remaining: int
    enabled: bool = True


def parse_amount(amount: Amount) -> Decimal:
    """Decimal > 0 from operator input, or InvalidParameters."""
    if isinstance(amount, bool):
        raise InvalidParameters(f"Invalid amount: {amount!r}")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidParameters(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise InvalidParameters(f"Amount must be > 0, got {amount!r}")
    if value.normalize().as_tuple().exponent < -AMOUNT_DECIMALS:
        raise InvalidParameters(f"Amount has more than {AMOUNT_DECIMALS} decimal places: {amount!r}")
    if not fits_json_number(value):
        raise InvalidParameters(f"Amount cannot be stored exactly: {amount!r}")
    return value


def parse_side(side: Union[TradeSide, str, None]) -> TradeSide:
    try:
        parsed = TradeSide.parse(side)
    except ValueError as e:
        raise InvalidParameters(f"Side must be BUY or SELL, got {side!r}") from e
    if parsed == TradeSide.NONE:
        raise InvalidParameters(f"Side must be BUY or SELL, got {side!r}")
    return parsed


class AutotradeController:
    """Owns autotrade transitions; persistence goes through ConfigStore."""

    def __init__(self, store: ConfigStore, clock: Callable[[], float] = time.time):
        self.store = store
        self._clock = clock

    async def get_settings(self) -> AutotradeSettings:
        try:
            doc = await self.store.load()
        except ConfigNotFound:
            return AutotradeSettings.disabled()
        return doc.autotrade

    async def state(self) -> AutotradeState:
        settings = await self.get_settings()
        return AutotradeState.ENABLED if settings.enabled else AutotradeState.DISABLED

    async def enable(
        self,
        amount: Amount,
        side: Union[TradeSide, str],
        delay_hours: float,
        now: Optional[float] = None,
    ) -> Transition:
        """DISABLED -> ENABLED, scheduling one trade ``delay_hours`` from now."""
        ts_now = self._clock() if now is None else now
        outcome = {"redundant": False}
        scheduled: dict = {}

        def _mutate(doc: ConfigDocument) -> Optional[ConfigDocument]:
            if doc.autotrade.enabled:
                outcome["redundant"] = True
                return None

            value = parse_amount(amount)
            trade_side = parse_side(side)
            try:
                delay = float(delay_hours)
            except (TypeError, ValueError) as e:
                raise InvalidParameters(f"Invalid delay: {delay_hours!r}") from e
            if not math.isfinite(delay) or delay <= 0:
                raise InvalidParameters(f"Delay must be > 0 hours, got {delay_hours!r}")

            next_ts = math.ceil(ts_now + delay * SECONDS_PER_HOUR)
            scheduled.update(amount=value, side=trade_side, ts=next_ts)
            return doc.with_autotrade(
                AutotradeSettings(
                    enabled=True,
                    next_trade_timestamp_utc=next_ts,
                    next_trade_amount=value,
                    next_trade_side=trade_side,
                )
            )

        try:
            await self.store.update_atomic(_mutate, now=ts_now)
        except InvalidParameters as e:
            logger.warning("[AUTO] Enable rejected: %s", e)
            raise

        if outcome["redundant"]:
            logger.info("[AUTO] Redundant autotrading change: already enabled")
            return Transition.REDUNDANT

        logger.info(
            "[AUTO] Autotrading enabled: %s %s at %d",
            scheduled["side"].value,
            scheduled["amount"],
            scheduled["ts"],
        )
        return Transition.CHANGED

    async def disable(self) -> Transition:
        """ENABLED -> DISABLED, resetting every scheduling field."""
        outcome = {"redundant": False}

        def _mutate(doc: ConfigDocument) -> Optional[ConfigDocument]:
            if not doc.autotrade.enabled:
                outcome["redundant"] = True
                return None
            return doc.with_autotrade(AutotradeSettings.disabled())

        await self.store.update_atomic(_mutate)

        if outcome["redundant"]:
            logger.info("[AUTO] Redundant autotrading change: already disabled")
            return Transition.REDUNDANT

        logger.info("[AUTO] Autotrading disabled")
        return Transition.CHANGED

    async def consume(self, fire: Fire) -> bool:
        """
        Disable the schedule ``fire`` was read from, if it is still the stored one.

        Returns False without writing when the operator replaced or disabled
        the schedule since it was evaluated. Raises if the write fails; the
        caller must not dispatch unless this returned True.
        """
        outcome = {"consumed": False}

        def _mutate(doc: ConfigDocument) -> Optional[ConfigDocument]:
            auto = doc.autotrade
            if not (
                auto.enabled
                and auto.next_trade_timestamp_utc == fire.scheduled_at
                and auto.next_trade_side == fire.side
                and auto.next_trade_amount == fire.amount
            ):
                return None
            outcome["consumed"] = True
            return doc.with_autotrade(AutotradeSettings.disabled())

        await self.store.update_atomic(_mutate)

        if not outcome["consumed"]:
            logger.info("[AUTO] Schedule changed since evaluation, nothing consumed")
            return False
        logger.info("[AUTO] Scheduled trade consumed, autotrading disabled")
        return True

    async def evaluate_schedule(self, now: Optional[float] = None) -> Union[Fire, Wait]:
        """Fire when enabled and due, otherwise Wait with the seconds left."""
        ts_now = self._clock() if now is None else now
        settings = await self.get_settings()

        if not settings.enabled:
            return Wait(seconds_remaining=0, enabled=False)

        if ts_now >= settings.next_trade_timestamp_utc:
            return Fire(
                amount=settings.next_trade_amount,
                side=settings.next_trade_side,
                scheduled_at=settings.next_trade_timestamp_utc,
            )
        return Wait(seconds_remaining=max(0, math.ceil(settings.next_trade_timestamp_utc - ts_now)))

    async def minutes_until_next_trade(self, now: Optional[float] = None) -> int:
        """Whole minutes left on the schedule; 0 when disabled or due."""
        result = await self.evaluate_schedule(now)
        if isinstance(result, Fire):
            return 0
        return result.seconds_remaining // 60
