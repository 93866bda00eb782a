"""
Command Dispatcher - logical dashboard actions to external commands.

    login             login_command (optional; empty means no external step)
    buy N / sell N    buy_command / sell_command with N appended
    refresh           refresh_command
    retrain           retrain_command

Buy and sell are gated on complete credentials; the check happens before
anything is spawned.
"""

import shlex
from decimal import Decimal
from typing import Optional, Sequence

from core.autotrade import Amount, parse_amount
from core.config import Settings
from core.credentials import CredentialManager
from core.errors import InvalidParameters, SpawnFailed, Unauthorized
from core.logging_utils import get_logger
from core.models import TradeSide
from execution.process_runner import ExitCallback, ProcessHandle, ProcessRunner

logger = get_logger(__name__)


def split_command(template: str) -> tuple[str, list[str]]:
    """Program and argument list from a command template string."""
    parts = shlex.split(template)
    if not parts:
        return "", []
    return parts[0], parts[1:]


def format_amount(amount: Decimal) -> str:
    """Plain decimal string: no exponent, no trailing zeros."""
    return format(amount.normalize(), "f")


class CommandDispatcher:
    """Maps dashboard actions onto ProcessRunner invocations."""

    def __init__(self, settings: Settings, runner: ProcessRunner, credentials: CredentialManager):
        self.settings = settings
        self.runner = runner
        self.credentials = credentials

    async def _dispatch(
        self,
        action: str,
        template: str,
        extra_args: Sequence[str] = (),
        on_exit: Optional[ExitCallback] = None,
    ) -> ProcessHandle:
        program, args = split_command(template)
        if not program:
            logger.error("[DISPATCH] No command configured for %s", action)
            raise SpawnFailed(f"No command configured for {action}")
        logger.info("[DISPATCH] %s", action)
        return await self.runner.run(program, [*args, *extra_args], on_exit=on_exit)

    async def _trade(
        self,
        side: TradeSide,
        amount: Amount,
        on_exit: Optional[ExitCallback] = None,
    ) -> ProcessHandle:
        try:
            value = parse_amount(amount)
        except InvalidParameters as e:
            logger.warning("[DISPATCH] %s rejected: %s", side.value, e)
            raise
        if not await self.credentials.has_valid_credentials():
            logger.warning("[DISPATCH] %s %s blocked: credentials missing", side.value, format_amount(value))
            raise Unauthorized(f"{side.value} requires key, secret and passphrase")

        template = self.settings.buy_command if side == TradeSide.BUY else self.settings.sell_command
        return await self._dispatch(f"{side.value} {format_amount(value)}", template, [format_amount(value)], on_exit)

    async def buy(self, amount: Amount, on_exit: Optional[ExitCallback] = None) -> ProcessHandle:
        return await self._trade(TradeSide.BUY, amount, on_exit)

    async def sell(self, amount: Amount, on_exit: Optional[ExitCallback] = None) -> ProcessHandle:
        return await self._trade(TradeSide.SELL, amount, on_exit)

    async def trade(self, side: TradeSide, amount: Amount, on_exit: Optional[ExitCallback] = None) -> ProcessHandle:
        if side == TradeSide.BUY:
            return await self.buy(amount, on_exit)
        if side == TradeSide.SELL:
            return await self.sell(amount, on_exit)
        raise InvalidParameters(f"Side must be BUY or SELL, got {side!r}")

    async def refresh(self, on_exit: Optional[ExitCallback] = None) -> ProcessHandle:
        return await self._dispatch("REFRESH", self.settings.refresh_command, on_exit=on_exit)

    async def retrain(self, on_exit: Optional[ExitCallback] = None) -> ProcessHandle:
        return await self._dispatch("RETRAIN", self.settings.retrain_command, on_exit=on_exit)

    async def login(self, on_exit: Optional[ExitCallback] = None) -> Optional[ProcessHandle]:
        """Run the external login step if one is configured."""
        if not self.settings.has_login_command:
            logger.debug("[DISPATCH] No external login command configured")
            return None
        return await self._dispatch("LOGIN", self.settings.login_command, on_exit=on_exit)
