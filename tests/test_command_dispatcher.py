"""Tests for action-to-command dispatch."""

from decimal import Decimal

import pytest

from core.errors import InvalidParameters, SpawnFailed, Unauthorized
from core.models import TradeSide
from execution.command_dispatcher import CommandDispatcher, format_amount, split_command


@pytest.fixture
def dispatcher(settings, runner, credentials):
    return CommandDispatcher(settings, runner, credentials)


async def login(credentials):
    await credentials.set_credentials({"key": "k", "secret": "s", "passphrase": "p"})


@pytest.mark.asyncio
async def test_buy_without_credentials_is_unauthorized(dispatcher, runner, sink):
    with pytest.raises(Unauthorized):
        await dispatcher.buy(1.0)
    assert runner.calls == []
    assert any("blocked: credentials missing" in m for m in sink.messages())


@pytest.mark.asyncio
async def test_sell_with_partial_credentials_is_unauthorized(dispatcher, runner, credentials):
    await credentials.set_credentials({"key": "k", "secret": "", "passphrase": "p"})
    with pytest.raises(Unauthorized):
        await dispatcher.sell("2")
    assert runner.calls == []


@pytest.mark.asyncio
async def test_buy_and_sell_append_plain_amount(dispatcher, runner, credentials):
    await login(credentials)

    handle = await dispatcher.buy(1.0)
    await dispatcher.sell(Decimal("0.250"))

    assert handle.pid == 4242
    assert runner.calls == [
        ("trader", ["-b", "1"]),
        ("trader", ["-s", "0.25"]),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1, "x"])
async def test_trade_rejects_bad_amount_before_spawn(dispatcher, runner, credentials, amount):
    await login(credentials)
    with pytest.raises(InvalidParameters):
        await dispatcher.buy(amount)
    assert runner.calls == []


@pytest.mark.asyncio
async def test_trade_routes_by_side(dispatcher, runner, credentials):
    await login(credentials)
    await dispatcher.trade(TradeSide.SELL, Decimal("3"))
    assert runner.calls == [("trader", ["-s", "3"])]

    with pytest.raises(InvalidParameters):
        await dispatcher.trade(TradeSide.NONE, Decimal("3"))


@pytest.mark.asyncio
async def test_refresh_and_retrain_need_no_credentials(dispatcher, runner):
    await dispatcher.refresh()
    await dispatcher.retrain()
    assert runner.calls == [
        ("controller", ["REFRESH"]),
        ("controller", ["RETRAIN"]),
    ]


@pytest.mark.asyncio
async def test_login_without_command_is_skipped(dispatcher, runner):
    assert await dispatcher.login() is None
    assert runner.calls == []


@pytest.mark.asyncio
async def test_login_with_command(settings, runner, credentials):
    configured = settings.model_copy(update={"login_command": "auth --interactive"})
    dispatcher = CommandDispatcher(configured, runner, credentials)
    await dispatcher.login()
    assert runner.calls == [("auth", ["--interactive"])]


@pytest.mark.asyncio
async def test_unconfigured_command_fails_to_spawn(settings, runner, credentials):
    configured = settings.model_copy(update={"retrain_command": "  "})
    dispatcher = CommandDispatcher(configured, runner, credentials)
    with pytest.raises(SpawnFailed):
        await dispatcher.retrain()
    assert runner.calls == []


def test_split_command_handles_quotes():
    assert split_command('python3 "my dir/trader.py" -b') == ("python3", ["my dir/trader.py", "-b"])
    assert split_command("") == ("", [])


@pytest.mark.parametrize("value,expected", [
    ("1.0", "1"),
    ("0.50", "0.5"),
    ("100", "100"),
    ("1E+2", "100"),
    ("0.00001", "0.00001"),
])
def test_format_amount(value, expected):
    assert format_amount(Decimal(value)) == expected
