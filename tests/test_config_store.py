"""Tests for the config document store."""

import asyncio
import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.config_store import ConfigStore, check_invariants
from core.errors import ConfigNotFound, CorruptConfig, ValidationFailed
from core.models import AutotradeSettings, ConfigDocument, Credentials, TradeSide


def enabled_doc(ts: int = 90000, amount: str = "0.5", side: TradeSide = TradeSide.BUY) -> ConfigDocument:
    return ConfigDocument.default().with_autotrade(
        AutotradeSettings(
            enabled=True,
            next_trade_timestamp_utc=ts,
            next_trade_amount=Decimal(amount),
            next_trade_side=side,
        )
    )


@pytest.mark.asyncio
async def test_load_absent_raises_not_found(store):
    with pytest.raises(ConfigNotFound):
        await store.load()


@pytest.mark.asyncio
async def test_ensure_exists_creates_default_document(store, config_path):
    created = await store.ensure_exists()
    assert created is True

    doc = await store.load()
    assert doc.credentials == Credentials.empty()
    assert doc.autotrade.enabled is False
    assert doc.autotrade.next_trade_side == TradeSide.NONE

    on_disk = json.loads(config_path.read_text())
    assert on_disk == {
        "credentials": {"key": "", "secret": "", "passphrase": ""},
        "autotrade": {
            "enabled": False,
            "next-trade-timestamp-UTC": 0,
            "next-trade-amount": 0,
            "next-trade-side": "",
        },
    }

    assert await store.ensure_exists() is False


@pytest.mark.asyncio
async def test_round_trip_preserves_document(store):
    doc = enabled_doc().with_credentials(Credentials(key="k", secret="s", passphrase="p"))
    await store.save(doc)
    assert await store.load() == doc


@pytest.mark.asyncio
async def test_save_of_load_leaves_file_content_unchanged(store, config_path):
    original = {
        "autotrade": {
            "next-trade-side": "SELL",
            "next-trade-amount": 1.25,
            "enabled": True,
            "next-trade-timestamp-UTC": 90000,
        },
        "credentials": {"passphrase": "p", "key": "k", "secret": "s"},
    }
    config_path.write_text(json.dumps(original))

    await store.save(await store.load())

    assert json.loads(config_path.read_text()) == original


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0.00000001", "12345.12345678", "20999999.99999999", "0.1", "3"])
async def test_round_trip_is_exact_for_satoshi_amounts(store, amount):
    doc = enabled_doc(amount=amount)
    await store.save(doc)
    loaded = await store.load()
    assert loaded == doc
    assert loaded.autotrade.next_trade_amount == Decimal(amount)


def test_amount_that_cannot_be_stored_exactly_is_rejected():
    with pytest.raises(ValidationError):
        enabled_doc(amount="0.12345678901234567891")


@pytest.mark.asyncio
async def test_unknown_keys_survive_round_trip(store, config_path):
    data = ConfigDocument.default().to_dict()
    data["credentials"]["label"] = "main account"
    config_path.write_text(json.dumps(data))

    await store.save(await store.load())

    assert json.loads(config_path.read_text())["credentials"]["label"] == "main account"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [
    "{not json",
    "[]",
    json.dumps({"credentials": {"key": "", "secret": ""}, "autotrade": {}}),
    json.dumps({"credentials": {"key": 1, "secret": "", "passphrase": ""},
                "autotrade": ConfigDocument.default().to_dict()["autotrade"]}),
    json.dumps({"credentials": Credentials.empty().model_dump(),
                "autotrade": {"enabled": "yes", "next-trade-timestamp-UTC": 0,
                              "next-trade-amount": 0, "next-trade-side": ""}}),
    json.dumps({"credentials": Credentials.empty().model_dump(),
                "autotrade": {"enabled": False, "next-trade-timestamp-UTC": 0,
                              "next-trade-amount": 0, "next-trade-side": "HOLD"}}),
])
async def test_corrupt_documents_are_rejected(store, config_path, content):
    config_path.write_text(content)
    with pytest.raises(CorruptConfig):
        await store.load()


@pytest.mark.asyncio
async def test_update_on_corrupt_document_does_not_repair(store, config_path):
    config_path.write_text("{broken")
    with pytest.raises(CorruptConfig):
        await store.update_atomic(lambda d: d.with_credentials(Credentials(key="k", secret="s", passphrase="p")))
    assert config_path.read_text() == "{broken"


@pytest.mark.asyncio
async def test_update_creates_default_when_absent(store):
    creds = Credentials(key="k", secret="s", passphrase="p")
    doc = await store.update_atomic(lambda d: d.with_credentials(creds))
    assert doc.credentials == creds
    assert (await store.load()).autotrade == AutotradeSettings.disabled()


@pytest.mark.asyncio
async def test_noop_mutation_performs_no_write(store, write_counter):
    await store.ensure_exists()
    writes_before = write_counter["writes"]

    await store.update_atomic(lambda d: None)
    await store.update_atomic(lambda d: d)

    assert write_counter["writes"] == writes_before


@pytest.mark.asyncio
async def test_invalid_mutation_leaves_disk_unchanged(store, config_path):
    await store.ensure_exists()
    before = config_path.read_bytes()

    half_reset = ConfigDocument.default().with_autotrade(
        AutotradeSettings(
            enabled=False,
            next_trade_timestamp_utc=5000,
            next_trade_amount=Decimal(0),
            next_trade_side=TradeSide.NONE,
        )
    )
    with pytest.raises(ValidationFailed):
        await store.update_atomic(lambda d: half_reset)

    with pytest.raises(ValidationFailed):
        await store.update_atomic(lambda d: enabled_doc(ts=500), now=1000)

    assert config_path.read_bytes() == before


@pytest.mark.asyncio
async def test_credential_update_allowed_while_schedule_is_due(store, clock):
    await store.save(enabled_doc(ts=1500))
    clock.now = 2000  # schedule is overdue, waiting for the next tick

    creds = Credentials(key="k", secret="s", passphrase="p")
    doc = await store.update_atomic(lambda d: d.with_credentials(creds))

    assert doc.credentials == creds
    assert doc.autotrade.enabled is True


@pytest.mark.asyncio
async def test_concurrent_updates_are_serialized(store):
    await store.ensure_exists()

    def append(suffix):
        def _mutate(doc):
            c = doc.credentials
            return doc.with_credentials(Credentials(key=c.key + suffix, secret=c.secret, passphrase=c.passphrase))
        return _mutate

    await asyncio.gather(*(store.update_atomic(append(str(i))) for i in range(10)))

    key = (await store.load()).credentials.key
    assert sorted(key) == sorted("0123456789")


@pytest.mark.asyncio
async def test_clear_removes_document(store, config_path):
    await store.save(enabled_doc())
    await store.clear()

    assert not config_path.exists()
    with pytest.raises(ConfigNotFound):
        await store.load()

    # Clearing twice is not an error
    await store.clear()


@pytest.mark.asyncio
async def test_failed_write_leaves_no_temp_files(tmp_path, clock):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = ConfigStore(blocker / "config.json", clock=clock)

    from core.errors import ConfigIOError
    with pytest.raises(ConfigIOError):
        await store.save(ConfigDocument.default())

    assert [p.name for p in tmp_path.iterdir()] == ["not-a-dir"]


class TestInvariants:
    def test_default_document_is_valid(self):
        check_invariants(ConfigDocument.default(), now=1000)

    def test_enabled_requires_future_timestamp(self):
        with pytest.raises(ValidationFailed):
            check_invariants(enabled_doc(ts=1000), now=1000)
        check_invariants(enabled_doc(ts=1001), now=1000)

    def test_enabled_requires_side(self):
        with pytest.raises(ValidationFailed):
            check_invariants(enabled_doc(side=TradeSide.NONE), now=1000)

    def test_enabled_requires_positive_amount(self):
        with pytest.raises(ValidationFailed):
            check_invariants(enabled_doc(amount="0"), now=1000)

    def test_unchanged_schedule_skips_future_check(self):
        doc = enabled_doc(ts=500)
        check_invariants(doc, now=1000, previous=doc)
