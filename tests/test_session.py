"""
Tests for session wiring and lifetime
"""

import asyncio

import pytest
from stellar_sdk import Keypair, StrKey

from stellar_fakes import FakeContract, FakeLedger, FakeSigner, success
from stellar_swap.config import Settings
from stellar_swap.core.execution import TransactionStatus
from stellar_swap.providers import HorizonGateway, KeypairSigner, SorobanGateway
from stellar_swap.session import Session


POOL = StrKey.encode_contract(b"\x01" * 32)


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, swap_contract_id=POOL, poll_interval_seconds=0, **overrides)


class TestWiring:
    def test_default_gateways(self):
        session = Session(make_settings())
        assert isinstance(session.ledger, HorizonGateway)
        assert isinstance(session.contract, SorobanGateway)
        assert session.signer is None

    def test_signer_from_secret(self):
        keypair = Keypair.random()
        session = Session(make_settings(signer_secret=keypair.secret), ledger=FakeLedger(), contract=FakeContract())
        assert isinstance(session.signer, KeypairSigner)
        assert session.signer.public_key == keypair.public_key

    def test_sessions_do_not_share_state(self):
        first = Session(make_settings(), ledger=FakeLedger(), contract=FakeContract())
        second = Session(make_settings(), ledger=FakeLedger(), contract=FakeContract())
        first.cache.set("k", 1)
        assert second.cache.get("k") is None
        assert first.log is first.manager.log
        assert first.log is not second.log


class TestLifetime:
    @pytest.mark.asyncio
    async def test_start_and_close(self):
        contract = FakeContract()
        session = Session(make_settings(), ledger=FakeLedger(), contract=contract)

        async with session:
            await asyncio.sleep(0)
            assert session._feed_task is not None
            session.cache.set("k", 1)

        assert session._feed_task is None
        assert session.cache.get("k") is None
        assert contract.event_requests

    @pytest.mark.asyncio
    async def test_close_waits_for_pending_confirmations(self):
        ledger = FakeLedger()
        ledger.lookups["hash-1"] = [success(3)]
        session = Session(make_settings(), signer=FakeSigner(), ledger=ledger, contract=FakeContract())
        await session.start(with_event_feed=False)

        tx = await session.manager.send_native(Keypair.random().public_key, Keypair.random().public_key, "1", wait=False)
        await session.close()

        assert session.log.get(tx.id).status == TransactionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_feed_keeps_running_after_decode_errors(self):
        contract = FakeContract()
        calls = []

        async def get_events(start_ledger, contract_ids, limit=50):
            calls.append(start_ledger)
            raise ValueError("malformed XDR in event")

        contract.get_events = get_events
        session = Session(make_settings(event_poll_interval_seconds=0.01), ledger=FakeLedger(), contract=contract)
        await session.start()
        await asyncio.sleep(0.05)

        assert len(calls) >= 2
        assert not session._feed_task.done()

        await session.close()
        assert session._feed_task is None
        assert session.cache._sweeper is None

    @pytest.mark.asyncio
    async def test_close_releases_resources_when_feed_task_failed(self):
        session = Session(make_settings(), ledger=FakeLedger(), contract=FakeContract())

        async def broken_run(stop, interval):
            raise KeyError("id")

        session.events.run = broken_run
        await session.start()
        await asyncio.sleep(0)
        session.cache.set("k", 1)

        await session.close()

        assert session._feed_task is None
        assert session.cache._sweeper is None
        assert session.cache.get("k") is None
