"""
Tests for the contract event feed
"""

import asyncio

import pytest
from stellar_sdk import StrKey

from stellar_fakes import FakeContract
from stellar_swap.providers import ContractEventRecord, SorobanRpcError
from stellar_swap.services import EventFeed, EventType
from stellar_swap.services.events import parse_event


POOL = StrKey.encode_contract(b"\x01" * 32)


def record(n: int, ledger: int, topic: str = "swap", value=None) -> ContractEventRecord:
    return ContractEventRecord(
        id=f"{ledger:010d}-{n:04d}",
        ledger=ledger,
        tx_hash=f"tx{n}",
        contract_id=POOL,
        topics=[topic, "GTRADER"],
        value=value if value is not None else [n, n * 2],
    )


@pytest.fixture
def contract() -> FakeContract:
    return FakeContract()


class TestParseEvent:
    def test_known_topic(self):
        event = parse_event(record(1, 950, topic="add_liq"))
        assert event.type == EventType.ADD_LIQUIDITY
        assert event.id == "tx1-0000000950-0001"
        assert event.topics == ["GTRADER"]

    def test_unknown_topic_is_dropped(self):
        assert parse_event(record(1, 950, topic="upgrade")) is None

    def test_to_dict_stringifies_amounts(self):
        data = parse_event(record(1, 950, value=[10**30, True])).to_dict()
        assert data["data"] == [str(10**30), True]
        assert data["type"] == "swap"


class TestEventFeed:
    @pytest.mark.asyncio
    async def test_first_poll_looks_back(self, contract):
        feed = EventFeed(contract, [POOL], lookback=100)
        await feed.poll()
        assert contract.event_requests == [900]

    @pytest.mark.asyncio
    async def test_cursor_advances_past_newest_ledger(self, contract):
        contract.events = [record(1, 950), record(2, 960)]
        feed = EventFeed(contract, [POOL])

        fresh = await feed.poll()
        await feed.poll()

        assert [e.ledger for e in fresh] == [960, 950]
        assert contract.event_requests == [900, 961]
        assert feed.last_ledger == 960

    @pytest.mark.asyncio
    async def test_duplicates_suppressed(self, contract):
        contract.events = [record(1, 950)]
        feed = EventFeed(contract, [POOL])
        await feed.poll()
        # Same record delivered again from an overlapping window
        feed._cursor = 900
        assert await feed.poll() == []
        assert len(feed.events) == 1

    @pytest.mark.asyncio
    async def test_limit_keeps_newest(self, contract):
        contract.events = [record(n, 901 + n) for n in range(10)]
        feed = EventFeed(contract, [POOL], limit=3)
        await feed.poll()
        assert len(feed.events) <= 3
        assert feed.events[0].ledger == max(e.ledger for e in feed.events)

    @pytest.mark.asyncio
    async def test_no_contracts_configured(self, contract):
        feed = EventFeed(contract, ["", ""])
        assert await feed.poll() == []
        assert contract.event_requests == []

    @pytest.mark.asyncio
    async def test_clear(self, contract):
        contract.events = [record(1, 950)]
        feed = EventFeed(contract, [POOL])
        await feed.poll()
        feed.clear()
        assert feed.events == []

    @pytest.mark.asyncio
    async def test_run_survives_gateway_errors_until_stopped(self, contract):
        attempts = []

        async def get_latest_ledger():
            attempts.append(1)
            raise SorobanRpcError("RPC request failed for getLatestLedger")

        contract.get_latest_ledger = get_latest_ledger
        feed = EventFeed(contract, [POOL])
        stop = asyncio.Event()

        task = asyncio.create_task(feed.run(stop, interval=0.01))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert len(attempts) >= 2
        assert feed.events == []

    @pytest.mark.asyncio
    async def test_run_survives_malformed_events(self, contract):
        attempts = []

        async def get_events(start_ledger, contract_ids, limit=50):
            attempts.append(start_ledger)
            raise ValueError("malformed XDR in event")

        contract.get_events = get_events
        feed = EventFeed(contract, [POOL])
        stop = asyncio.Event()

        task = asyncio.create_task(feed.run(stop, interval=0.01))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert len(attempts) >= 2
        assert task.exception() is None
