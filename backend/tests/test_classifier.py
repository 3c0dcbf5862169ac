"""Tests for burn and pool-update classification."""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from burnwatch.clients import XrplConnectionError
from burnwatch.models import BurnEvent, Token
from burnwatch.services import TokenCatalog, TransactionClassifier

BURN_ADDRESS = "rBurnFirstledger"
BURN_AMOUNTS = ["100000000", "400000000", "1000000000"]
ISSUER = "rIssuer"
AMM = "rAmm"


def payment(amount, destination=BURN_ADDRESS, account="rCreator", result="tesSUCCESS", send_max=None, tx_hash=None):
    tx = {
        "TransactionType": "Payment",
        "Account": account,
        "Destination": destination,
        "Amount": amount,
    }
    if send_max is not None:
        tx["SendMax"] = send_max
    entry = {"transaction": tx, "meta": {"TransactionResult": result}}
    if tx_hash is not None:
        entry["hash"] = tx_hash
    return entry


def event(ledger_index, amount="1", tx_hash=None):
    entry = payment(amount, tx_hash=tx_hash)
    entry["ledger_index"] = ledger_index
    return entry


def amm_tx(tx_type, asset, asset2):
    return {
        "TransactionType": tx_type,
        "Account": "rLP",
        "Asset": asset,
        "Asset2": asset2,
        "metaData": {"TransactionResult": "tesSUCCESS"},
    }


ABC = {"currency": "ABC", "issuer": ISSUER}
XRP = {"currency": "XRP"}


class FakeNode:
    """Node whose stream yields a fixed list of events."""

    url = "wss://fake"

    def __init__(self, events, error=None):
        self._events = events
        self._error = error

    async def transactions(self):
        for event in self._events:
            yield event
        if self._error:
            raise self._error


class TestTransactionClassifier:
    """Tests for TransactionClassifier."""

    @pytest.fixture
    def pool(self):
        return MagicMock()

    @pytest.fixture
    def watermark(self):
        watermark = MagicMock()
        watermark.mark_processed = AsyncMock()
        return watermark

    @pytest.fixture
    def enrichment(self):
        return MagicMock()

    @pytest.fixture
    def catalog(self):
        return TokenCatalog()

    @pytest.fixture
    def classifier(self, pool, watermark, catalog, enrichment):
        return TransactionClassifier(
            pool, watermark, catalog, enrichment,
            burn_address=BURN_ADDRESS,
            burn_amounts=BURN_AMOUNTS,
        )

    @pytest_asyncio.fixture
    async def tracked(self, catalog):
        token = Token(
            currency="ABC",
            issuer=ISSUER,
            creator="rCreator",
            burned_xrp=100,
            is_first_ledger=True,
            amm_account=AMM,
        )
        return await catalog.upsert(token)

    def test_burn_to_first_ledger(self, classifier, enrichment):
        classifier.classify(payment("100000000"), 94300010, "wss://a")

        enrichment.spawn.assert_called_once()
        burn = enrichment.spawn.call_args[0][0]
        assert isinstance(burn, BurnEvent)
        assert burn.creator == "rCreator"
        assert burn.burned_xrp == 100
        assert burn.confirmed is True
        assert burn.ledger_index == 94300010
        assert burn.node == "wss://a"

    def test_burn_to_other_destination_is_unsure(self, classifier, enrichment):
        classifier.classify(payment("400000000", destination="rSomeoneElse"), 1)

        burn = enrichment.spawn.call_args[0][0]
        assert burn.burned_xrp == 400
        assert burn.confirmed is False

    @pytest.mark.parametrize("entry", [
        payment("50000000"),
        payment("100000000", result="tecUNFUNDED_PAYMENT"),
        payment({"currency": "ABC", "issuer": ISSUER, "value": "100000000"}),
    ])
    def test_non_burns(self, classifier, enrichment, entry):
        classifier.classify(entry, 1)
        enrichment.spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_deposit_on_tracked_pool(self, classifier, enrichment, tracked):
        classifier.classify(amm_tx("AMMDeposit", XRP, ABC), 5)
        enrichment.spawn_refresh.assert_called_once_with(tracked)

    @pytest.mark.asyncio
    async def test_withdraw_on_tracked_pool(self, classifier, enrichment, tracked):
        classifier.classify(amm_tx("AMMWithdraw", ABC, XRP), 5)
        enrichment.spawn_refresh.assert_called_once_with(tracked)

    @pytest.mark.asyncio
    async def test_untracked_pool_ignored(self, classifier, enrichment, tracked):
        other = {"currency": "DEF", "issuer": "rOther"}
        classifier.classify(amm_tx("AMMDeposit", XRP, other), 5)
        enrichment.spawn_refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_swap_through_amm_account(self, classifier, enrichment, tracked):
        swap = payment(
            {"currency": "ABC", "issuer": ISSUER, "value": "50"},
            destination="rBuyer",
            account=AMM,
        )
        classifier.classify(swap, 5)
        enrichment.spawn_refresh.assert_called_once_with(tracked)

    @pytest.mark.asyncio
    async def test_token_transfer_outside_pool_ignored(self, classifier, enrichment, tracked):
        transfer = payment(
            {"currency": "ABC", "issuer": ISSUER, "value": "50"},
            destination="rFriend",
            account="rHolder",
        )
        classifier.classify(transfer, 5)
        enrichment.spawn_refresh.assert_not_called()

    def test_malformed_transaction_skipped(self, classifier, enrichment):
        classifier.classify({"transaction": {"TransactionType": "Payment"}}, 5)

        enrichment.spawn.assert_not_called()
        enrichment.spawn_refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_handle_event_marks_ledger(self, classifier, pool, watermark, enrichment):
        event = payment("1000000000")
        event["ledger_index"] = 94300011

        await classifier.handle_event(event, "wss://a")

        assert classifier.last_seen_ledger == 94300011
        pool.observe_ledger.assert_called_once_with(94300011)
        watermark.mark_processed.assert_awaited_once_with(94300011)
        enrichment.spawn.assert_called_once()

    @pytest.mark.asyncio
    async def test_handle_event_without_ledger_index(self, classifier, watermark, enrichment):
        await classifier.handle_event(payment("100000000"), "wss://a")

        watermark.mark_processed.assert_not_awaited()
        enrichment.spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_consume_until_stream_ends(self, classifier, watermark):
        events = []
        for index in (10, 11):
            event = payment("1")
            event["ledger_index"] = index
            events.append(event)

        await classifier.consume(FakeNode(events, error=XrplConnectionError("dropped")))

        assert [c.args[0] for c in watermark.mark_processed.await_args_list] == [10, 11]
        assert classifier.last_seen_ledger == 11

    @pytest.mark.asyncio
    async def test_same_burn_from_two_nodes_spawns_once(self, classifier, enrichment):
        burn = event(94300011, "100000000", tx_hash="H1")

        await classifier.handle_event(dict(burn), "wss://a")
        await classifier.handle_event(dict(burn), "wss://b")

        enrichment.spawn.assert_called_once()
        assert enrichment.spawn.call_args[0][0].node == "wss://a"

    @pytest.mark.asyncio
    async def test_replayed_burn_not_dispatched_again(self, classifier, enrichment):
        classifier.classify(payment("100000000", tx_hash="H1"), 94300011, "wss://a")
        await classifier.handle_event(event(94300011, "100000000", tx_hash="H1"), "wss://b")

        enrichment.spawn.assert_called_once()

    def test_seen_hashes_are_bounded(self, pool, watermark, catalog, enrichment):
        classifier = TransactionClassifier(
            pool, watermark, catalog, enrichment,
            burn_address=BURN_ADDRESS,
            burn_amounts=BURN_AMOUNTS,
            seen_tx_cache_size=2,
        )
        for tx_hash in ("H1", "H2", "H3", "H1"):
            classifier.classify(payment("100000000", tx_hash=tx_hash), 1)

        # H1 was evicted by H3, so it is dispatched again
        assert enrichment.spawn.call_count == 4

    @pytest.mark.asyncio
    async def test_held_events_wait_for_release(self, classifier, pool, watermark, enrichment):
        classifier.hold()

        await classifier.handle_event(event(94300014, tx_hash="A"), "wss://a")
        await classifier.handle_event(event(94300015, "100000000", tx_hash="B"), "wss://a")

        assert classifier.held_events == 2
        assert pool.observe_ledger.call_args_list[-1].args == (94300015,)
        watermark.mark_processed.assert_not_awaited()
        enrichment.spawn.assert_not_called()

        # 94300014 was replayed in full by catch-up
        await classifier.release({94300014})

        assert classifier.held_events == 0
        assert [c.args[0] for c in watermark.mark_processed.await_args_list] == [94300015]
        enrichment.spawn.assert_called_once()

    @pytest.mark.asyncio
    async def test_drain_waits_for_every_hold(self, classifier, watermark):
        classifier.hold()
        classifier.hold()
        await classifier.handle_event(event(94300020), "wss://a")

        await classifier.release(set())
        watermark.mark_processed.assert_not_awaited()

        await classifier.release(set())
        watermark.mark_processed.assert_awaited_once_with(94300020)

        await classifier.handle_event(event(94300021), "wss://a")
        assert watermark.mark_processed.await_count == 2
