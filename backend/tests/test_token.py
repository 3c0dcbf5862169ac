"""Tests for the token model."""

import pytest

from burnwatch.models import Token


@pytest.fixture
def token():
    return Token(
        currency="ABC",
        issuer="rIssuer",
        creator="rCreator",
        burned_xrp=100.0,
        is_first_ledger=True,
        amm_account="rAmm",
    )


class TestToken:
    """Tests for derived market fields."""

    def test_key_and_confidence(self, token):
        assert token.key == "ABC-rIssuer"
        assert token.confidence == "FirstLedger"

        token.is_first_ledger = False
        assert token.confidence == "Unsure"

    def test_pool_state_sets_price(self, token):
        token.apply_trust_lines(holders=3, supply=1_000_000)
        token.apply_pool_state(liquidity_xrp=5000, liquidity_tokens=1_000_000)

        assert token.price == pytest.approx(0.005)
        assert token.market_cap == pytest.approx(5000)

    def test_empty_pool_has_zero_price(self, token):
        token.apply_trust_lines(holders=1, supply=100)
        token.apply_pool_state(liquidity_xrp=10, liquidity_tokens=0)

        assert token.price == 0
        assert token.market_cap == 0

    def test_trust_lines_keep_market_cap_consistent(self, token):
        token.apply_pool_state(liquidity_xrp=10, liquidity_tokens=100)
        token.apply_trust_lines(holders=2, supply=1000)

        assert token.holders == 2
        assert token.market_cap == pytest.approx(token.supply * token.price)

    def test_json_round_trip_keeps_identity(self, token):
        restored = Token.model_validate(token.model_dump(mode="json"))
        assert restored.key == token.key
        assert restored.timestamp == token.timestamp
