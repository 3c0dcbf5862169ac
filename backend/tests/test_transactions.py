"""Tests for transaction decoding."""

import pytest

from burnwatch.models import (
    AmmCreateTx,
    AmmDepositTx,
    AmmWithdrawTx,
    Asset,
    OtherTx,
    PaymentTx,
    TransactionDecodeError,
    decode_entry,
    first_issued_asset,
    parse_amount,
)
from burnwatch.models.transactions import find_created_amm_account


ISSUER = "rIssuerXXXXXXXXXXXXXXXXXXXXXXXXX"
AMM = "rAmmAccountXXXXXXXXXXXXXXXXXXXXX"


def amm_create_meta(amm_account=AMM):
    return {
        "TransactionResult": "tesSUCCESS",
        "AffectedNodes": [
            {"ModifiedNode": {"LedgerEntryType": "AccountRoot"}},
            {"CreatedNode": {"LedgerEntryType": "AMM", "NewFields": {"Account": amm_account}}},
        ],
    }


class TestAsset:
    """Tests for asset descriptors."""

    def test_native_from_drops_string(self):
        asset = Asset.from_json("1000000")
        assert asset.currency == "XRP"
        assert asset.is_native

    def test_issued_from_object(self):
        asset = Asset.from_json({"currency": "ABC", "issuer": ISSUER, "value": "10"})
        assert not asset.is_native
        assert asset.key == f"ABC-{ISSUER}"

    def test_object_without_currency(self):
        assert Asset.from_json({"value": "10"}) is None
        assert Asset.from_json(None) is None

    def test_first_issued_asset_skips_native(self):
        token = Asset("ABC", ISSUER)
        assert first_issued_asset(Asset("XRP"), token) == token
        assert first_issued_asset(None, token) == token
        assert first_issued_asset(Asset("XRP"), None) is None


class TestParseAmount:
    """Tests for amount parsing."""

    def test_drops_converted_to_xrp(self):
        asset, quantity = parse_amount("1500000")
        assert asset.is_native
        assert quantity == 1.5

    def test_issued_amount(self):
        asset, quantity = parse_amount({"currency": "ABC", "issuer": ISSUER, "value": "12.5"})
        assert asset == Asset("ABC", ISSUER)
        assert quantity == 12.5

    def test_unsupported_amount(self):
        with pytest.raises(TransactionDecodeError):
            parse_amount(42)


class TestDecodeEntry:
    """Tests for decoding the payload shapes of stream, ledger and account_tx."""

    def test_stream_payment(self):
        event = {
            "type": "transaction",
            "ledger_index": 94300010,
            "transaction": {
                "TransactionType": "Payment",
                "Account": "rCreator",
                "Destination": "rBurnFirstledger",
                "Amount": "100000000",
                "hash": "ABCD",
            },
            "meta": {"TransactionResult": "tesSUCCESS"},
        }

        tx = decode_entry(event)

        assert isinstance(tx, PaymentTx)
        assert tx.succeeded
        assert tx.native_drops == "100000000"
        assert tx.destination == "rBurnFirstledger"
        assert tx.ledger_index == 94300010
        assert tx.hash == "ABCD"
        assert tx.pool_asset is None

    def test_issued_payment_exposes_assets(self):
        entry = {
            "tx_json": {
                "TransactionType": "Payment",
                "Account": AMM,
                "Destination": "rBuyer",
                "Amount": {"currency": "ABC", "issuer": ISSUER, "value": "50"},
                "SendMax": "2000000",
            },
            "meta": {"TransactionResult": "tesSUCCESS"},
        }

        tx = decode_entry(entry, ledger_index=7)

        assert isinstance(tx, PaymentTx)
        assert tx.native_drops is None
        assert tx.pool_asset == Asset("ABC", ISSUER)
        assert tx.ledger_index == 7

    def test_amm_create_from_account_tx(self):
        entry = {
            "tx": {
                "TransactionType": "AMMCreate",
                "Account": "rCreator",
                "Amount": "5000000000",
                "Amount2": {"currency": "ABC", "issuer": ISSUER, "value": "1000000"},
            },
            "meta": amm_create_meta(),
        }

        tx = decode_entry(entry)

        assert isinstance(tx, AmmCreateTx)
        assert tx.amm_account == AMM
        # Native first side falls back to the issued one
        assert tx.pool_asset == Asset("ABC", ISSUER)

    def test_expanded_ledger_deposit(self):
        entry = {
            "TransactionType": "AMMDeposit",
            "Account": "rLP",
            "Asset": {"currency": "XRP"},
            "Asset2": {"currency": "ABC", "issuer": ISSUER},
            "metaData": {"TransactionResult": "tesSUCCESS"},
        }

        tx = decode_entry(entry, ledger_index=94300008)

        assert isinstance(tx, AmmDepositTx)
        assert tx.succeeded
        assert tx.pool_asset == Asset("ABC", ISSUER)

    def test_withdraw_and_other_variants(self):
        withdraw = decode_entry({"TransactionType": "AMMWithdraw", "Account": "rLP"})
        offer = decode_entry({"TransactionType": "OfferCreate", "Account": "rTrader"})

        assert isinstance(withdraw, AmmWithdrawTx)
        assert isinstance(offer, OtherTx)
        assert offer.result is None
        assert not offer.succeeded

    def test_missing_account(self):
        with pytest.raises(TransactionDecodeError):
            decode_entry({"TransactionType": "Payment"})

    def test_non_object_entry(self):
        with pytest.raises(TransactionDecodeError):
            decode_entry("not a transaction")


class TestFindCreatedAmmAccount:
    """Tests for AMM account lookup in metadata."""

    def test_found(self):
        assert find_created_amm_account(amm_create_meta("rPool")) == "rPool"

    def test_absent(self):
        assert find_created_amm_account({"AffectedNodes": []}) is None
        assert find_created_amm_account(None) is None
