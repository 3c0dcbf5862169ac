"""Hot path ledger transaction models.

Raw XRPL transaction JSON is decoded once at ingestion into a closed set of
variants (payment, AMM create, AMM deposit, AMM withdraw, other). Detection
logic dispatches on the variant instead of probing raw fields.

These models use @dataclass(slots=True) like the other hot path types; they
are created for every transaction on the live stream.
"""

from dataclasses import dataclass
from typing import Any

DROPS_PER_XRP = 1_000_000
NATIVE_CURRENCY = "XRP"
TES_SUCCESS = "tesSUCCESS"

TX_PAYMENT = "Payment"
TX_AMM_CREATE = "AMMCreate"
TX_AMM_DEPOSIT = "AMMDeposit"
TX_AMM_WITHDRAW = "AMMWithdraw"


class TransactionDecodeError(ValueError):
    """Raised when a transaction payload cannot be decoded."""


def token_key(currency: str, issuer: str | None) -> str:
    """Catalog key for a (currency, issuer) pair."""
    return f"{currency}-{issuer}"


@dataclass(slots=True, frozen=True)
class Asset:
    """Currency descriptor. Native XRP has no issuer."""

    currency: str
    issuer: str | None = None

    @property
    def is_native(self) -> bool:
        return self.issuer is None

    @property
    def key(self) -> str:
        return token_key(self.currency, self.issuer)

    @classmethod
    def from_json(cls, value: Any) -> "Asset | None":
        """Build from an asset/amount field.

        A string amount is a native drops value; an object carries
        ``currency`` and (for issued currencies) ``issuer``.
        """
        if isinstance(value, str):
            return cls(currency=NATIVE_CURRENCY)
        if isinstance(value, dict) and value.get("currency"):
            return cls(currency=value["currency"], issuer=value.get("issuer") or None)
        return None


def first_issued_asset(*candidates: Asset | None) -> Asset | None:
    """Return the first issued-currency (non-native) asset, if any."""
    for asset in candidates:
        if asset is not None and not asset.is_native:
            return asset
    return None


def parse_amount(value: Any) -> tuple[Asset, float]:
    """Parse an XRPL amount into (asset, quantity).

    Native amounts are drop strings and are converted to XRP.
    """
    if isinstance(value, str):
        return Asset(currency=NATIVE_CURRENCY), int(value) / DROPS_PER_XRP
    if isinstance(value, dict):
        asset = Asset.from_json(value)
        if asset is None:
            raise TransactionDecodeError(f"Amount without currency: {value!r}")
        return asset, float(value.get("value", 0))
    raise TransactionDecodeError(f"Unsupported amount: {value!r}")


@dataclass(slots=True)
class LedgerTransaction:
    """Fields shared by every decoded transaction.

    ``asset``/``asset2`` are the primary and secondary currency descriptors
    the transaction touches, when it has any.
    """

    tx_type: str
    account: str
    ledger_index: int | None = None
    result: str | None = None
    hash: str | None = None
    asset: Asset | None = None
    asset2: Asset | None = None

    @property
    def succeeded(self) -> bool:
        return self.result == TES_SUCCESS

    @property
    def pool_asset(self) -> Asset | None:
        """Token side of the pool this transaction refers to.

        Uses the primary descriptor and falls back to the secondary one when
        the primary is absent or is the native currency.
        """
        return first_issued_asset(self.asset, self.asset2)


@dataclass(slots=True)
class PaymentTx(LedgerTransaction):
    destination: str = ""
    amount: str | dict | None = None

    @property
    def native_drops(self) -> str | None:
        """Drops string for a native payment, None for issued currency."""
        return self.amount if isinstance(self.amount, str) else None


@dataclass(slots=True)
class AmmCreateTx(LedgerTransaction):
    amm_account: str | None = None


@dataclass(slots=True)
class AmmDepositTx(LedgerTransaction):
    pass


@dataclass(slots=True)
class AmmWithdrawTx(LedgerTransaction):
    pass


@dataclass(slots=True)
class OtherTx(LedgerTransaction):
    pass


@dataclass(slots=True)
class BurnEvent:
    """A qualifying burn payment awaiting enrichment."""

    creator: str
    burned_xrp: float
    confirmed: bool
    destination: str
    ledger_index: int | None = None
    node: str = ""


def find_created_amm_account(meta: dict | None) -> str | None:
    """Account of the AMM ledger entry created by a transaction."""
    if not isinstance(meta, dict):
        return None
    for node in meta.get("AffectedNodes", []):
        created = node.get("CreatedNode")
        if created and created.get("LedgerEntryType") == "AMM":
            return created.get("NewFields", {}).get("Account")
    return None


def unwrap(entry: dict) -> tuple[dict, dict | None, str | None]:
    """Split a transaction entry into (tx_json, meta, hash).

    Handles the shapes returned by the different commands and API versions:
    ``{"tx": ..., "meta": ...}`` (account_tx v1), ``{"tx_json": ..., "meta":
    ...}`` (v2), ``{"transaction": ..., "meta": ...}`` (stream v1) and flat
    transactions with an embedded ``metaData`` (expanded ledger v1).
    """
    if not isinstance(entry, dict):
        raise TransactionDecodeError(f"Transaction entry is not an object: {entry!r}")

    for field in ("tx_json", "tx", "transaction"):
        inner = entry.get(field)
        if isinstance(inner, dict):
            meta = entry.get("meta") or entry.get("metaData") or inner.get("metaData")
            return inner, meta, entry.get("hash") or inner.get("hash")

    return entry, entry.get("metaData") or entry.get("meta"), entry.get("hash")


def decode_transaction(
    tx_json: dict,
    meta: dict | None = None,
    ledger_index: int | None = None,
    tx_hash: str | None = None,
) -> LedgerTransaction:
    """Decode raw transaction JSON into its variant."""
    try:
        tx_type = tx_json["TransactionType"]
        account = tx_json["Account"]
    except (KeyError, TypeError) as e:
        raise TransactionDecodeError(f"Missing transaction field: {e}") from e

    common = {
        "tx_type": tx_type,
        "account": account,
        "ledger_index": ledger_index if ledger_index is not None else tx_json.get("ledger_index"),
        "result": meta.get("TransactionResult") if isinstance(meta, dict) else None,
        "hash": tx_hash or tx_json.get("hash"),
    }

    if tx_type == TX_PAYMENT:
        amount = tx_json.get("Amount")
        return PaymentTx(
            **common,
            asset=Asset.from_json(amount) if isinstance(amount, dict) else None,
            asset2=Asset.from_json(tx_json.get("SendMax")) if isinstance(tx_json.get("SendMax"), dict) else None,
            destination=tx_json.get("Destination", ""),
            amount=amount,
        )

    if tx_type == TX_AMM_CREATE:
        # AMMCreate funds the pool with Amount/Amount2
        return AmmCreateTx(
            **common,
            asset=Asset.from_json(tx_json.get("Amount", tx_json.get("Asset"))),
            asset2=Asset.from_json(tx_json.get("Amount2", tx_json.get("Asset2"))),
            amm_account=find_created_amm_account(meta),
        )

    variant = {TX_AMM_DEPOSIT: AmmDepositTx, TX_AMM_WITHDRAW: AmmWithdrawTx}.get(tx_type, OtherTx)
    return variant(
        **common,
        asset=Asset.from_json(tx_json.get("Asset")),
        asset2=Asset.from_json(tx_json.get("Asset2")),
    )


def decode_entry(entry: dict, ledger_index: int | None = None) -> LedgerTransaction:
    """Decode a transaction entry from a ledger, account_tx or stream payload."""
    tx_json, meta, tx_hash = unwrap(entry)
    if ledger_index is None:
        ledger_index = entry.get("ledger_index")
    return decode_transaction(tx_json, meta, ledger_index, tx_hash)
