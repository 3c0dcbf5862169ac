"""Data models."""

from burnwatch.models.ledger import LedgerWatermark
from burnwatch.models.metrics import (
    CategoryStats,
    MetricSample,
    INITIAL_DETECTION,
    MARKET_UPDATE,
    NODE_CONNECT,
)
from burnwatch.models.token import Token
from burnwatch.models.transactions import (
    AmmCreateTx,
    AmmDepositTx,
    AmmWithdrawTx,
    Asset,
    BurnEvent,
    LedgerTransaction,
    OtherTx,
    PaymentTx,
    TransactionDecodeError,
    decode_entry,
    decode_transaction,
    first_issued_asset,
    parse_amount,
    token_key,
    DROPS_PER_XRP,
)

__all__ = [
    # Cold path (Pydantic)
    "LedgerWatermark",
    "CategoryStats",
    "MetricSample",
    "Token",
    "INITIAL_DETECTION",
    "MARKET_UPDATE",
    "NODE_CONNECT",
    # Hot path (dataclass)
    "AmmCreateTx",
    "AmmDepositTx",
    "AmmWithdrawTx",
    "Asset",
    "BurnEvent",
    "LedgerTransaction",
    "OtherTx",
    "PaymentTx",
    "TransactionDecodeError",
    "decode_entry",
    "decode_transaction",
    "first_issued_asset",
    "parse_amount",
    "token_key",
    "DROPS_PER_XRP",
]
