"""FirstLedger burn detector and AMM token tracker for the XRP Ledger."""

__version__ = "0.1.0"
