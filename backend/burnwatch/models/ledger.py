"""Ledger watermark model."""

from pydantic import BaseModel


class LedgerWatermark(BaseModel):
    """Processing state of a single ledger.

    Once ``processed`` is true it is never reverted.
    """

    index: int
    processed: bool = True
