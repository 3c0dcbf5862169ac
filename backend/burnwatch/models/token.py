"""Tracked token model."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from burnwatch.models.transactions import token_key


class Token(BaseModel):
    """Live market state of a token discovered through a burn.

    Identity is the (currency, issuer) pair. Instances are mutated in place
    by refreshes; the catalog owns them for the process lifetime.
    """

    currency: str
    issuer: str
    creator: str
    burned_xrp: float
    is_first_ledger: bool  # burn destination matched the FirstLedger account
    amm_account: str
    supply: float = 0.0
    holders: int = 0
    liquidity_xrp: float = 0.0
    liquidity_tokens: float = 0.0
    price: float = 0.0
    market_cap: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return token_key(self.currency, self.issuer)

    @property
    def confidence(self) -> str:
        return "FirstLedger" if self.is_first_ledger else "Unsure"

    def apply_trust_lines(self, holders: int, supply: float) -> None:
        """Set holder count and supply, keeping market cap consistent."""
        self.holders = holders
        self.supply = supply
        self.market_cap = self.supply * self.price

    def apply_pool_state(self, liquidity_xrp: float, liquidity_tokens: float) -> None:
        """Set pool reserves and derive price and market cap."""
        self.liquidity_xrp = liquidity_xrp
        self.liquidity_tokens = liquidity_tokens
        self.price = liquidity_xrp / liquidity_tokens if liquidity_tokens > 0 else 0.0
        self.market_cap = self.supply * self.price
