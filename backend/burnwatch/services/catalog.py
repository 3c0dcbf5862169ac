"""In-memory catalog of tracked tokens.

Shared by the classifier, the catch-up reconciler and the enrichment
workflow. Mutations of one token are serialized by a per-key lock; callers
must not hold the lock across network or store awaits.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from burnwatch.models import Asset, Token
from burnwatch.storage import token_cache

logger = logging.getLogger(__name__)


class TokenCatalog:
    """Tokens keyed by ``{currency}-{issuer}``."""

    def __init__(self):
        self._tokens: dict[str, Token] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    def get(self, key: str) -> Token | None:
        return self._tokens.get(key)

    def find(self, asset: Asset | None) -> Token | None:
        """Tracked token for an asset descriptor, if any."""
        if asset is None:
            return None
        return self._tokens.get(asset.key)

    def all(self) -> list[Token]:
        """Snapshot of tracked tokens, newest first."""
        return sorted(self._tokens.values(), key=lambda t: t.timestamp, reverse=True)

    @asynccontextmanager
    async def locked(self, key: str) -> AsyncIterator[None]:
        """Serialize mutation of one token."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield

    async def upsert(self, token: Token) -> Token:
        """Insert a token, or merge fresh market state into the tracked one.

        Returns:
            The instance held by the catalog
        """
        async with self.locked(token.key):
            existing = self._tokens.get(token.key)
            if existing is None:
                self._tokens[token.key] = token
                return token

            existing.is_first_ledger = existing.is_first_ledger or token.is_first_ledger
            existing.amm_account = token.amm_account
            existing.apply_trust_lines(token.holders, token.supply)
            existing.apply_pool_state(token.liquidity_xrp, token.liquidity_tokens)
            return existing

    async def snapshot(self, token: Token) -> None:
        """Best-effort persist of the token's current state."""
        await token_cache.save_token(token)

    async def warm_start(self) -> int:
        """Load token snapshots saved by a previous run.

        Returns:
            Number of tokens restored
        """
        restored = 0
        for token in await token_cache.load_all_tokens():
            if token.key not in self._tokens:
                self._tokens[token.key] = token
                restored += 1
        if restored:
            logger.info(f"Restored {restored} token(s) from cache")
        return restored
