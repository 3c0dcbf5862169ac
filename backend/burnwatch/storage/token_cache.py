"""Token snapshot cache.

Stores the latest state of each tracked token in Redis so a restarted
process can warm-start its catalog and keep refreshing tokens discovered
before the restart.

Data structure:
- token:{currency}-{issuer} -> JSON Token
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from burnwatch.models import Token
from burnwatch.storage import cache

logger = logging.getLogger(__name__)


def _token_key(token_key: str) -> str:
    """Get the cache key for a token catalog key."""
    return f"{cache.KEY_PREFIX_TOKEN}{token_key}"


async def save_token(token: Token) -> bool:
    """Save a token snapshot to cache.

    Args:
        token: Token to cache

    Returns:
        True if saved successfully
    """
    if not cache.is_cache_available():
        return False

    return await cache.set_json(_token_key(token.key), token.model_dump(mode="json"))


async def load_token(token_key: str) -> Token | None:
    """Load a token snapshot by catalog key.

    Returns:
        Token or None if not found
    """
    if not cache.is_cache_available():
        return None

    data = await cache.get_json(_token_key(token_key))
    if data is None:
        return None

    try:
        return Token.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid cached token {token_key}: {e}")
        return None


async def load_all_tokens() -> list[Token]:
    """Load every cached token snapshot."""
    if not cache.is_cache_available():
        return []

    tokens: list[Token] = []
    prefix = cache.KEY_PREFIX_TOKEN
    for key in await cache.scan_keys(f"{prefix}*"):
        token = await load_token(key[len(prefix):])
        if token is not None:
            tokens.append(token)
    return tokens
