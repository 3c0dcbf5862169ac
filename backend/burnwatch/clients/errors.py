"""XRPL client error types.

Transient errors (connection drops, request failures, timeouts) are retried
with bounded backoff. ``LedgerNotFoundError`` is permanent: the ledger has aged
out of the node's retained history. ``NoNodesAvailableError`` is fatal at
startup.
"""

# Error codes/messages a node returns for a ledger outside its history
LEDGER_NOT_FOUND_CODES = ("lgrNotFound", "ledgerNotFound")


class XrplError(Exception):
    """Base error for ledger network operations."""


class XrplConnectionError(XrplError):
    """Connection failed, dropped, or is not open."""


class XrplRequestError(XrplError):
    """A node answered a request with an error status."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}" if message else code)


class LedgerNotFoundError(XrplRequestError):
    """Requested ledger is not available from the node."""


class NoNodesAvailableError(XrplError):
    """No ledger node could be connected."""


def request_error(response: dict) -> XrplRequestError:
    """Build the matching error for an error response."""
    code = str(response.get("error", "unknown"))
    message = str(response.get("error_message", ""))
    if code in LEDGER_NOT_FOUND_CODES or any(c in message for c in LEDGER_NOT_FOUND_CODES):
        return LedgerNotFoundError(code, message)
    return XrplRequestError(code, message)
