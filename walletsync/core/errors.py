"""Error taxonomy shared by the backend clients and the sync engine."""
from typing import Optional

# Returned by btcd when an address has never been seen.
RPC_NO_DATA_CODE = -5
RPC_NO_DATA_MESSAGE = "no information available about address"


class WalletSyncError(Exception):
    """Base class for every error raised by walletsync."""


class BackendError(WalletSyncError):
    """A request to a remote backend failed."""

    def __init__(self, message: str, status: Optional[int] = None,
                 code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.url = url

    def __str__(self) -> str:
        parts = [self.message]
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.code is not None:
            parts.append(f"code={self.code}")
        if self.url:
            parts.append(f"url={self.url}")
        return " ".join(parts)


class NoConnectivityError(BackendError):
    """The backend could not be reached."""


class NotFoundError(BackendError):
    """HTTP 404. Callers treat it as an empty result."""


class BackendFaultError(BackendError):
    """Any other non-2xx response, RPC error field or undecodable body."""


class LogicError(WalletSyncError, ValueError):
    """Invalid request from the caller, such as a duplicate wallet id."""


def is_rpc_no_data_error(error: Exception) -> bool:
    if not isinstance(error, BackendError):
        return False
    if error.code == RPC_NO_DATA_CODE:
        return True
    return RPC_NO_DATA_MESSAGE in (error.message or "").lower()
