"""Exception types raised by the offline engine."""

from typing import Optional


class OfflinePosError(Exception):
    """Base class for all engine errors."""


class NotFoundError(OfflinePosError):
    """Raised when a queued transaction id is absent from the store."""
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Queued transaction '{transaction_id}' not found")


class StorageError(OfflinePosError):
    """Raised when the local store cannot complete an operation.

    Always fatal to the operation in progress: a sale that cannot be
    persisted must never be reported as queued.
    """
    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Local store failed during {operation}: {detail}")


class RemoteError(OfflinePosError):
    """Base class for failures talking to the remote POS API."""


class RemoteUnavailableError(RemoteError):
    """Network error or timeout; the request may never have reached the server."""
    def __init__(self, endpoint: str, detail: str):
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(f"{endpoint} unreachable: {detail}")


class RemoteServiceError(RemoteError):
    """Remote API answered with a non-2xx status that is worth retrying."""
    def __init__(self, endpoint: str, status_code: int, message: Optional[str] = None):
        self.endpoint = endpoint
        self.status_code = status_code
        self.message = message or f"HTTP {status_code}"
        super().__init__(f"{endpoint} returned {status_code}: {self.message}")


class SaleRejectedError(RemoteServiceError):
    """Remote API refused the sale as invalid (400/422).

    The record is dead-lettered without further retries.
    """


class UnsyncedTransactionsError(OfflinePosError):
    """Raised when a destructive reset would drop sales the server never saw."""
    def __init__(self, pending: int, failed: int):
        self.pending = pending
        self.failed = failed
        super().__init__(
            f"Refusing to clear offline data with {pending} pending "
            f"and {failed} failed transactions"
        )
