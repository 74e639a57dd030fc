"""Exceptions shared by the payment and offline-sync components."""


class PaymentError(Exception):
    """Base exception for payment processing errors."""

    pass


class PaymentValidationError(PaymentError):
    """Raised when payment input validation fails."""

    pass


class GatewayConfigurationError(PaymentError):
    """Raised when a configured gateway cannot be wired to an adapter."""

    pass


class GatewayError(Exception):
    """Raised by an adapter when a gateway cannot be reached or errors out."""

    def __init__(self, message: str, retryable: bool = True):
        """
        Initialize gateway error.

        Args:
            message: Error message
            retryable: Whether another attempt may succeed
        """
        super().__init__(message)
        self.retryable = retryable


class GatewayChargeError(GatewayError):
    """One failed charge attempt (decline, timeout or adapter failure)."""

    pass


class OfflineStorageError(Exception):
    """Base exception for the local durable store."""

    pass


class TransactionNotFoundError(OfflineStorageError):
    """Raised when an offline transaction id is not in the store."""

    pass


class OrderLedgerError(Exception):
    """Raised when the remote order ledger rejects or fails a write."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SyncError(Exception):
    """Raised when a reconciliation cycle cannot run at all."""

    pass
