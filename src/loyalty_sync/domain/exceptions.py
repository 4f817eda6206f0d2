"""Custom exceptions for the loyalty sync service."""


class LoyaltyError(Exception):
    """Base exception for loyalty engine errors."""

    pass


class TokenDecodeError(LoyaltyError):
    """
    Raised when a scanned QR payload cannot be parsed or decoded.

    This is a TERMINAL error surfaced to the scanner as 400. No progress
    state is touched.
    """

    pass


class TokenBusinessMismatchError(LoyaltyError):
    """
    Raised when a customer token was issued for a different business.

    This is a TERMINAL error surfaced as 403.
    """

    pass


class OfferNotFoundError(LoyaltyError):
    """
    Raised when an offer hash matches none of the scanning business's offers,
    or an offer id does not exist.

    This is a TERMINAL error surfaced as 404.
    """

    pass


class OfferOwnershipError(LoyaltyError):
    """
    Raised when a business acts on an offer it does not own.

    This is a TERMINAL error surfaced as 403.
    """

    pass


class ProgressNotFoundError(LoyaltyError):
    """
    Raised when no progress row exists for a (customer, offer) pair.

    This is a TERMINAL error surfaced as 404.
    """

    pass


class RewardNotAvailableError(LoyaltyError):
    """
    Raised when a reward claim is attempted on a card that is not completed.

    This is a TERMINAL error surfaced as 400.
    """

    pass


class ProgressConflictError(LoyaltyError):
    """
    Raised when the storage layer detects a concurrent mutation.

    This is a RETRYABLE error. The orchestrator retries the whole scan once,
    then surfaces 500.

    Examples:
    - Two first scans racing on the unique (customer, offer) constraint
    - Deadlock or serialization failure reported by PostgreSQL
    """

    pass


class WalletAdapterError(LoyaltyError):
    """
    Base exception for wallet adapter failures.

    Wallet errors never change the HTTP status of a scan. The dispatcher
    downgrades them to failure entries in the sync report.
    """

    retryable: bool = False

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WalletObjectNotFoundError(WalletAdapterError):
    """
    Raised when the remote pass object does not exist (404).

    The dispatcher recreates the object once and retries the push.
    """

    retryable = True


class WalletRateLimitError(WalletAdapterError):
    """
    Raised when the wallet provider rate limits a request (429).

    This is a RETRYABLE error, deferred to the next sync trigger.
    """

    retryable = True


class WalletTimeoutError(WalletAdapterError):
    """
    Raised when the wallet provider times out or returns a transient error.

    This is a RETRYABLE error.

    Examples:
    - Provider API returns 5xx errors
    - Network timeout
    - Connection errors
    """

    retryable = True


class WalletAuthenticationError(WalletAdapterError):
    """
    Raised when the wallet provider rejects our credentials (401/403).

    This is a TERMINAL error until credentials are fixed.
    """

    pass


class WalletUnavailableError(WalletAdapterError):
    """
    Raised when an operation needs a wallet adapter that is disabled.

    Only pass provisioning raises this. Sync operations return a structured
    SERVICE_UNAVAILABLE result instead.
    """

    pass
