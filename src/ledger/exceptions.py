"""Custom exceptions for the strategy ledger.

Per-key price failures are never raised; they show up as absent keys in
the fetcher's result. Only batch preconditions and programming-contract
violations are exceptions.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class MissingCredentialError(LedgerError):
    """Raised before any network call when no price API key is supplied."""


class EncodingMismatchError(LedgerError):
    """Raised when a raw and an adjusted amount are combined."""


class MissingDecimalsError(LedgerError):
    """Raised when a raw amount is converted without token decimals."""


class ProviderError(LedgerError):
    """Raised when an order-data provider returns an unusable payload."""


class UnknownProductError(LedgerError):
    """Raised when a provider record carries an unsupported schema tag."""


class BatchCancelled(LedgerError):
    """Raised inside a price batch when its cancellation event fires.

    Caught at the batch boundary; callers of fetch_prices never see it.
    """
