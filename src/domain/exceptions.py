"""Base exception classes for the Nagrik Ledger domain layer."""


class NagrikError(Exception):
    """Base exception for all domain errors.

    All domain-specific exceptions MUST inherit from this class.
    This enables consistent error handling across the application.

    Subclasses:
    - StoreError (document store failures and conditional-write conflicts)
    - AllocationError (pseudonym allocation could not be completed cleanly)
    """

    def __init__(self, message: str = "") -> None:
        """Initialize the exception with an optional message.

        Args:
            message: Human-readable error description.
        """
        super().__init__(message)


class RetryableError(NagrikError):
    """Marker base for failures the caller may safely retry.

    Retryable errors never leave aggregate or counter documents in a
    half-updated state, so the same call can be repeated verbatim.
    """

    is_retryable: bool = True
