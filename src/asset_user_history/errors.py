"""Exception taxonomy for asset-user-history.

Only failures the caller must act on are exceptions. Authorization denials
and vanished foreign entities are not errors: the query layer degrades to
smaller result sets, and a missing open interval on close is logged as a
consistency warning.
"""


class AssetHistoryError(Exception):
    """Base class for all asset-user-history errors."""


class UnknownObjectTypeError(AssetHistoryError):
    """Raised when an operation names an object type the registry does not know.

    Args:
        object_type: The unknown type name.
    """

    def __init__(self, object_type: str) -> None:
        self.object_type = object_type
        super().__init__(f"Object type '{object_type}' is not registered")


class StoreUnavailableError(AssetHistoryError):
    """Raised when an Interval Store operation still fails after all retries.

    Capture is not best-effort: this error propagates to the caller of the
    object mutation so the mutation fails with it.

    Args:
        operation: Name of the store operation that failed.
        attempts: Number of attempts made.
    """

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"Interval store operation '{operation}' failed after {attempts} attempt(s)")
