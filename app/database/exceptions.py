class StorageError(Exception):
    """Raised when the persistence layer fails. Never retried inside the store."""


class DataIntegrityError(StorageError):
    """Raised when a stored row cannot be decoded (e.g. malformed JSON column)."""


class TokenChargeUnavailable(Exception):
    """Raised when an upload's token charge is missing or already spent on another order."""
