class WordStoreError(Exception):
    """Base class for failures raised by the word store."""


class ValidationError(WordStoreError, ValueError):
    """Caller input was rejected before anything was written."""


class StorageError(WordStoreError):
    """The database engine failed; the original error is chained as ``__cause__``."""
