class StorageError(Exception):
    """Raised when the persistent client store cannot be read or written."""
