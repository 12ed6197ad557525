"""Exception classes for the record store."""


class KvStoreError(Exception):
    """Base exception for all record store errors."""

    pass


class NotFoundError(KvStoreError):
    """Raised when a key is absent (or has expired)."""

    def __init__(self, key: str, what: str = "key"):
        """Initialize with the missing key."""
        self.key = key
        self.what = what
        super().__init__(f"{what} not found: {key}")


class ValidationError(KvStoreError, ValueError):
    """Raised when input fails validation before any mutation is attempted."""

    def __init__(self, field: str, message: str):
        """Initialize with field and message."""
        self.field = field
        self.message = message
        super().__init__(message)


class BackendWriteError(KvStoreError):
    """Raised when a backend commit fails.

    The cache is guaranteed to be unchanged when this is raised.
    """

    def __init__(self, action: str, details: str = ""):
        """Initialize with the failed action and details."""
        self.action = action
        message = f"backend write failed while {action}"
        if details:
            message += f": {details}"
        super().__init__(message)


class LoadError(KvStoreError):
    """Raised when the backend cannot be opened at startup."""

    def __init__(self, location: str, details: str = ""):
        """Initialize with backend location and details."""
        self.location = location
        message = f"cannot open store at '{location}'"
        if details:
            message += f": {details}"
        super().__init__(message)


class PayloadTooLargeError(KvStoreError):
    """Raised when a request body exceeds the accepted size."""

    def __init__(self, size: int):
        """Initialize with the offending size."""
        self.size = size
        super().__init__(f"request body too large: {size} bytes")
