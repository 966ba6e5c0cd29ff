"""Error types for the settings engine.

Only SchemaError is meant to reach callers: it aborts session construction.
StorageError is raised by persistence backends and recovered inside the
persistence adapter, where it is logged and treated as a cache miss.
"""


class SettingsSurfaceError(Exception):
    """Base exception for all settings engine errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SchemaError(SettingsSurfaceError):
    """Raised when a configuration object does not describe a valid schema.

    The offending field or group id, when known, is stored in ``details``
    under ``"id"``.
    """

    def __init__(self, message: str, item_id: str = None, **details):
        if item_id is not None:
            details["id"] = item_id
            message = f"{item_id}: {message}"
        super().__init__(message, details)
        self.item_id = item_id


class StorageError(SettingsSurfaceError):
    """Raised when a key-value backend fails to read or write a key."""

    def __init__(self, operation: str, key: str, cause: BaseException = None):
        message = f"Storage {operation} failed for '{key}'"
        if cause is not None:
            message += f": {cause}"
        details = {"operation": operation, "key": key}
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(message, details)
        self.operation = operation
        self.key = key
        self.cause = cause
