"""Exceptions raised by the store client"""
from typing import Optional


class StoreClientError(Exception):
    """Base class for every error raised by kvclient."""


class StoreOperationError(StoreClientError):
    """
    The store could not be reached or rejected the command.
    The underlying exception is kept on `cause` and chained as __cause__.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ClientClosedError(StoreOperationError):
    """The client was already closed."""

    def __init__(self, message: str = "store client is closed"):
        super().__init__(message)


class KeyNotFoundError(StoreClientError):
    """get() on a key the store does not hold."""

    def __init__(self, key: str):
        super().__init__(f"key not found: {key!r}")
        self.key = key
