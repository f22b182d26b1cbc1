"""Error taxonomy for coordination service calls.

Only ``ServiceConnectionError`` raised while a contestant starts crosses the
contestant boundary. Everything else raised mid-cycle is logged and turned
into a fresh leadership check.
"""

from __future__ import annotations


class CoordinationError(Exception):
    """Base exception for coordination service failures."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class ServiceConnectionError(CoordinationError):
    """The client could not establish a session with the service."""


class NodeExistsError(CoordinationError):
    """A node already exists at the requested path."""

    def __init__(self, path: str):
        super().__init__(f"Node already exists: {path}", path=path)


class NoNodeError(CoordinationError):
    """The node (or the parent of a node being created) does not exist."""

    def __init__(self, path: str):
        super().__init__(f"No node: {path}", path=path)


class BadVersionError(CoordinationError):
    """A conditional delete named a version the node no longer has."""

    def __init__(self, path: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Version mismatch on {path}: expected {expected}, found {actual}", path=path
        )


class SessionTeardownError(CoordinationError):
    """Closing the session failed."""


class OperationTimeoutError(CoordinationError):
    """A remote call did not complete within the request timeout."""

    def __init__(self, operation: str, timeout: float, path: str | None = None):
        self.operation = operation
        self.timeout = timeout
        target = f" on {path}" if path else ""
        super().__init__(f"{operation}{target} timed out after {timeout}s", path=path)
