from typing import Optional


class DatabaseError(Exception):
    """Base class for every failure reported by the data-access layer."""


class FetchFailed(DatabaseError):

    def __init__(self, path: str, reason: Optional[str] = None) -> None:
        self.path = path
        self.reason = reason
        message = f"Failed to fetch {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class WriteFailed(DatabaseError):

    def __init__(self, path: str, reason: Optional[str] = None) -> None:
        self.path = path
        self.reason = reason
        message = f"Failed to write {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class StoreTimeout(DatabaseError):

    def __init__(self, path: str, timeout: float) -> None:
        self.path = path
        self.timeout = timeout
        super().__init__(f"Store call on {path} timed out after {timeout}s")


class Unauthenticated(DatabaseError):

    def __init__(self, message: str = "No signed-in user") -> None:
        super().__init__(message)


class MalformedRecord(DatabaseError):
    # raised by the decoders, caught and logged by list readers
    pass


class UnsupportedMessageKind(ValueError):
    pass
