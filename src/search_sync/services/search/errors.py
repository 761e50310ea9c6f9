from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from search_sync.services.search.types import BulkOperationResult


class SyncError(RuntimeError):
    """Base class for everything that stops or taints a synchronization run."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        index: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.index = index

    def __str__(self) -> str:
        message = super().__str__()
        context = [
            f"{name}={value}"
            for name, value in (("operation", self.operation), ("index", self.index))
            if value
        ]
        if self.__cause__ is not None:
            context.append(f"cause={self.__cause__}")
        if not context:
            return message
        return f"{message} ({', '.join(context)})"


class ConfigError(SyncError):
    pass


class ConnectivityError(SyncError):
    pass


class SchemaError(SyncError):
    pass


class MalformedRecordError(SyncError):
    def __init__(self, message: str, *, permalink: str | None = None) -> None:
        super().__init__(message, operation="transform")
        self.permalink = permalink


class BulkTransportError(SyncError):
    pass


class BulkItemError(SyncError):
    """Raised on request by a caller that treats item-level failures as fatal."""

    def __init__(self, failures: Sequence[BulkOperationResult]) -> None:
        super().__init__(f"{len(failures)} document(s) failed to index", operation="bulk")
        self.failures = tuple(failures)
