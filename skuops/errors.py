from __future__ import annotations

from collections.abc import Sequence

"""Error kinds raised by the entity layer and the services built on it.

Each kind is reported through a distinct message prefix so that a caller
showing ``str(exc)`` to an operator can tell the failures apart without
inspecting the type.
"""

__all__ = [
    "SkuOpsError",
    "SchemaError",
    "SourceDataError",
    "ValidationError",
    "UniquenessError",
    "FreshnessError",
    "StateError",
    "AdapterError",
    "TransactionError",
]


class SkuOpsError(Exception):
    """Base class. ``str()`` yields ``"<prefix>: <detail>"``."""

    prefix = "Error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"{self.prefix}: {detail}")


class SchemaError(SkuOpsError):
    prefix = "Schema error"


class SourceDataError(SkuOpsError):
    prefix = "Source data error"


class ValidationError(SkuOpsError):
    prefix = "Validation error"


class UniquenessError(ValidationError):
    prefix = "Uniqueness error"


class FreshnessError(SkuOpsError):
    prefix = "Freshness error"


class StateError(SkuOpsError):
    prefix = "State error"


class AdapterError(SkuOpsError):
    """TabularStore failure wrapped with the worksheet and operation."""

    prefix = "Adapter error"

    def __init__(self, detail: str, *, worksheet: str | None = None, operation: str | None = None) -> None:
        self.worksheet = worksheet
        self.operation = operation
        context = ""
        if operation or worksheet:
            context = f"[{operation or '?'} {worksheet or '?'}] "
        super().__init__(f"{context}{detail}")


class TransactionError(SkuOpsError):
    """Combined failure of a multi-entity transaction.

    ``errors`` holds ``(entity_name, exception)`` pairs in the order the
    entities were attempted. Saves that succeeded before the failure are
    not rolled back.
    """

    prefix = "Transaction error"

    def __init__(self, errors: Sequence[tuple[str, Exception]]) -> None:
        self.errors = list(errors)
        lines = [f"{name}: {err}" for name, err in self.errors]
        super().__init__("\n".join(lines))
