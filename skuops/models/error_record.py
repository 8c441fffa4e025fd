from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON Lines error log.

``row`` is the ``_row_number`` of the offending row, or -1 for table-level
failures (unknown entity, adapter failure, freshness) where no single row
is to blame.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        table: worksheet being processed
        entity: logical entity name, empty when it could not be identified
        row: row number (first data row is 2), -1 for table-level errors
        error_type: classification in UPPER_SNAKE_CASE
        message: display message of the failure
    """
    timestamp: str
    table: str
    entity: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(table: str, entity: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            table=table,
            entity=entity,
            row=row,
            error_type=error_type,
            message=message,
        )

    @staticmethod
    def error_type_of(exc: BaseException) -> str:
        """``UniquenessError`` -> ``UNIQUENESS_ERROR``."""
        name = type(exc).__name__
        out = []
        for i, ch in enumerate(name):
            if ch.isupper() and i > 0:
                out.append("_")
            out.append(ch.upper())
        return "".join(out)

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
