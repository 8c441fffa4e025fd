"""Domain models: entity declarations, error records and service results."""

from .entity import Entity, FieldSpec, IndexConfig, Row, UniqueKey, ValidatorSpec
from .error_record import ErrorRecord
from .results import ConsolidationResult, ImportResult, PromotionResult, StageResult

__all__ = [
    # Schema models
    "Entity",
    "FieldSpec",
    "IndexConfig",
    "Row",
    "UniqueKey",
    "ValidatorSpec",
    # Logging
    "ErrorRecord",
    # Service results
    "ConsolidationResult",
    "ImportResult",
    "PromotionResult",
    "StageResult",
]
