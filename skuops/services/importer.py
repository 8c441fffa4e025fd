from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from skuops.config.loader import AppConfig
from skuops.errors import SkuOpsError, SourceDataError, UniquenessError, ValidationError
from skuops.logging.error_log import ErrorLogBuffer
from skuops.models.entity import Entity, Row
from skuops.models.error_record import ErrorRecord
from skuops.models.results import ImportResult
from skuops.repository.repository import Repository
from skuops.services.entity_identifier import EntityIdentifier
from skuops.store.adapter import header_titles, rows_from_table
from skuops.store.converter import canonical
from skuops.store.tabular import TabularStore
from skuops.validation.engine import ValidationReport, format_errors, validate_all

"""Import of the staging table into its target entity.

Steps:
1. Read the staging table
2. Identify the target entity from the header row
3. Materialize typed rows
4. ``overwrite``: replace the entity table; ``append``: upsert by unique key
5. Stamp the entity's import date in SystemRecord
6. Clear the staging table

Nothing destructive happens before step 4 succeeds. Failures are recorded
in the error log buffer and re-raised.
"""

__all__ = [
    "DataImportService",
]

logger = logging.getLogger(__name__)


def _record_validation(error_log: ErrorLogBuffer, table: str, entity: Entity, report: ValidationReport) -> None:
    for item in report.items:
        for err in item.errors:
            error_type = "UNIQUENESS_ERROR" if err.kind == "unique" else "VALIDATION_ERROR"
            error_log.append(ErrorRecord.create(table, entity.name, item.row_number or -1, error_type, str(err)))


class DataImportService:
    def __init__(
        self,
        repository: Repository,
        store: TabularStore,
        config: AppConfig,
        error_log: ErrorLogBuffer | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._repository = repository
        self._store = store
        self._config = config
        self._error_log = error_log if error_log is not None else ErrorLogBuffer()
        self._clock = clock
        self.identifier = EntityIdentifier(repository.registry, config.importable_entities)

    @property
    def staging_table(self) -> str:
        return self._config.staging_table

    def run(self) -> ImportResult:
        staging = self.staging_table
        entity: Entity | None = None
        try:
            raw = self._store.read_table(staging)
            entity = self.identifier.identify(header_titles(raw))
            if entity is None:
                raise SourceDataError(
                    f"cannot identify the data in '{staging}', "
                    f"the header row must hold the columns of one of:\n{self.identifier.describe_required_titles()}"
                )
            mode = self.identifier.get_import_mode(entity.name)
            rows = rows_from_table(entity, raw)
            if not rows:
                raise SourceDataError(f"'{staging}' has no data rows")
            logger.info("importing %d rows into %s (%s)", len(rows), entity.worksheet, mode)

            if mode == "append":
                new, updated = self._append(entity, rows, set(header_titles(raw)))
            else:
                self._overwrite(entity, rows)
                new, updated = len(rows), 0

            if entity.import_date_field:
                self._repository.update_system_record(**{entity.import_date_field: self._clock()})
            self._store.clear_table(staging)
        except SkuOpsError as e:
            self._error_log.record_exception(staging, entity.name if entity else "-", e)
            logger.error("import failed: %s", e)
            raise

        if mode == "append":
            message = f"{entity.worksheet}: {new} new, {updated} updated"
        else:
            message = f"{entity.worksheet}: {len(rows)} rows imported (overwrite)"
        return ImportResult(entity.name, entity.worksheet, mode, len(rows), new, updated, message)

    def _check(self, entity: Entity, rows: list[Row]) -> None:
        report = validate_all(rows, entity)
        if report.valid:
            return
        _record_validation(self._error_log, self.staging_table, entity, report)
        message = format_errors(report, self.staging_table)
        if report.has_uniqueness_errors:
            raise UniquenessError(message)
        raise ValidationError(message)

    def _overwrite(self, entity: Entity, rows: list[Row]) -> None:
        self._check(entity, rows)
        self._repository.save(entity.name, rows)

    def _existing(self, entity: Entity) -> list[Row]:
        if not self._repository.exists(entity.name):
            return []
        try:
            return self._repository.find_all(entity.name)
        except SourceDataError:
            # table present but without a title row yet
            return []

    def _append(self, entity: Entity, rows: list[Row], headers: set[str]) -> tuple[int, int]:
        self._check(entity, rows)
        present = [name for name in entity.persisted_fields() if entity.fields[name].title in headers]

        merged = self._existing(entity)
        by_key: dict[tuple[str, ...], int] = {}
        for i, row in enumerate(merged):
            by_key[tuple(canonical(v) for v in entity.unique_value(row))] = i

        new = updated = 0
        for row in rows:
            key = tuple(canonical(v) for v in entity.unique_value(row))
            pos = by_key.get(key)
            if pos is None:
                added = {name: row.get(name) for name in entity.persisted_fields()}
                added["_row_number"] = None
                by_key[key] = len(merged)
                merged.append(added)
                new += 1
            else:
                merged[pos] = {**merged[pos], **{name: row.get(name) for name in present}}
                updated += 1

        self._repository.save(entity.name, merged)
        return new, updated
