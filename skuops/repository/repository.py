from __future__ import annotations

import dataclasses
import itertools
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from skuops.errors import SkuOpsError, SourceDataError, StateError, TransactionError, UniquenessError, ValidationError
from skuops.models.entity import Entity, IndexConfig, Row
from skuops.repository.context import ComputeContext
from skuops.repository.index import IndexEngine
from skuops.repository.query import run_query
from skuops.schema.indexes import DEFAULT_INDEXES
from skuops.schema.registry import SchemaRegistry, default_registry, parse_unique_key
from skuops.services.profit import ProfitCalculator
from skuops.store.adapter import FIRST_DATA_ROW, TableAdapter
from skuops.store.converter import canonical, coerce, format_timestamp
from skuops.store.tabular import TabularStore
from skuops.validation.engine import EntityValidation, ValidationReport, format_errors, validate_all, validate_entity

"""Repository: cached, indexed, validated access to entity tables.

Reads materialize a table once (typed, computed, indexed) and serve
defensive copies afterwards. Every mutation funnels into ``save``, which
validates the whole prospective table, recomputes computed fields, applies
the default sort, writes the table and only then replaces the cache and
rebuilds the indexes. A failed save leaves cache and store untouched.
"""

__all__ = [
    "Repository",
]

logger = logging.getLogger(__name__)

# Upper bound of composite lookups a list-valued condition may expand into
_MAX_EXPANSION = 1000


def _is_multi(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _loose_equal(value: Any, expected: Any) -> bool:
    if _is_multi(expected):
        return canonical(value) in {canonical(v) for v in expected}
    return canonical(value) == canonical(expected)


def _raise_invalid(report: ValidationReport | EntityValidation | list[EntityValidation], worksheet: str) -> None:
    if isinstance(report, list):
        unique = any(item.has_uniqueness_error for item in report)
    elif isinstance(report, ValidationReport):
        unique = report.has_uniqueness_errors
    else:
        unique = report.has_uniqueness_error
    message = format_errors(report, worksheet)
    if unique:
        raise UniquenessError(message)
    raise ValidationError(message)


class Repository:
    def __init__(
        self,
        store: TabularStore,
        registry: SchemaRegistry | None = None,
        *,
        context: ComputeContext | None = None,
        indexes: Mapping[str, Iterable[IndexConfig]] | None = None,
    ) -> None:
        self.store = store
        self.registry = registry or default_registry()
        self._adapter = TableAdapter(store)
        self._cache: dict[str, list[Row]] = {}
        self._index = IndexEngine()
        source = DEFAULT_INDEXES if indexes is None else indexes
        self._index_configs: dict[str, tuple[IndexConfig, ...]] = {k: tuple(v) for k, v in source.items()}
        self._context = context or ComputeContext()

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _entity(self, name: str) -> Entity:
        return self.registry.get(name)

    def _compute(self, entity: Entity, rows: list[Row]) -> None:
        computed = [(name, spec) for name, spec in entity.fields.items() if not spec.persisted]
        if not computed:
            return
        ctx = self._context
        for row in rows:
            for name, spec in computed:
                try:
                    row[name] = spec.compute(row, ctx)
                except Exception as e:  # one bad row must not poison the table
                    logger.debug("%s row %s: compute of %s failed: %s", entity.name, row.get("_row_number"), name, e)
                    row[name] = None

    def _load(self, name: str) -> list[Row]:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        entity = self._entity(name)
        rows = self._adapter.read(entity)
        self._compute(entity, rows)
        self._cache[name] = rows
        self._index.rebuild(entity, rows, self._index_configs.get(name, ()))
        logger.debug("loaded %d rows from %s", len(rows), entity.worksheet)
        return rows

    @staticmethod
    def _next_row_number(rows: Iterable[Row]) -> int:
        return max((r.get("_row_number") or 0 for r in rows), default=FIRST_DATA_ROW - 1) + 1

    @staticmethod
    def _apply_defaults(entity: Entity, row: Row) -> None:
        for name, spec in entity.fields.items():
            if spec.persisted and spec.default is not None and row.get(name) is None:
                row[name] = spec.default_for(row)

    def _locate(self, name: str, condition: Mapping[str, Any]) -> list[Row]:
        rows = self._load(name)
        cond = {k: v for k, v in condition.items() if v is not None}
        if not cond:
            return list(rows)

        exact = self._index_lookup(name, cond, tuple(cond))
        if exact is not None:
            return exact

        # widest declared index covering a subset of the condition, then scan the rest
        best: tuple[str, ...] | None = None
        for fields in self._index.index_fields(name):
            if set(fields) <= set(cond) and (best is None or len(fields) > len(best)):
                best = fields
        candidates: list[Row] | None = None
        remaining = cond
        if best is not None:
            candidates = self._index_lookup(name, cond, best)
            if candidates is not None:
                remaining = {k: v for k, v in cond.items() if k not in best}
        if candidates is None:
            candidates = rows
        return [r for r in candidates if all(_loose_equal(r.get(f), v) for f, v in remaining.items())]

    def _index_lookup(self, name: str, cond: Mapping[str, Any], fields: tuple[str, ...]) -> list[Row] | None:
        if not self._index.has_index(name, fields):
            return None
        choices = [list(cond[f]) if _is_multi(cond[f]) else [cond[f]] for f in fields]
        total = 1
        for c in choices:
            total *= len(c)
        if total > _MAX_EXPANSION:
            return None
        seen: set[int] = set()
        out: list[Row] = []
        for combo in itertools.product(*choices):
            hits = self._index.lookup(name, dict(zip(fields, combo, strict=True)))
            if hits is None:
                return None
            for row in hits:
                if id(row) not in seen:
                    seen.add(id(row))
                    out.append(row)
        return out

    def _recompute_cached(self) -> None:
        for name, rows in self._cache.items():
            self._compute(self._entity(name), rows)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def exists(self, name: str) -> bool:
        """True when the entity's table is present in the store."""
        return name in self._cache or self.store.has_table(self._entity(name).worksheet)

    def find_all(self, name: str) -> list[Row]:
        return [dict(r) for r in self._load(name)]

    def find(self, name: str, condition: Mapping[str, Any]) -> list[Row]:
        """Rows equal to ``condition`` under string-coerced comparison.

        None values are ignored; list/tuple/set values mean "any of".
        """
        return [dict(r) for r in self._locate(name, condition)]

    def find_one(self, name: str, condition: Mapping[str, Any]) -> Row | None:
        entity = self._entity(name)
        cond = {k: v for k, v in condition.items() if v is not None}
        if (
            entity.unique_key
            and set(cond) == set(entity.unique_key.fields)
            and not any(_is_multi(v) for v in cond.values())
        ):
            self._load(name)
            hits = self._index.lookup(name, cond)
            if hits is not None:
                return dict(hits[0]) if hits else None
        rows = self._locate(name, cond)
        return dict(rows[0]) if rows else None

    def query(
        self,
        name: str,
        filter: Any = None,
        sort: Any = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Row]:
        rows = [dict(r) for r in self._load(name)]
        return run_query(rows, filter, sort, limit, offset)

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def save(self, name: str, rows: Iterable[Row]) -> None:
        """Replace the whole table of ``name`` with ``rows``.

        Raises:
            UniquenessError: duplicate unique-key values among ``rows``.
            ValidationError: any other field violation.
            AdapterError: the store write failed.
        """
        entity = self._entity(name)
        new_rows = [dict(r) for r in rows]
        next_no = self._next_row_number(new_rows)
        for row in new_rows:
            if row.get("_row_number") is None:
                row["_row_number"] = next_no
                next_no += 1

        report = validate_all(new_rows, entity)
        if not report.valid:
            _raise_invalid(report, entity.worksheet)

        for row in new_rows:
            row.pop("_index_error", None)
            for field_name, spec in entity.fields.items():
                if spec.persisted:
                    row[field_name] = coerce(row.get(field_name), spec.type)
        self._compute(entity, new_rows)
        new_rows = entity.sort_rows(new_rows)

        self._adapter.write(entity, new_rows)
        self._cache[name] = new_rows
        self._index.rebuild(entity, new_rows, self._index_configs.get(name, ()))
        logger.debug("saved %d rows to %s", len(new_rows), entity.worksheet)

    def add(self, name: str, row: Row, *, validate_only: bool = False) -> Row:
        entity = self._entity(name)
        current = self._load(name)
        new = dict(row)
        new["_row_number"] = self._next_row_number(current)
        self._apply_defaults(entity, new)
        result = validate_entity(new, entity, all_data=[*current, new])
        if not result.valid:
            _raise_invalid(result, entity.worksheet)
        if not validate_only:
            self.save(name, [*current, new])
        return dict(new)

    def add_many(self, name: str, rows: Iterable[Row], *, validate_only: bool = False) -> list[Row]:
        """Add all rows or none; each row is checked against current data plus the rows accepted before it."""
        entity = self._entity(name)
        current = self._load(name)
        pool = list(current)
        next_no = self._next_row_number(current)
        accepted: list[Row] = []
        failures: list[EntityValidation] = []
        for raw in rows:
            new = dict(raw)
            new["_row_number"] = next_no
            next_no += 1
            self._apply_defaults(entity, new)
            pool.append(new)
            result = validate_entity(new, entity, all_data=pool)
            if result.valid:
                accepted.append(new)
            else:
                pool.pop()
                failures.append(result)
        if failures:
            _raise_invalid(failures, entity.worksheet)
        if not validate_only:
            self.save(name, [*current, *accepted])
        return [dict(r) for r in accepted]

    def update(
        self,
        name: str,
        condition: Mapping[str, Any],
        patch: Mapping[str, Any],
        *,
        upsert: bool = False,
        multi: bool = False,
        validate_only: bool = False,
    ) -> int:
        """Patch the rows matching ``condition``; returns the number of rows touched."""
        entity = self._entity(name)
        current = self._load(name)
        targets = self._locate(name, condition)
        if not targets:
            if upsert:
                seed = {k: v for k, v in condition.items() if v is not None and not _is_multi(v)}
                self.add(name, {**seed, **patch}, validate_only=validate_only)
                return 1
            raise StateError(f"{entity.worksheet}: no row matches {dict(condition)}")
        if len(targets) > 1 and not multi:
            raise StateError(f"{entity.worksheet}: {len(targets)} rows match {dict(condition)}, pass multi=True to update all")

        target_ids = {id(r) for r in targets}
        pool = [r for r in current if id(r) not in target_ids]
        replaced: dict[int, Row] = {}
        failures: list[EntityValidation] = []
        for target in targets:
            new = {**target, **patch, "_row_number": target.get("_row_number")}
            pool.append(new)
            result = validate_entity(new, entity, all_data=pool)
            if result.valid:
                replaced[id(target)] = new
            else:
                failures.append(result)
        if failures:
            _raise_invalid(failures, entity.worksheet)
        if not validate_only:
            self.save(name, [replaced.get(id(r), r) for r in current])
        return len(targets)

    def update_many(self, name: str, condition: Mapping[str, Any], patch: Mapping[str, Any], *, validate_only: bool = False) -> int:
        return self.update(name, condition, patch, multi=True, validate_only=validate_only)

    def upsert(self, name: str, row: Row, unique_fields: Any = None) -> str:
        """Update the row with the same unique key, or add it. Returns ``"updated"`` or ``"inserted"``."""
        entity = self._entity(name)
        key = parse_unique_key(unique_fields) if unique_fields is not None else entity.unique_key
        if not key:
            raise StateError(f"{entity.worksheet}: no unique key to upsert by")
        missing = [f for f in key.fields if row.get(f) is None or canonical(row.get(f)) == ""]
        if missing:
            raise StateError(f"{entity.worksheet}: upsert row lacks unique field(s) {missing}")
        condition = {f: row[f] for f in key.fields}
        found = self._locate(name, condition)
        if len(found) > 1:
            raise StateError(f"{entity.worksheet}: {len(found)} rows match unique key {condition}")
        if found:
            self.update(name, condition, row)
            return "updated"
        self.add(name, row)
        return "inserted"

    def delete(self, name: str, condition: Mapping[str, Any], *, multi: bool = False) -> int:
        entity = self._entity(name)
        current = self._load(name)
        targets = self._locate(name, condition)
        if not targets:
            raise StateError(f"{entity.worksheet}: no row matches {dict(condition)}")
        if len(targets) > 1 and not multi:
            raise StateError(f"{entity.worksheet}: {len(targets)} rows match {dict(condition)}, pass multi=True to delete all")
        target_ids = {id(r) for r in targets}
        self.save(name, [r for r in current if id(r) not in target_ids])
        return len(targets)

    def transaction(self, ops: Mapping[str, Iterable[Row]]) -> None:
        """Save several entities; each save is all-or-nothing, earlier saves are not rolled back."""
        errors: list[tuple[str, Exception]] = []
        for name, rows in ops.items():
            try:
                self.save(name, rows)
            except SkuOpsError as e:
                logger.warning("transaction: %s failed: %s", name, e)
                errors.append((name, e))
        if errors:
            raise TransactionError(errors)

    def clear(self, name: str) -> None:
        entity = self._entity(name)
        self._adapter.clear(entity)
        self._cache.pop(name, None)
        self._index.drop(name)

    def clear_all_cache(self) -> None:
        self._cache.clear()
        self._index.clear()

    def refresh(self, name: str) -> list[Row]:
        self._cache.pop(name, None)
        self._index.drop(name)
        return self.find_all(name)

    def register_indexes(self, name: str, configs: Iterable[Any]) -> None:
        """Declare indexes for ``name``; accepts IndexConfig, field sequences or ``{"fields", "unique"}`` mappings."""
        entity = self._entity(name)
        parsed: list[IndexConfig] = []
        for config in configs:
            if isinstance(config, IndexConfig):
                parsed.append(config)
            elif isinstance(config, Mapping):
                parsed.append(IndexConfig(parse_unique_key(config.get("fields")).fields, bool(config.get("unique"))))
            else:
                parsed.append(IndexConfig(parse_unique_key(config).fields))
        self._index_configs[name] = tuple(parsed)
        if name in self._cache:
            self._index.rebuild(entity, self._cache[name], self._index_configs[name])

    def index_engine(self) -> IndexEngine:
        return self._index

    # ------------------------------------------------------------------
    # context
    # ------------------------------------------------------------------
    @property
    def context(self) -> ComputeContext:
        return self._context

    def set_context(self, context: ComputeContext | None = None, **changes: Any) -> None:
        """Replace the compute context (or some of its fields) and recompute cached rows."""
        base = context if context is not None else self._context
        self._context = dataclasses.replace(base, **changes) if changes else base
        self._recompute_cached()

    def brand_rate_map(self) -> dict[str, Row]:
        if not self.exists("BrandConfig"):
            return {}
        return {r["brand_sn"]: r for r in self.find_all("BrandConfig") if r.get("brand_sn")}

    def load_brand_context(self) -> ProfitCalculator:
        """Install the brand-rate table and a profit calculator over it into the context."""
        rates = self.brand_rate_map()
        calculator = ProfitCalculator(rates)
        self.set_context(brand_rates=rates, profit_calculator=calculator)
        return calculator

    # ------------------------------------------------------------------
    # system record
    # ------------------------------------------------------------------
    def get_system_record(self) -> Row:
        if not self.exists("SystemRecord"):
            return {}
        try:
            rows = self.find_all("SystemRecord")
        except SourceDataError:
            return {}
        return rows[0] if rows else {}

    def update_system_record(self, **fields: Any) -> Row:
        """Merge ``fields`` into the single SystemRecord row and save it.

        ``datetime`` values are stored as ``YYYY-MM-DD HH:MM:SS`` strings.
        """
        record = self.get_system_record()
        for key, value in fields.items():
            record[key] = format_timestamp(value) if hasattr(value, "strftime") and hasattr(value, "hour") else value
        record.setdefault("_row_number", FIRST_DATA_ROW)
        self.save("SystemRecord", [record])
        return dict(self._load("SystemRecord")[0])
