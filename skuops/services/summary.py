from __future__ import annotations

from skuops.models.results import ConsolidationResult, ImportResult, PromotionResult

"""Summary line and update report rendering.

Summary lines are single ``key=value`` lines logged at SUMMARY level, e.g.::

    import entity=ProductSales mode=append total=2 new=1 updated=1
    consolidate stages=3/4 products=120 errors=1
    promotion level=gold products=57 warnings=4

The ``SUMMARY`` label itself is added by the log formatter.
"""

__all__ = [
    "render_import_summary",
    "render_consolidation_summary",
    "render_promotion_summary",
    "render_update_report",
]

_STAGE_TITLES = {
    "regular": "Regular products",
    "price": "Product prices",
    "inventory": "Inventory",
    "sales": "Product sales",
}

_COUNT_LABELS = {
    "total": "products before update",
    "new": "new item numbers",
    "updated": "updated",
    "skipped": "unchanged",
    "zero_inventory": "zero inventory",
}


def render_import_summary(result: ImportResult) -> str:
    return (
        f"import entity={result.entity_name} "
        f"mode={result.mode} "
        f"total={result.total} "
        f"new={result.new} "
        f"updated={result.updated}"
    )


def render_consolidation_summary(result: ConsolidationResult) -> str:
    attempted = len(result.stages) + len([name for name, _ in result.errors if name != "save"])
    return (
        f"consolidate stages={len(result.stages)}/{attempted} "
        f"products={result.product_count} "
        f"errors={len(result.errors)}"
    )


def render_promotion_summary(result: PromotionResult) -> str:
    return f"promotion level={result.level} products={len(result.rows)} warnings={result.warnings}"


def render_update_report(result: ConsolidationResult) -> str:
    """Multi-line human readable report of an ``update_all`` run."""
    lines = ["========== Product update report =========="]
    for stage in result.stages:
        lines.append("")
        lines.append(f"[{_STAGE_TITLES.get(stage.stage, stage.stage)}]")
        for key, value in stage.counts.items():
            lines.append(f"  {_COUNT_LABELS.get(key, key)}: {value}")
    if result.errors:
        lines.append("")
        lines.append("[Errors]")
        for stage, error in result.errors:
            lines.append(f"  {stage}: {error}")
    return "\n".join(lines)
