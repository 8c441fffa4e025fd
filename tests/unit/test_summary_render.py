from __future__ import annotations

import re

from skuops.errors import FreshnessError
from skuops.models.results import ConsolidationResult, ImportResult, PromotionResult, StageResult
from skuops.services.summary import (
    render_consolidation_summary,
    render_import_summary,
    render_promotion_summary,
    render_update_report,
)

"""Unit tests for summary rendering."""

IMPORT_PATTERN = re.compile(r"^import entity=\w+ mode=(overwrite|append) total=\d+ new=\d+ updated=\d+$")
CONSOLIDATE_PATTERN = re.compile(r"^consolidate stages=(\d+)/(\d+) products=\d+ errors=\d+$")


def test_render_import_summary_append():
    result = ImportResult("ProductSales", "Product Sales", "append", total=3, new=1, updated=1)
    line = render_import_summary(result)
    assert IMPORT_PATTERN.match(line)
    assert line == "import entity=ProductSales mode=append total=3 new=1 updated=1"


def test_render_import_summary_overwrite():
    line = render_import_summary(ImportResult("Inventory", "Inventory", "overwrite", total=120, new=120))
    assert line.endswith("total=120 new=120 updated=0")


def test_render_consolidation_summary_counts_failed_stages():
    result = ConsolidationResult(
        stages=[StageResult("regular", {"total": 2}), StageResult("price", {"updated": 2})],
        errors=[("inventory", FreshnessError("old"))],
        product_count=2,
    )
    match = CONSOLIDATE_PATTERN.match(render_consolidation_summary(result))
    assert match
    assert match.groups() == ("2", "3")
    assert render_consolidation_summary(result).endswith("products=2 errors=1")


def test_save_failure_is_not_a_stage():
    result = ConsolidationResult(
        stages=[StageResult("regular", {})],
        errors=[("save", FreshnessError("x"))],
    )
    assert render_consolidation_summary(result).startswith("consolidate stages=1/1 ")


def test_render_promotion_summary():
    result = PromotionResult("gold", "Promotion Submission", ["Item Number"], [["A"], ["B"]], warnings=1)
    assert render_promotion_summary(result) == "promotion level=gold products=2 warnings=1"


def test_render_update_report():
    result = ConsolidationResult(
        stages=[StageResult("inventory", {"updated": 3, "zero_inventory": 1}), StageResult("custom", {"x": 1})],
        errors=[("sales", FreshnessError("'Product Sales' was imported 13.0h ago"))],
    )
    lines = render_update_report(result).splitlines()
    assert lines[0] == "========== Product update report =========="
    assert "[Inventory]" in lines
    assert "  updated: 3" in lines
    assert "  zero inventory: 1" in lines
    assert "[custom]" in lines
    assert lines[-2] == "[Errors]"
    assert lines[-1] == "  sales: Freshness error: 'Product Sales' was imported 13.0h ago"
