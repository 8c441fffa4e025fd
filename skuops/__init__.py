"""skuops - entity layer, import and consolidation pipeline for retail SKU workbooks."""

__version__ = "0.1.0"
