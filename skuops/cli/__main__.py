from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from skuops.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config
from skuops.errors import SchemaError, SkuOpsError
from skuops.logging.error_log import ErrorLogBuffer
from skuops.logging.init import log_summary, setup_logging
from skuops.repository.repository import Repository
from skuops.services.consolidation import STAGES, ProductConsolidationService
from skuops.services.entity_identifier import EntityIdentifier
from skuops.services.importer import DataImportService
from skuops.services.profit import ACTIVITY_LEVELS
from skuops.services.promotion import SHEET_NAME, PromotionSubmissionService
from skuops.services.report import ReportPlanner
from skuops.services.report_templates import ReportTemplateCatalog
from skuops.services.statistics import StatisticsService
from skuops.services.statistics_fields import StatisticsFields
from skuops.services.summary import (
    render_consolidation_summary,
    render_import_summary,
    render_promotion_summary,
    render_update_report,
)
from skuops.store.adapter import header_titles
from skuops.store.sheet_writer import TabularSheetWriter
from skuops.store.workbook import WorkbookTabularStore

"""CLI entrypoint.

Subcommands:
- ``import``            import the staging table into its entity
- ``consolidate``       run the product update stages
- ``submit-promotion``  write the promotion submission sheet
- ``report``            write a statistics report sheet
- ``inspect``           print the tables of the workbook and exit

Exit codes: 0 success, 1 fatal error, 2 some consolidation stages failed.
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

CONFIG_ENV = "SKUOPS_CONFIG"


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load ``.env`` with python-dotenv; a missing file is not an error."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="skuops", description="Retail SKU operations on a workbook")
    p.add_argument("--config", type=Path, default=None, help=f"Config file (default ${CONFIG_ENV} or {DEFAULT_CONFIG_PATH})")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("import", help="Import the staging table")

    cons = sub.add_parser("consolidate", help="Update products from the source tables")
    cons.add_argument("--stage", action="append", choices=STAGES, help="Stage to run (repeatable, default all)")
    cons.add_argument("--period-field", action="append", default=[], help="Statistics field evaluated during the sales stage")

    promo = sub.add_parser("submit-promotion", help="Write the promotion submission sheet")
    promo.add_argument("--level", required=True, choices=ACTIVITY_LEVELS)
    promo.add_argument("--sheet", default=SHEET_NAME)

    report = sub.add_parser("report", help="Write a report of product and statistics fields")
    columns = report.add_mutually_exclusive_group()
    columns.add_argument("--fields", nargs="+", help="Product or statistics fields, in column order")
    columns.add_argument("--template", help="Report template name (default columns when neither option is given)")
    columns.add_argument("--list-fields", action="store_true", help="Print the fields a report accepts and exit")
    report.add_argument("--sheet", default="Report")

    sub.add_parser("inspect", help="Print the workbook tables and exit")
    return p.parse_args(argv)


def _config_path(args: argparse.Namespace) -> Path:
    if args.config is not None:
        return args.config
    env = os.getenv(CONFIG_ENV)
    return Path(env) if env else DEFAULT_CONFIG_PATH


def _inspect(cfg: AppConfig, store: WorkbookTabularStore, repository: Repository) -> int:
    print(f"WORKBOOK: {cfg.workbook}")
    for entity in repository.registry.entities():
        if not store.has_table(entity.worksheet):
            print(f"  {entity.name} ({entity.worksheet}): absent")
            continue
        raw = store.read_table(entity.worksheet)
        rows = max(len(raw) - 1, 0)
        print(f"  {entity.name} ({entity.worksheet}): rows={rows}")
    if store.has_table(cfg.staging_table):
        raw = store.read_table(cfg.staging_table)
        identifier = EntityIdentifier(repository.registry, cfg.importable_entities)
        entity = identifier.identify(header_titles(raw))
        print(f"  STAGING ({cfg.staging_table}): rows={max(len(raw) - 1, 0)} entity={entity.name if entity else '-'}")
    return EXIT_SUCCESS_ALL


def _run(args: argparse.Namespace, cfg: AppConfig, logger: logging.Logger) -> int:
    store = WorkbookTabularStore(cfg.workbook)
    repository = Repository(store)

    if args.command == "inspect":
        return _inspect(cfg, store, repository)

    if args.command == "import":
        error_log = ErrorLogBuffer(Path(cfg.log_directory))
        try:
            result = DataImportService(repository, store, cfg, error_log).run()
        finally:
            path = error_log.flush()
            if path is not None:
                logger.info(f"error log written: {path}")
        logger.info(result.message)
        log_summary(render_import_summary(result))
        return EXIT_SUCCESS_ALL

    repository.load_brand_context()

    if args.command == "consolidate":
        statistics = StatisticsFields(StatisticsService(repository, datetime.now().date()))
        service = ProductConsolidationService(repository, cfg, statistics_fields=statistics)
        result = service.update_all(args.stage or STAGES, period_fields=args.period_field)
        for line in render_update_report(result).splitlines():
            logger.info(line)
        log_summary(render_consolidation_summary(result))
        return EXIT_SUCCESS_ALL if result.ok else EXIT_PARTIAL_FAILURE

    writer = TabularSheetWriter(store)
    if args.command == "submit-promotion":
        service = PromotionSubmissionService(repository, repository.context.profit_calculator, writer, cfg)
        result = service.submit(args.level, sheet_name=args.sheet)
        log_summary(render_promotion_summary(result))
        return EXIT_SUCCESS_ALL

    if args.command == "report":
        planner = ReportPlanner(StatisticsFields(StatisticsService(repository, datetime.now().date())))
        if args.list_fields:
            for f in planner.available_fields():
                print(f"{f['field']}\t{f['title']}\t{f['group']}")
            return EXIT_SUCCESS_ALL
        if args.fields:
            count = planner.write(writer, args.sheet, repository.find_all("Product"), args.fields)
            log_summary(f"report sheet={args.sheet} products={count} fields={len(args.fields)}")
            return EXIT_SUCCESS_ALL
        catalog = ReportTemplateCatalog(repository)
        if args.template is not None:
            catalog.initialize_defaults()
            if not catalog.set_current(args.template):
                available = ", ".join(catalog.template_names())
                raise SchemaError(f"unknown report template: {args.template} (available: {available})")
        products = repository.find_all("Product")
        count = planner.write_template(writer, args.sheet, products, catalog.current_columns())
        log_summary(f"report sheet={args.sheet} products={count} template={catalog.current or 'default'}")
        return EXIT_SUCCESS_ALL

    raise AssertionError(f"unhandled command {args.command}")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # an explicit [] must not fall back to sys.argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(_config_path(args))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if not Path(cfg.workbook).exists():
        logger.error(f"workbook not found: {cfg.workbook}")
        return EXIT_FATAL

    try:
        return _run(args, cfg, logger)
    except SkuOpsError as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
