"""Command line interface for previewing, importing and reporting on LQS data."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .analytics import funnel_summary, lead_source_roi, roi_dataframe
from .config import commission_rate, load_configuration, load_settings
from .errors import ConfigurationError, LqsPipelineError
from .factory import build_store
from .formatting import format_cents, format_percent
from .ingestion.exporters import SORT_COLUMNS, build_household_rows, export_households, paginate, sort_households
from .ingestion.mapping import score_candidates, suggest_mapping
from .ingestion.models import MULTI_FIELDS, SINGLE_FIELDS
from .ingestion.parser import parse_tabular
from .models import ImportKind
from .orchestrator import UploadContext, UploadOrchestrator
from .orchestrator.service import HEADER_HINTS, SHEET_HINTS
from .store import InMemoryStore
from .store.base import DataStore

LOGGER = logging.getLogger(__name__)


def _mapping_override(value: str) -> Tuple[str, str]:
    target, separator, column = value.partition("=")
    if not separator or not target.strip():
        raise argparse.ArgumentTypeError(f"Expected FIELD=COLUMN, got '{value}'")
    if target.strip() not in SINGLE_FIELDS + MULTI_FIELDS:
        raise argparse.ArgumentTypeError(
            f"Unknown field '{target.strip()}'. Expected one of {', '.join(SINGLE_FIELDS + MULTI_FIELDS)}"
        )
    return target.strip(), column.strip()


def _sort_criterion(value: str) -> Tuple[str, str]:
    column, _, direction = value.partition(":")
    column = column.strip()
    direction = (direction or "asc").strip().lower()
    if column not in SORT_COLUMNS or direction not in {"asc", "desc"}:
        raise argparse.ArgumentTypeError(
            f"Expected COLUMN[:asc|desc] with COLUMN one of {', '.join(SORT_COLUMNS)}, got '{value}'"
        )
    return column, direction


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to the pipeline configuration file (YAML or JSON)")
    common.add_argument("--agency", help="Agency id; overrides agency_id from the configuration")
    common.add_argument(
        "--snapshot",
        help="Use a JSON snapshot file as the data store; imports write it back",
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. DEBUG, INFO, WARNING)",
    )

    parser = argparse.ArgumentParser(
        prog=prog,
        description="Bulk ingestion and reporting for the Lead -> Quote -> Sale funnel",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview = subparsers.add_parser("preview", parents=[common], help="Parse a file and show the suggested mapping")
    preview.add_argument("input", help="CSV or XLSX file")
    preview.add_argument("--kind", choices=[kind.value for kind in ImportKind], default=ImportKind.LEAD.value)

    upload = subparsers.add_parser("import", parents=[common], help="Import a lead, quote or sales file")
    upload.add_argument("input", help="CSV or XLSX file")
    upload.add_argument("--kind", choices=[kind.value for kind in ImportKind], required=True)
    upload.add_argument("--lead-source", help="Lead source id stamped on every household in the file")
    upload.add_argument(
        "--map",
        action="append",
        type=_mapping_override,
        default=[],
        metavar="FIELD=COLUMN",
        help="Override the suggested source column for a field (repeatable; phones may repeat)",
    )
    upload.add_argument("--as-of", type=date.fromisoformat, help="Reference date (YYYY-MM-DD) for undated leads")

    export = subparsers.add_parser("export", parents=[common], help="Export households to CSV or XLSX")
    export.add_argument("output", help="Destination file (.csv or .xlsx)")
    export.add_argument(
        "--sort",
        action="append",
        type=_sort_criterion,
        default=[],
        metavar="COLUMN[:DIR]",
        help="Sort criterion, highest priority first (repeatable)",
    )
    export.add_argument("--page", type=int, help="1-based page to export")
    export.add_argument("--page-size", type=int, default=50)

    roi = subparsers.add_parser("roi", parents=[common], help="Print lead source ROI")
    roi.add_argument("--commission-rate", type=float, help="Commission as a fraction of premium, e.g. 0.22")
    roi.add_argument("--output", help="Write the ROI table to this CSV file instead of printing it")
    roi.add_argument("--start", type=date.fromisoformat, help="First day (YYYY-MM-DD) of the reporting period")
    roi.add_argument("--end", type=date.fromisoformat, help="Last day (YYYY-MM-DD) of the reporting period")
    roi.add_argument(
        "--activity",
        action="store_true",
        help="Count leads, quotes and sales by their own dates within the period instead of current status",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


# ----------------------------------------------------------------------
def _load_config(args: argparse.Namespace) -> Dict[str, Any]:
    return load_configuration(args.config) if args.config else {}


def _open_store(args: argparse.Namespace, config: Dict[str, Any]) -> DataStore:
    if args.snapshot:
        return InMemoryStore.load(args.snapshot)
    return build_store(config)


def _agency_id(args: argparse.Namespace, config: Dict[str, Any]) -> str:
    agency_id = args.agency or config.get("agency_id")
    if not agency_id:
        raise LqsPipelineError("An agency id is required (--agency or agency_id in the configuration)")
    return str(agency_id)


def _collect_overrides(pairs: List[Tuple[str, str]]) -> Dict[str, object]:
    overrides: Dict[str, object] = {}
    for target, column in pairs:
        if target in MULTI_FIELDS:
            columns = overrides.setdefault(target, [])
            if column:
                columns.append(column)  # type: ignore[union-attr]
            continue
        overrides[target] = column
    return overrides


def run_preview(args: argparse.Namespace) -> int:
    kind = ImportKind(args.kind)
    path = Path(args.input)
    result = parse_tabular(
        path.read_bytes(),
        path.name,
        header_hints=HEADER_HINTS.get(kind),
        sheet_hints=SHEET_HINTS.get(kind),
    )
    if not result.success:
        for message in result.errors:
            print(f"error: {message}", file=sys.stderr)
        return 1

    mapping = suggest_mapping(result.headers)
    candidates = score_candidates(result.headers)
    report = {
        "sheet": result.sheet_name,
        "headers": result.headers,
        "total_rows": result.total_rows,
        "mapping": mapping.as_dict(),
        "candidates": {
            target: [{"header": item.header, "score": round(item.score, 2)} for item in items]
            for target, items in candidates.items()
            if items
        },
        "sample_rows": result.sample_rows,
    }
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 0


def run_import(args: argparse.Namespace) -> int:
    config = _load_config(args)
    agency_id = _agency_id(args, config)
    store = _open_store(args, config)
    orchestrator = UploadOrchestrator(store, settings=load_settings(config))

    path = Path(args.input)
    context = UploadContext(agency_id=agency_id, lead_source_id=args.lead_source, as_of=args.as_of)

    def report_progress(processed: int, total: int) -> None:
        LOGGER.info("Imported %s of %s records", processed, total)

    try:
        result = orchestrator.run(
            path.read_bytes(),
            path.name,
            ImportKind(args.kind),
            context,
            mapping=_collect_overrides(args.map) or None,
            on_progress=report_progress,
        )
    finally:
        orchestrator.shutdown()

    if args.snapshot and isinstance(store, InMemoryStore):
        store.save(args.snapshot)
        LOGGER.info("Snapshot written to %s", Path(args.snapshot).resolve())

    print(json.dumps(result.as_dict(), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


def run_export(args: argparse.Namespace) -> int:
    config = _load_config(args)
    agency_id = _agency_id(args, config)
    store = _open_store(args, config)

    rows = build_household_rows(
        store.list_households(agency_id),
        lead_sources=store.list_lead_sources(agency_id),
        team_members=store.list_team_members(agency_id),
    )
    rows = sort_households(rows, args.sort)
    if args.page:
        rows = paginate(rows, args.page, args.page_size)
    output = export_households(rows, args.output)
    LOGGER.info("Exported %s households to %s", len(rows), output.resolve())
    return 0


def run_roi(args: argparse.Namespace) -> int:
    config = _load_config(args)
    agency_id = _agency_id(args, config)
    store = _open_store(args, config)
    rate = args.commission_rate if args.commission_rate is not None else commission_rate(config)
    period = (args.start, args.end) if args.start and args.end else None
    if args.activity and period is None:
        raise ConfigurationError("--activity needs both --start and --end")

    households = store.list_households(agency_id)
    rows = lead_source_roi(
        households,
        store.list_lead_sources(agency_id),
        buckets=store.list_marketing_buckets(agency_id),
        spend=store.list_lead_source_spend(agency_id),
        commission_rate=rate,
        period=period,
        activity=args.activity,
    )
    if args.output:
        roi_dataframe(rows).to_csv(args.output, index=False)
        LOGGER.info("ROI table written to %s", Path(args.output).resolve())
        return 0

    summary = funnel_summary(households)
    print(
        f"Households: {summary.total_households}  Quoted: {summary.total_quoted}  Sold: {summary.sold_households}  "
        f"Premium: {format_cents(summary.premium_sold_cents)}  Close rate: {format_percent(summary.close_rate)}"
    )
    for row in rows:
        print(
            f"{row.lead_source_name:<30} leads={row.total_leads:<5} quoted={row.quoted_households:<5} "
            f"sold={row.sold_households:<5} premium={format_cents(row.premium_cents):>14} "
            f"spend={format_cents(row.spend_cents):>12} roi={'-' if row.roi is None else f'{row.roi:.2f}x'}"
        )
    return 0


_COMMANDS = {
    "preview": run_preview,
    "import": run_import,
    "export": run_export,
    "roi": run_roi,
}


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        return _COMMANDS[args.command](args)
    except LqsPipelineError as exc:
        logging.error("%s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
