from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .clean import CLEAN_MODES, MODE_NDJSON_AUTO, clean_file
from .config import DEFAULT_CONFIG_PATH, DEFAULT_PROFILE, bool_norm, load_config, profile_settings
from .errors import InputError
from .filters import FILTER_MODES
from .render import COLOR_MODES, Theme, color_enabled
from .rollup import DEFAULT_DELETED_PATTERN, DeletedMatcher
from .run import (
    DEFAULT_ALL_DIR,
    DEFAULT_ANALYZE_DIR,
    DEFAULT_ANALYZE_TOP,
    DEFAULT_COUNT_TOP,
    DEFAULT_DIFF_TOP,
    DEFAULT_SUGGEST_THRESHOLD,
    build_filter_context,
    run_all,
    run_analyze,
    run_count,
    run_diff,
)
from .write import ANALYZE_CSV, DEFAULT_CSV, CsvFormat


def non_negative_int(value: str) -> int:
    s = str(value).strip()
    if not s.isdigit():
        raise argparse.ArgumentTypeError(f"must be a non-negative integer, got: {value}")
    return int(s)


def non_negative_float(value: str) -> float:
    try:
        f = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"must be a number, got: {value}") from None
    if f < 0 or f != f:
        raise argparse.ArgumentTypeError(f"must be a non-negative number, got: {value}")
    return f


def _add_filter_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--filter", type=Path, default=None, help="Filter JSON file (exclude_namespaces / non_production_namespaces).")
    p.add_argument("--filter-mode", type=str, default=None, help=f"{'|'.join(FILTER_MODES)} (overrides the mode in the filter file).")


def _add_csv_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--csv-delimiter", type=str, default=None, help="CSV field delimiter.")
    p.add_argument("--decimal-separator", type=str, default=None, help="Decimal separator for share columns.")


def _add_deleted_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--deleted-pattern",
        type=str,
        default=DEFAULT_DELETED_PATTERN,
        help=(
            f"Regex marking deleted namespaces (default: {DEFAULT_DELETED_PATTERN}, which also matches live"
            " names such as deleted-archive/; use '^deleted namespace' for the narrower convention)."
        ),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vcc", description="Count, reconcile and diff client usage from activity exports.")
    parser.add_argument("--color", choices=COLOR_MODES, default=None, help="Colorize terminal output (default: $COLOR or auto).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", metavar="command")
    sub.required = True

    p = sub.add_parser("analyze", help="Namespace, prefix and scope breakdown of one export.")
    p.add_argument("--file", type=Path, required=True, help="Export JSON file.")
    p.add_argument("--top", type=non_negative_int, default=DEFAULT_ANALYZE_TOP, help="Rows in top-N lists.")
    p.add_argument("--out-csv", "--out-dir", dest="out_csv", type=Path, default=DEFAULT_ANALYZE_DIR, help="Output directory.")
    p.add_argument("--out-md", type=Path, default=None, help="Markdown report path (default: <out-csv>/namespaces.md).")
    p.add_argument("--suggest-threshold", type=non_negative_float, default=DEFAULT_SUGGEST_THRESHOLD, help="Percent share for prefix suggestions.")
    p.add_argument("--emit-filter", type=bool_norm, nargs="?", const=True, default=False, help="Write a starter exclude filter.")
    p.add_argument("--filter-out", type=Path, default=None, help="Suggested filter path (default: <out-csv>/exclude.json).")
    _add_filter_args(p)
    _add_csv_args(p)
    _add_deleted_arg(p)

    p = sub.add_parser("count", help="Totals, validation and reconciliation for one export.")
    p.add_argument("--file", type=Path, required=True, help="Export JSON file.")
    p.add_argument("--top", type=non_negative_int, default=DEFAULT_COUNT_TOP, help="Rows in top-N lists.")
    p.add_argument("--out-csv", type=Path, default=None, help="Directory for CSV exports.")
    p.add_argument("--out-md", type=Path, default=None, help="Markdown report path.")
    p.add_argument("--entitlement", type=non_negative_int, default=None, help="Entitled client count (annotation only).")
    _add_filter_args(p)
    _add_csv_args(p)

    p = sub.add_parser("diff", help="Namespace-level changes between two exports.")
    p.add_argument("--old", type=Path, required=True, help="Older export JSON file.")
    p.add_argument("--new", type=Path, required=True, help="Newer export JSON file.")
    p.add_argument("--top", type=non_negative_int, default=DEFAULT_DIFF_TOP, help="Rows in top-N lists.")
    p.add_argument("--out-csv", type=Path, default=None, help="Directory for CSV exports.")
    p.add_argument("--out-md", type=Path, default=None, help="Markdown report path.")
    _add_filter_args(p)
    _add_csv_args(p)
    _add_deleted_arg(p)

    p = sub.add_parser("all", help="analyze(new) + count(old) + count(new) + diff(old, new).")
    p.add_argument("--old", type=Path, default=None, help="Older export (default from profile).")
    p.add_argument("--new", type=Path, default=None, help="Newer export (default from profile).")
    p.add_argument("--out-dir", type=Path, default=None, help=f"Output root (default from profile or ./{DEFAULT_ALL_DIR}).")
    p.add_argument("--top", type=non_negative_int, default=None, help="Rows in top-N lists (default from profile).")
    p.add_argument("--suggest-threshold", type=non_negative_float, default=None, help="Passed to analyze.")
    p.add_argument("--emit-filter", type=bool_norm, nargs="?", const=True, default=None, help="Passed to analyze.")
    p.add_argument("--entitlement", type=non_negative_int, default=None, help="Passed to count.")
    p.add_argument("--profile", type=str, default=DEFAULT_PROFILE, help="Profile name in the config file.")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Profile config JSON.")
    _add_filter_args(p)
    _add_csv_args(p)
    _add_deleted_arg(p)

    p = sub.add_parser("clean", help="Strip marker lines and collapse an export to one JSON object.")
    p.add_argument("--in", dest="in_path", type=Path, required=True, help="Input file.")
    p.add_argument("--out", type=Path, default=None, help="Output file (default: <in>.clean.json).")
    p.add_argument("--mode", choices=CLEAN_MODES, default=MODE_NDJSON_AUTO, help="strip | ndjson-auto.")
    p.add_argument("--force", type=bool_norm, nargs="?", const=True, default=False, help="Overwrite an existing output.")
    return parser


def _csv_format(args: argparse.Namespace, default: CsvFormat) -> CsvFormat:
    delimiter = default.delimiter if args.csv_delimiter is None else args.csv_delimiter
    decimal = default.decimal_separator if args.decimal_separator is None else args.decimal_separator
    if len(delimiter) != 1:
        raise InputError(f"--csv-delimiter must be a single character (got: {delimiter!r})")
    if not decimal:
        raise InputError("--decimal-separator must not be empty")
    return CsvFormat(delimiter=delimiter, decimal_separator=decimal)


def _profile_int(value: object, key: str) -> int:
    try:
        return non_negative_int(str(value))
    except argparse.ArgumentTypeError as exc:
        raise InputError(f"profile value '{key}' {exc}") from None


def _profile_float(value: object, key: str) -> float:
    try:
        return non_negative_float(str(value))
    except argparse.ArgumentTypeError as exc:
        raise InputError(f"profile value '{key}' {exc}") from None


def _run_all(args: argparse.Namespace, theme: Theme) -> int:
    prof = profile_settings(load_config(args.config), args.profile)
    old = args.old or (Path(str(prof["old"])) if "old" in prof else None)
    new = args.new or (Path(str(prof["new"])) if "new" in prof else None)
    if old is None or new is None:
        raise InputError("all requires: --old <file> --new <file> (or set them in the profile)")
    out_dir = args.out_dir or Path(str(prof.get("out_dir") or DEFAULT_ALL_DIR))
    top = args.top if args.top is not None else (_profile_int(prof["top"], "top") if "top" in prof else None)
    threshold = args.suggest_threshold
    if threshold is None:
        threshold = _profile_float(prof["suggest_threshold"], "suggest_threshold") if "suggest_threshold" in prof else DEFAULT_SUGGEST_THRESHOLD
    emit = args.emit_filter if args.emit_filter is not None else bool_norm(prof.get("emit_filter"))
    entitlement = args.entitlement
    if entitlement is None and "entitlement" in prof:
        entitlement = _profile_int(prof["entitlement"], "entitlement")
    filter_path = args.filter or (Path(str(prof["filter"])) if "filter" in prof else None)
    filter_mode = args.filter_mode or (str(prof["filter_mode"]) if "filter_mode" in prof else None)

    return run_all(
        old=old,
        new=new,
        ctx=build_filter_context(filter_path, filter_mode),
        out_dir=out_dir,
        top=top,
        suggest_threshold=threshold,
        emit_filter=emit,
        entitlement=entitlement,
        deleted=DeletedMatcher(args.deleted_pattern),
        csv_format=_csv_format(args, DEFAULT_CSV),
        theme=theme,
        profile=args.profile,
    )


def _dispatch(args: argparse.Namespace) -> int:
    theme = Theme(color_enabled(args.color))
    if args.command == "count":
        return run_count(
            file=args.file,
            ctx=build_filter_context(args.filter, args.filter_mode),
            top=args.top,
            out_csv=args.out_csv,
            out_md=args.out_md,
            entitlement=args.entitlement,
            csv_format=_csv_format(args, DEFAULT_CSV),
            theme=theme,
        )
    if args.command == "diff":
        return run_diff(
            old=args.old,
            new=args.new,
            ctx=build_filter_context(args.filter, args.filter_mode),
            top=args.top,
            out_csv=args.out_csv,
            out_md=args.out_md,
            deleted=DeletedMatcher(args.deleted_pattern),
            csv_format=_csv_format(args, DEFAULT_CSV),
            theme=theme,
        )
    if args.command == "analyze":
        return run_analyze(
            file=args.file,
            ctx=build_filter_context(args.filter, args.filter_mode),
            top=args.top,
            out_dir=args.out_csv,
            out_md=args.out_md,
            suggest_threshold=args.suggest_threshold,
            emit_filter=args.emit_filter,
            filter_out=args.filter_out,
            deleted=DeletedMatcher(args.deleted_pattern),
            csv_format=_csv_format(args, ANALYZE_CSV),
            theme=theme,
        )
    if args.command == "all":
        return _run_all(args, theme)
    if args.command == "clean":
        out, result = clean_file(args.in_path, args.out, mode=args.mode, force=args.force)
        print(f"Wrote cleaned export: {out}")
        print(f"  removed namespace markers: {result.removed_markers}")
        print(f"  json values in input: {result.documents}")
        print(f"  output_type: {result.output_type}")
        print(f"  valid_json: {str(result.valid_json).lower()}")
        if not result.valid_json:
            print("  note: output may still not be valid JSON (stream/NDJSON/etc.)")
        return 0
    raise InputError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # argparse exits 2 on usage errors and 0 for --help.
        return int(exc.code or 0)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    try:
        return _dispatch(args)
    except InputError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
