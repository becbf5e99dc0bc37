from __future__ import annotations

import logging
from pathlib import Path

from .aggregate import count_summary, excluded_rows, month_rows, mount_rows, namespace_rows
from .config import load_filter_file
from .diff import diff_snapshots
from .filters import FilterContext
from .reconcile import reconcile
from .render import (
    PLAIN,
    Theme,
    analyze_markdown,
    count_markdown,
    diff_markdown,
    render_analyze_summary,
    render_count_summary,
    render_diff_summary,
)
from .rollup import (
    DeletedMatcher,
    candidate_prefixes,
    namespace_share_rows,
    rollup_by_prefix,
    rollup_by_scope,
    suggested_filter,
    total_clients,
)
from .schema import load_json_file, load_snapshot
from .write import (
    ANALYZE_CSV,
    DEFAULT_CSV,
    CsvFormat,
    ensure_dir,
    write_diff_summary_csv,
    write_json,
    write_months_csv,
    write_mounts_csv,
    write_namespace_diff_csv,
    write_namespaces_csv,
    write_prefixes_csv,
    write_reconciliation_csv,
    write_reconciliation_mounts_csv,
    write_share_namespaces_csv,
    write_text_atomic,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNT_TOP = 10
DEFAULT_DIFF_TOP = 15
DEFAULT_ANALYZE_TOP = 20
DEFAULT_SUGGEST_THRESHOLD = 5.0
DEFAULT_ANALYZE_DIR = Path("out_namespaces")
DEFAULT_ALL_DIR = Path("out")


def build_filter_context(filter_path: Path | None, filter_mode: str | None) -> FilterContext:
    rules = load_filter_file(filter_path) if filter_path else None
    ctx = FilterContext.build(rules, cli_mode=filter_mode)
    logger.debug("filter: enabled=%s mode=%s", ctx.enabled, ctx.mode)
    return ctx


def _wrote(kind: str, path: Path) -> None:
    print(f"Wrote {kind}: {path}")


def run_count(
    *,
    file: Path,
    ctx: FilterContext,
    top: int = DEFAULT_COUNT_TOP,
    out_csv: Path | None = None,
    out_md: Path | None = None,
    entitlement: int | None = None,
    csv_format: CsvFormat = DEFAULT_CSV,
    theme: Theme = PLAIN,
) -> int:
    snapshot = load_snapshot(file, label="File")
    summary = count_summary(snapshot, ctx)
    ns = namespace_rows(snapshot, ctx)
    mounts = mount_rows(snapshot, ctx)
    recon = reconcile(snapshot.namespaces, ctx.keep)
    months = month_rows(snapshot)

    print(
        render_count_summary(
            summary=summary,
            ctx=ctx,
            namespaces=ns,
            mounts=mounts,
            excluded=excluded_rows(snapshot, ctx),
            reconciliation=recon,
            months=months,
            top_n=top,
            entitlement=entitlement,
            theme=theme,
        ),
        end="",
    )
    if not summary.consistent:
        logger.warning("%s: namespace sum differs from reported total: %s", file, summary.namespaces_minus_reported.as_dict())

    if out_csv is not None:
        ensure_dir(out_csv)
        targets = [
            (out_csv / "namespaces.csv", lambda p: write_namespaces_csv(p, ns, csv_format)),
            (out_csv / "mounts.csv", lambda p: write_mounts_csv(p, mounts, csv_format)),
            (out_csv / "reconciliation.csv", lambda p: write_reconciliation_csv(p, recon, csv_format)),
            (out_csv / "reconciliation_mounts.csv", lambda p: write_reconciliation_mounts_csv(p, recon, csv_format)),
        ]
        if months:
            targets.append((out_csv / "months.csv", lambda p: write_months_csv(p, months, csv_format)))
        for path, write in targets:
            write(path)
            _wrote("CSV", path)

    if out_md is not None:
        md = count_markdown(
            summary=summary,
            ctx=ctx,
            namespaces=ns,
            mounts=mounts,
            reconciliation=recon,
            months=months,
            top_n=top,
            entitlement=entitlement,
        )
        write_text_atomic(out_md, md)
        _wrote("Markdown", out_md)
    return 0


def run_diff(
    *,
    old: Path,
    new: Path,
    ctx: FilterContext,
    top: int = DEFAULT_DIFF_TOP,
    out_csv: Path | None = None,
    out_md: Path | None = None,
    deleted: DeletedMatcher | None = None,
    csv_format: CsvFormat = DEFAULT_CSV,
    theme: Theme = PLAIN,
) -> int:
    old_snap = load_snapshot(old, label="Old file")
    new_snap = load_snapshot(new, label="New file")
    result = diff_snapshots(old_snap, new_snap, ctx, deleted=deleted)

    print(render_diff_summary(result=result, ctx=ctx, top_n=top, theme=theme), end="")

    if out_csv is not None:
        ensure_dir(out_csv)
        for path, write in (
            (out_csv / "namespace_diff.csv", write_namespace_diff_csv),
            (out_csv / "summary.csv", write_diff_summary_csv),
        ):
            write(path, result, csv_format)
            _wrote("CSV", path)

    if out_md is not None:
        write_text_atomic(out_md, diff_markdown(result=result, ctx=ctx, top_n=top))
        _wrote("Markdown", out_md)
    return 0


def run_analyze(
    *,
    file: Path,
    ctx: FilterContext,
    top: int = DEFAULT_ANALYZE_TOP,
    out_dir: Path = DEFAULT_ANALYZE_DIR,
    out_md: Path | None = None,
    suggest_threshold: float = DEFAULT_SUGGEST_THRESHOLD,
    emit_filter: bool = False,
    filter_out: Path | None = None,
    deleted: DeletedMatcher | None = None,
    csv_format: CsvFormat = ANALYZE_CSV,
    theme: Theme = PLAIN,
) -> int:
    deleted = deleted or DeletedMatcher()
    snapshot = load_snapshot(file, label="File")
    kept = [n for n in snapshot.namespaces if ctx.keep(n.key)]

    prefixes = rollup_by_prefix(kept, deleted)
    scopes = rollup_by_scope(kept, deleted)
    shares = namespace_share_rows(kept, deleted)
    candidates = candidate_prefixes(prefixes, suggest_threshold)
    total = total_clients(kept)

    print(
        render_analyze_summary(
            start_time=snapshot.start_time,
            namespace_count=len(kept),
            mount_count=sum(n.mount_count for n in kept),
            total_clients=total,
            scopes=scopes,
            prefixes=prefixes,
            namespaces=shares,
            candidates=candidates,
            top_n=top,
            theme=theme,
        ),
        end="",
    )

    ensure_dir(out_dir)
    ns_csv = out_dir / "namespaces.csv"
    write_share_namespaces_csv(ns_csv, shares, csv_format)
    _wrote("CSV", ns_csv)
    prefix_csv = out_dir / "prefixes.csv"
    write_prefixes_csv(prefix_csv, prefixes, csv_format)
    _wrote("CSV", prefix_csv)

    md_path = out_md or out_dir / "namespaces.md"
    md = analyze_markdown(
        namespace_count=len(kept),
        mount_count=sum(n.mount_count for n in kept),
        total_clients=total,
        scopes=scopes,
        prefixes=prefixes,
        namespaces=shares,
        top_n=top,
        decimal_separator=csv_format.decimal_separator,
    )
    write_text_atomic(md_path, md)
    _wrote("Markdown", md_path)

    if emit_filter:
        target = filter_out or out_dir / "exclude.json"
        write_json(target, suggested_filter(prefixes, suggest_threshold))
        _wrote("filter suggestion", target)
    return 0


def empty_reports(paths: list[Path]) -> list[Path]:
    return [p for p in paths if p.is_file() and p.stat().st_size == 0]


def run_all(
    *,
    old: Path,
    new: Path,
    ctx: FilterContext,
    out_dir: Path = DEFAULT_ALL_DIR,
    top: int | None = None,
    suggest_threshold: float = DEFAULT_SUGGEST_THRESHOLD,
    emit_filter: bool = False,
    entitlement: int | None = None,
    deleted: DeletedMatcher | None = None,
    csv_format: CsvFormat = DEFAULT_CSV,
    analyze_csv_format: CsvFormat = ANALYZE_CSV,
    theme: Theme = PLAIN,
    profile: str = "",
) -> int:
    # Inputs are validated before any output directory is created.
    load_json_file(old, label="Old file")
    load_json_file(new, label="New file")

    ns_dir = out_dir / "namespaces"
    old_dir = out_dir / "old"
    new_dir = out_dir / "new"
    diff_dir = out_dir / "diff"
    for d in (ns_dir, old_dir, new_dir, diff_dir):
        ensure_dir(d)

    lines = [
        theme.title("Workflow: all"),
        f"  profile: {profile or '-'}",
        f"  old    : {old}",
        f"  new    : {new}",
        f"  out    : {out_dir}",
    ]
    if entitlement is not None:
        lines.append(f"  entitlement: {entitlement}")
    print("\n".join(lines) + "\n")

    # The namespace analysis describes the new export as-is; filters apply to count and diff only.
    run_analyze(
        file=new,
        ctx=FilterContext.disabled(),
        top=top if top is not None else DEFAULT_ANALYZE_TOP,
        out_dir=ns_dir,
        suggest_threshold=suggest_threshold,
        emit_filter=emit_filter,
        deleted=deleted,
        csv_format=analyze_csv_format,
        theme=theme,
    )
    print("")
    for label, file, target in (("old", old, old_dir), ("new", new, new_dir)):
        print(theme.title(f"Count ({label}): {file}"))
        run_count(
            file=file,
            ctx=ctx,
            top=top if top is not None else DEFAULT_COUNT_TOP,
            out_csv=target,
            out_md=target / "report.md",
            entitlement=entitlement,
            csv_format=csv_format,
            theme=theme,
        )
        print("")
    print(theme.title("Diff (old -> new)"))
    run_diff(
        old=old,
        new=new,
        ctx=ctx,
        top=top if top is not None else DEFAULT_DIFF_TOP,
        out_csv=diff_dir,
        out_md=diff_dir / "diff.md",
        deleted=deleted,
        csv_format=csv_format,
        theme=theme,
    )

    for p in empty_reports([old_dir / "report.md", new_dir / "report.md", diff_dir / "diff.md", ns_dir / "namespaces.md"]):
        logger.warning("report is empty: %s", p)
    print(f"Done. Reports in: {out_dir}")
    return 0
