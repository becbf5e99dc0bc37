from __future__ import annotations

import os
import sys

from .aggregate import CountSummary, MonthRow, MountRow, NamespaceRow, entitlement_status
from .diff import DiffResult, NamespaceDelta, key_takeaway, non_production_movers
from .filters import FilterContext
from .models import COUNTER_FIELDS, CounterSet
from .reconcile import ReconciliationRow
from .rollup import NamespaceShareRow, PrefixRow, ScopeRow, format_pct, format_share

COLOR_MODES = ("auto", "always", "never")


def color_enabled(mode: str | None = None, stream=None) -> bool:
    m = str(mode or os.environ.get("COLOR") or "auto").strip().lower()
    if m == "always":
        return True
    if m == "never":
        return False
    if str(os.environ.get("NO_COLOR") or "").strip():
        return False
    stream = stream if stream is not None else sys.stdout
    return bool(getattr(stream, "isatty", lambda: False)())


class Theme:
    def __init__(self, enabled: bool) -> None:
        self.enabled = bool(enabled)
        self.reset = "\033[0m"
        self.bold = "\033[1m"
        self.dim = "\033[2m"
        self.header = "\033[35m"  # magenta
        self.section = "\033[36m"  # cyan
        self.ok = "\033[32m"
        self.warn = "\033[33m"
        self.err = "\033[31m"
        self.scopes = {
            "prod": "\033[32m",
            "non-prod": "\033[33m",
            "shared": "\033[36m",
            "other": "\033[90m",
        }

    def c(self, text: str, *codes: str) -> str:
        if not self.enabled or not codes:
            return str(text)
        return "".join(codes) + str(text) + self.reset

    def title(self, text: str) -> str:
        return self.c(text, self.section, self.bold)

    def scope(self, name: str) -> str:
        return self.c(name, self.scopes.get(name, ""))

    def signed(self, n: int) -> str:
        s = f"{n:+d}"
        if n > 0:
            return self.c(s, self.warn)
        if n < 0:
            return self.c(s, self.ok)
        return s


PLAIN = Theme(False)


def fmt_counts(cs: CounterSet, *, signed: bool = False) -> str:
    fmt = "{:+d}" if signed else "{:d}"
    return "  ".join(f"{f}={fmt.format(getattr(cs, f))}" for f in COUNTER_FIELDS)


def md_cell(value: object) -> str:
    return str(value).replace("|", "\\|")


def _counter_lines(cs: CounterSet) -> list[str]:
    return [f"  {f + ':':20}{getattr(cs, f)}" for f in COUNTER_FIELDS]


def _filter_lines(ctx: FilterContext, theme: Theme) -> list[str]:
    if not ctx.enabled:
        return []
    d = ctx.describe()
    return [
        theme.title("Filter"),
        f"  mode: {d['mode']}",
        f"  exclude_namespaces: {d['exclude_namespaces']}",
        f"  non_production_namespaces: {d['non_production_namespaces']}",
        "",
    ]


def _np_tag(ctx: FilterContext, namespace: str, theme: Theme) -> str:
    if ctx.highlight_non_production(namespace):
        return "  " + theme.c("[non-production]", theme.warn)
    return ""


def render_count_summary(
    *,
    summary: CountSummary,
    ctx: FilterContext,
    namespaces: list[NamespaceRow],
    mounts: list[MountRow],
    excluded: list[NamespaceRow],
    reconciliation: list[ReconciliationRow],
    months: list[MonthRow],
    top_n: int,
    entitlement: int | None = None,
    theme: Theme = PLAIN,
) -> str:
    filtered = ", filtered" if summary.filtered else ""
    lines: list[str] = []
    lines.extend(_filter_lines(ctx, theme))

    lines.append(theme.title("File summary"))
    lines.append(f"  start_time:   {summary.start_time}")
    lines.append(f"  namespaces:   {summary.namespace_count}")
    lines.append(f"  mounts:       {summary.mount_count}")
    lines.append("")

    lines.append(theme.title(f"Totals (computed from namespaces{filtered})"))
    lines.extend(_counter_lines(summary.namespace_totals))
    lines.append("")
    lines.append(theme.title(f"Totals (computed from mounts{filtered})"))
    lines.extend(_counter_lines(summary.mount_totals))
    lines.append("")
    lines.append(theme.title("Totals (reported in file: .total)"))
    lines.extend(_counter_lines(summary.reported))
    lines.append("")

    lines.append(theme.title("Validation (computed minus reported, unfiltered)"))
    lines.append(f"  namespaces - reported: {fmt_counts(summary.namespaces_minus_reported, signed=True)}")
    lines.append(f"  mounts     - reported: {fmt_counts(summary.mounts_minus_reported, signed=True)}")
    lines.append("")

    if entitlement is not None:
        status = entitlement_status(summary.namespace_totals.clients, entitlement)
        color = theme.err if status.startswith("over") else theme.ok
        lines.append(theme.title("Entitlement"))
        lines.append(f"  entitlement: {entitlement}")
        lines.append(f"  clients:     {summary.namespace_totals.clients}")
        lines.append(f"  status:      {theme.c(status, color, theme.bold)}")
        lines.append("")

    if excluded:
        lines.append(theme.title(f"Excluded namespaces (top {top_n} by clients)"))
        for r in excluded[:top_n]:
            lines.append(f"  - {r.namespace}  clients={r.clients}")
        lines.append("")

    lines.append(theme.title("Reconciliation (namespaces where mounts_sum != namespace_total)"))
    if not reconciliation:
        lines.append("  - none")
    for r in reconciliation[:top_n]:
        lines.append(
            f"  - {r.namespace}  namespace={r.namespace_clients}  mounts_sum={r.mounts_clients_sum}"
            f"  delta={theme.signed(r.delta)}  mounts={r.mount_count}"
        )
    lines.append("")

    if reconciliation:
        lines.append(theme.title("Reconciliation details"))
        for r in reconciliation[:top_n]:
            lines.append(f"  - {r.namespace}  delta={r.delta:+d} (namespace={r.namespace_clients}, mounts_sum={r.mounts_clients_sum})")
            for m in r.mounts_by_clients:
                lines.append(f"    * {m.mount_path} ({m.mount_type}) clients={m.counts.clients}")
        lines.append("")

    lines.append(theme.title(f"Top namespaces by clients (top {top_n})"))
    for r in namespaces[:top_n]:
        lines.append(f"  - {r.namespace}{_np_tag(ctx, r.namespace, theme)}  clients={r.clients}  mounts={r.mounts}")
    if not namespaces:
        lines.append("  - none")
    lines.append("")

    lines.append(theme.title(f"Top mounts by clients (top {top_n})"))
    for m in mounts[:top_n]:
        lines.append(f"  - {m.namespace}{_np_tag(ctx, m.namespace, theme)}  {m.mount_path} ({m.mount_type})  clients={m.clients}")
    if not mounts:
        lines.append("  - none")
    lines.append("")

    if months:
        lines.append(theme.title("Monthly checks (from .months)"))
        lines.append("  clients:")
        for m in months:
            lines.append(f"    - {m.timestamp}  clients={m.clients}")
        lines.append("  new_clients:")
        for m in months:
            lines.append(f"    - {m.timestamp}  new_clients={m.new_clients}")
        lines.append("")

    return "\n".join(lines) + "\n"


def _mover_line(r: NamespaceDelta, ctx: FilterContext, theme: Theme) -> str:
    return f"  - {r.namespace}{_np_tag(ctx, r.namespace, theme)}  {r.old_clients} -> {r.new_clients} ({theme.signed(r.delta_clients)})"


def render_diff_summary(*, result: DiffResult, ctx: FilterContext, top_n: int, theme: Theme = PLAIN) -> str:
    lines: list[str] = []
    lines.extend(_filter_lines(ctx, theme))

    lines.append(theme.title("Overall (selected scope)"))
    lines.append(f"  old start_time: {result.old_start_time}")
    lines.append(f"  new start_time: {result.new_start_time}")
    lines.append(f"  old clients:    {result.old_total}")
    lines.append(f"  new clients:    {result.new_total}")
    lines.append(f"  delta clients:  {theme.signed(result.delta_total)}")
    lines.append(f"  top 3 increases total: {result.top3_increases_total} (offset by decreases)")
    lines.append(f"  deleted namespaces net change: {result.deleted_namespaces_net_change}")
    lines.append(f"  namespaces only in old: {len(result.only_in_old)}  only in new: {len(result.only_in_new)}")
    lines.append(f"  trend:          {result.trend}")
    lines.append("")

    lines.append(theme.title(f"Top namespaces increased (top {top_n})"))
    if not result.increased:
        lines.append("  - none")
    for r in result.increased[:top_n]:
        lines.append(_mover_line(r, ctx, theme))
    lines.append("")

    lines.append(theme.title(f"Top namespaces decreased (top {top_n})"))
    if not result.decreased:
        lines.append("  - none")
    for r in result.decreased[:top_n]:
        lines.append(_mover_line(r, ctx, theme))
    lines.append("")

    movers = non_production_movers(result, ctx)
    if movers:
        lines.append(theme.title(f"Non-production movers (top {top_n} by absolute change)"))
        for r in movers[:top_n]:
            lines.append(f"  - {r.namespace}  {r.old_clients} -> {r.new_clients} ({r.delta_clients:+d})")
        lines.append("")

    return "\n".join(lines) + "\n"


def render_analyze_summary(
    *,
    start_time: str,
    namespace_count: int,
    mount_count: int,
    total_clients: int,
    scopes: list[ScopeRow],
    prefixes: list[PrefixRow],
    namespaces: list[NamespaceShareRow],
    candidates: list[PrefixRow],
    top_n: int,
    theme: Theme = PLAIN,
) -> str:
    lines: list[str] = []
    lines.append(theme.title("File summary"))
    lines.append(f"  start_time: {start_time}")
    lines.append(f"  namespaces: {namespace_count}")
    lines.append(f"  mounts: {mount_count}")
    lines.append(f"  total_clients: {total_clients}")
    lines.append("")

    lines.append(theme.title("Scope totals"))
    for s in scopes:
        lines.append(f"  - {theme.scope(s.scope)}  clients={s.clients_sum}  pct={format_pct(s.share_bp)}%  namespaces={s.namespaces_count}")
    if not scopes:
        lines.append("  - none")
    lines.append("")

    lines.append(theme.title(f"Top prefixes by clients (top {top_n})"))
    for p in prefixes[:top_n]:
        lines.append(f"  - {p.prefix}  clients={p.clients_sum}  pct={format_pct(p.share_bp)}%  namespaces={p.namespaces_count}")
    lines.append("")

    lines.append(theme.title(f"Top namespaces by clients (top {top_n})"))
    for n in namespaces[:top_n]:
        lines.append(
            f"  - {n.namespace}  scope={theme.scope(n.scope)}  clients={n.clients}  mounts={n.mounts}  pct={format_pct(n.share_bp)}%"
        )
    lines.append("")

    lines.append(theme.title("Candidate prefixes over threshold (for filter review)"))
    if not candidates:
        lines.append("  - none")
    for p in candidates:
        lines.append(f"  - {p.prefix}  clients={p.clients_sum}  pct={format_pct(p.share_bp)}%  namespaces={p.namespaces_count}")

    return "\n".join(lines) + "\n"


def _md_filter_section(ctx: FilterContext) -> list[str]:
    if not ctx.enabled:
        return []
    d = ctx.describe()
    return [
        "## Filter",
        "",
        f"- mode: `{d['mode']}`",
        f"- exclude_namespaces: `{d['exclude_namespaces']}`",
        f"- non_production_namespaces: `{d['non_production_namespaces']}`",
        "",
    ]


def _md_np(ctx: FilterContext, namespace: str) -> str:
    return " *(non-production)*" if ctx.highlight_non_production(namespace) else ""


def count_markdown(
    *,
    summary: CountSummary,
    ctx: FilterContext,
    namespaces: list[NamespaceRow],
    mounts: list[MountRow],
    reconciliation: list[ReconciliationRow],
    months: list[MonthRow],
    top_n: int,
    entitlement: int | None = None,
) -> str:
    filtered = ", filtered" if summary.filtered else ""
    lines: list[str] = ["# Vault client count report", ""]
    lines.extend(_md_filter_section(ctx))

    lines.append("## Summary")
    lines.append("")
    lines.append(f"- start_time: `{summary.start_time}`")
    lines.append(f"- namespaces: `{summary.namespace_count}`")
    lines.append(f"- mounts: `{summary.mount_count}`")
    if entitlement is not None:
        status = entitlement_status(summary.namespace_totals.clients, entitlement)
        lines.append(f"- entitlement: `{entitlement}` (clients `{summary.namespace_totals.clients}`, **{status}**)")
    lines.append("")

    lines.append("## Totals")
    lines.append("")
    lines.append("| Source | " + " | ".join(COUNTER_FIELDS) + " |")
    lines.append("|---|" + "---:|" * len(COUNTER_FIELDS))

    def totals_row(label: str, cs: CounterSet) -> None:
        lines.append(f"| {label} | " + " | ".join(str(getattr(cs, f)) for f in COUNTER_FIELDS) + " |")

    totals_row(f"Namespaces (computed{filtered})", summary.namespace_totals)
    totals_row(f"Mounts (computed{filtered})", summary.mount_totals)
    totals_row("Reported (.total)", summary.reported)
    lines.append("")
    if not summary.consistent:
        lines.append(f"> Namespace sum differs from `.total` (unfiltered): {fmt_counts(summary.namespaces_minus_reported, signed=True)}")
        lines.append("")

    lines.append("## Reconciliation (mounts_sum vs namespace_total)")
    lines.append("")
    if not reconciliation:
        lines.append("_No differences found._")
    else:
        lines.append("| namespace | namespace_clients | mounts_clients_sum | delta | mounts |")
        lines.append("|---|---:|---:|---:|---:|")
        for r in reconciliation[:top_n]:
            lines.append(f"| {md_cell(r.namespace)} | {r.namespace_clients} | {r.mounts_clients_sum} | {r.delta:+d} | {r.mount_count} |")
    lines.append("")

    lines.append("## Reconciliation details")
    lines.append("")
    if not reconciliation:
        lines.append("_No differences found._")
        lines.append("")
    for r in reconciliation[:top_n]:
        lines.append(f"### {r.namespace} (delta={r.delta:+d})")
        lines.append("")
        lines.append(f"- namespace_clients: `{r.namespace_clients}`")
        lines.append(f"- mounts_clients_sum: `{r.mounts_clients_sum}`")
        lines.append("")
        lines.append("| mount_path | mount_type | clients |")
        lines.append("|---|---|---:|")
        for m in r.mounts_by_clients:
            lines.append(f"| {md_cell(m.mount_path)} | {md_cell(m.mount_type)} | {m.counts.clients} |")
        lines.append("")

    lines.append("## Top namespaces by clients")
    lines.append("")
    lines.append("| namespace | clients | mounts |")
    lines.append("|---|---:|---:|")
    for r in namespaces[:top_n]:
        lines.append(f"| {md_cell(r.namespace)}{_md_np(ctx, r.namespace)} | {r.clients} | {r.mounts} |")
    lines.append("")

    lines.append("## Top mounts by clients")
    lines.append("")
    lines.append("| namespace | mount_path | mount_type | clients |")
    lines.append("|---|---|---|---:|")
    for m in mounts[:top_n]:
        lines.append(f"| {md_cell(m.namespace)}{_md_np(ctx, m.namespace)} | {md_cell(m.mount_path)} | {md_cell(m.mount_type)} | {m.clients} |")

    if months:
        lines.append("")
        lines.append("## Monthly checks")
        lines.append("")
        lines.append("| month | clients | new_clients |")
        lines.append("|---|---:|---:|")
        for m in months:
            lines.append(f"| {md_cell(m.timestamp)} | {m.clients} | {m.new_clients} |")

    return "\n".join(lines) + "\n"


def _md_mover_rows(rows: tuple[NamespaceDelta, ...], top_n: int) -> list[str]:
    if not rows:
        return ["| _none_ |  |  |  |  |"]
    return [
        f"| {md_cell(r.namespace)} | {r.old_clients} | {r.new_clients} | {r.delta_clients:+d} | {str(r.non_production).lower()} |"
        for r in rows[:top_n]
    ]


def diff_markdown(*, result: DiffResult, ctx: FilterContext, top_n: int) -> str:
    lines: list[str] = ["# Vault client diff report", ""]
    lines.extend(_md_filter_section(ctx))

    lines.append("## Overall (selected scope)")
    lines.append("")
    lines.append(f"- old start_time: `{result.old_start_time}`")
    lines.append(f"- new start_time: `{result.new_start_time}`")
    lines.append(f"- old clients: `{result.old_total}`")
    lines.append(f"- new clients: `{result.new_total}`")
    lines.append(f"- delta clients: `{result.delta_total:+d}`")
    lines.append(f"- top 3 increases total: `{result.top3_increases_total}`")
    lines.append(f"- deleted namespaces net change: `{result.deleted_namespaces_net_change}`")
    lines.append(f"- trend: `{result.trend}`")
    lines.append("")
    lines.append(f"**Key takeaway:** {key_takeaway(result)}")
    lines.append("")

    header = ["| namespace | old | new | delta | non_production |", "|---|---:|---:|---:|---|"]
    lines.append("## Top increases")
    lines.append("")
    lines.extend(header)
    lines.extend(_md_mover_rows(result.increased, top_n))
    lines.append("")
    lines.append("## Top decreases")
    lines.append("")
    lines.extend(header)
    lines.extend(_md_mover_rows(result.decreased, top_n))
    lines.append("")

    movers = non_production_movers(result, ctx)
    if movers:
        lines.append("## Non-production movers")
        lines.append("")
        lines.extend(header)
        lines.extend(_md_mover_rows(tuple(movers), top_n))
        lines.append("")

    lines.append(f"## Full namespace delta (top {top_n} by change)")
    lines.append("")
    lines.append("| namespace | old_clients | new_clients | delta_clients | old_mounts | new_mounts | delta_mounts | non_production |")
    lines.append("|---|---:|---:|---:|---:|---:|---:|---|")
    for r in result.rows[:top_n]:
        lines.append(
            f"| {md_cell(r.namespace)} | {r.old_clients} | {r.new_clients} | {r.delta_clients:+d}"
            f" | {r.old_mounts} | {r.new_mounts} | {r.delta_mounts:+d} | {str(r.non_production).lower()} |"
        )
    return "\n".join(lines) + "\n"


def analyze_markdown(
    *,
    namespace_count: int,
    mount_count: int,
    total_clients: int,
    scopes: list[ScopeRow],
    prefixes: list[PrefixRow],
    namespaces: list[NamespaceShareRow],
    top_n: int,
    decimal_separator: str = ",",
) -> str:
    sep = decimal_separator
    lines: list[str] = ["# Detected namespaces", ""]
    lines.append("## Summary")
    lines.append("")
    lines.append(f"- namespaces: `{namespace_count}`")
    lines.append(f"- mounts: `{mount_count}`")
    lines.append(f"- total_clients (sum of namespace clients): `{total_clients}`")
    lines.append("")

    lines.append("## Scope totals")
    lines.append("")
    lines.append("| scope | namespaces | clients_sum | share_of_total |")
    lines.append("|---|---:|---:|---:|")
    for s in scopes:
        lines.append(f"| {s.scope} | {s.namespaces_count} | {s.clients_sum} | {format_share(s.share_bp, sep)} |")
    lines.append("")

    lines.append("## Top prefixes by clients")
    lines.append("")
    lines.append("| prefix | namespaces | clients_sum | share_of_total |")
    lines.append("|---|---:|---:|---:|")
    for p in prefixes[:top_n]:
        lines.append(f"| {md_cell(p.prefix)} | {p.namespaces_count} | {p.clients_sum} | {format_share(p.share_bp, sep)} |")
    lines.append("")

    lines.append("## Top namespaces by clients")
    lines.append("")
    lines.append("| namespace | clients | mounts | share_of_total |")
    lines.append("|---|---:|---:|---:|")
    for n in namespaces[:top_n]:
        lines.append(f"| {md_cell(n.namespace)} | {n.clients} | {n.mounts} | {format_share(n.share_bp, sep)} |")
    return "\n".join(lines) + "\n"
