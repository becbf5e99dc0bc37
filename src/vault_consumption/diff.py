from __future__ import annotations

import dataclasses

from .filters import FilterContext
from .models import NamespaceRecord, Snapshot
from .rollup import DeletedMatcher

TOP_CONCENTRATION = 3


@dataclasses.dataclass(frozen=True)
class NamespaceDelta:
    namespace: str
    old_clients: int
    new_clients: int
    delta_clients: int
    old_mounts: int
    new_mounts: int
    delta_mounts: int
    non_production: bool


@dataclasses.dataclass(frozen=True)
class DiffResult:
    old_start_time: str
    new_start_time: str
    filter_mode: str
    rows: tuple[NamespaceDelta, ...]  # every key of the union, delta_clients descending
    increased: tuple[NamespaceDelta, ...]  # delta_clients descending
    decreased: tuple[NamespaceDelta, ...]  # delta_clients ascending (largest drop first)
    old_total: int
    new_total: int
    top3_increases_total: int
    deleted_namespaces_net_change: int
    only_in_old: tuple[str, ...] = ()
    only_in_new: tuple[str, ...] = ()

    @property
    def delta_total(self) -> int:
        return self.new_total - self.old_total

    @property
    def trend(self) -> str:
        if self.delta_total > 0:
            return "increased"
        if self.delta_total < 0:
            return "decreased"
        return "unchanged"

    def row_for(self, namespace: str) -> NamespaceDelta | None:
        for r in self.rows:
            if r.namespace == namespace:
                return r
        return None


def keyed_namespaces(snapshot: Snapshot, ctx: FilterContext) -> dict[str, NamespaceRecord]:
    return {key: ns for key, ns in snapshot.by_key().items() if ctx.keep(key)}


def _delta_row(key: str, old: NamespaceRecord | None, new: NamespaceRecord | None, ctx: FilterContext) -> NamespaceDelta:
    o = old or NamespaceRecord(key=key)
    n = new or NamespaceRecord(key=key)
    return NamespaceDelta(
        namespace=key,
        old_clients=o.clients,
        new_clients=n.clients,
        delta_clients=n.clients - o.clients,
        old_mounts=o.mount_count,
        new_mounts=n.mount_count,
        delta_mounts=n.mount_count - o.mount_count,
        non_production=ctx.is_non_production(key),
    )


def diff_snapshots(
    old: Snapshot,
    new: Snapshot,
    ctx: FilterContext,
    *,
    deleted: DeletedMatcher | None = None,
) -> DiffResult:
    deleted = deleted or DeletedMatcher()
    old_map = keyed_namespaces(old, ctx)
    new_map = keyed_namespaces(new, ctx)

    keys = sorted(set(old_map) | set(new_map))
    rows = [_delta_row(k, old_map.get(k), new_map.get(k), ctx) for k in keys]
    rows.sort(key=lambda r: (-r.delta_clients, r.namespace))

    increased = [r for r in rows if r.delta_clients > 0]
    decreased = sorted((r for r in rows if r.delta_clients < 0), key=lambda r: (r.delta_clients, r.namespace))
    top3 = sum(r.delta_clients for r in increased[:TOP_CONCENTRATION])
    deleted_net = sum(r.delta_clients for r in rows if deleted.matches(r.namespace))

    # Totals come from the filtered per-namespace sums, never from the reported .total.
    return DiffResult(
        old_start_time=old.start_time,
        new_start_time=new.start_time,
        filter_mode=ctx.mode,
        rows=tuple(rows),
        increased=tuple(increased),
        decreased=tuple(decreased),
        old_total=sum(ns.clients for ns in old_map.values()),
        new_total=sum(ns.clients for ns in new_map.values()),
        top3_increases_total=top3,
        deleted_namespaces_net_change=deleted_net,
        only_in_old=tuple(k for k in keys if k not in new_map),
        only_in_new=tuple(k for k in keys if k not in old_map),
    )


def non_production_movers(result: DiffResult, ctx: FilterContext) -> list[NamespaceDelta]:
    if not ctx.highlighting:
        return []
    movers = [r for r in result.rows if r.non_production and r.delta_clients != 0]
    movers.sort(key=lambda r: (-abs(r.delta_clients), r.namespace))
    return movers


def key_takeaway(result: DiffResult) -> str:
    delta = result.delta_total
    if delta == 0:
        sentence = f"Client count is unchanged at {result.new_total:,} for the selected scope."
    else:
        direction = "grew" if delta > 0 else "fell"
        sentence = f"Client count {direction} from {result.old_total:,} to {result.new_total:,} ({delta:+,})"
        if delta > 0 and result.top3_increases_total > 0:
            sentence += f"; the top {TOP_CONCENTRATION} increases account for +{result.top3_increases_total:,}"
        sentence += "."
    if result.deleted_namespaces_net_change:
        sentence += f" Deleted namespaces contribute {result.deleted_namespaces_net_change:+,}."
    return sentence
