from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable

from .filters import FilterContext
from .models import CounterSet, NamespaceRecord, Snapshot

KeepPredicate = Callable[[str], bool]


def keep_all(_key: str) -> bool:
    return True


def aggregate_from_namespaces(namespaces: Iterable[NamespaceRecord], keep: KeepPredicate = keep_all) -> CounterSet:
    total = CounterSet()
    for ns in namespaces:
        if keep(ns.key):
            total = total + ns.counts
    return total


def aggregate_from_mounts(namespaces: Iterable[NamespaceRecord], keep: KeepPredicate = keep_all) -> CounterSet:
    total = CounterSet()
    for ns in namespaces:
        if not keep(ns.key):
            continue
        for m in ns.mounts:
            total = total + m.counts
    return total


def diff_counter_sets(a: CounterSet, b: CounterSet) -> CounterSet:
    return a - b


@dataclasses.dataclass(frozen=True)
class NamespaceRow:
    namespace: str
    namespace_id: str
    mounts: int
    counts: CounterSet
    excluded: bool
    non_production: bool

    @property
    def clients(self) -> int:
        return self.counts.clients


@dataclasses.dataclass(frozen=True)
class MountRow:
    namespace: str
    mount_path: str
    mount_type: str
    counts: CounterSet
    namespace_excluded: bool
    namespace_non_production: bool

    @property
    def clients(self) -> int:
        return self.counts.clients


@dataclasses.dataclass(frozen=True)
class MonthRow:
    timestamp: str
    clients: int
    new_clients: int


def _namespace_row(ns: NamespaceRecord, ctx: FilterContext) -> NamespaceRow:
    c = ctx.classify(ns.key)
    return NamespaceRow(
        namespace=ns.key,
        namespace_id=ns.namespace_id,
        mounts=ns.mount_count,
        counts=ns.counts,
        excluded=c.excluded,
        non_production=c.non_production,
    )


def namespace_rows(snapshot: Snapshot, ctx: FilterContext) -> list[NamespaceRow]:
    rows = [_namespace_row(ns, ctx) for ns in snapshot.namespaces if ctx.keep(ns.key)]
    rows.sort(key=lambda r: (-r.clients, r.namespace))
    return rows


def excluded_rows(snapshot: Snapshot, ctx: FilterContext) -> list[NamespaceRow]:
    if not ctx.excluding:
        return []
    rows = [_namespace_row(ns, ctx) for ns in snapshot.namespaces if not ctx.keep(ns.key)]
    rows.sort(key=lambda r: (-r.clients, r.namespace))
    return rows


def mount_rows(snapshot: Snapshot, ctx: FilterContext) -> list[MountRow]:
    rows: list[MountRow] = []
    for ns in snapshot.namespaces:
        if not ctx.keep(ns.key):
            continue
        c = ctx.classify(ns.key)
        for m in ns.mounts:
            rows.append(
                MountRow(
                    namespace=ns.key,
                    mount_path=m.mount_path,
                    mount_type=m.mount_type,
                    counts=m.counts,
                    namespace_excluded=c.excluded,
                    namespace_non_production=c.non_production,
                )
            )
    rows.sort(key=lambda r: (-r.clients, r.namespace, r.mount_path, r.mount_type))
    return rows


def month_rows(snapshot: Snapshot) -> list[MonthRow]:
    # Months are global to the export; namespace filters do not apply.
    return [MonthRow(timestamp=m.timestamp, clients=m.counts.clients, new_clients=m.new_clients.clients) for m in snapshot.months]


def entitlement_status(used: int, entitlement: int) -> str:
    delta = int(used) - int(entitlement)
    if delta > 0:
        return f"over by {delta}"
    if delta < 0:
        return f"under by {-delta}"
    return "at entitlement"


@dataclasses.dataclass(frozen=True)
class CountSummary:
    start_time: str
    namespace_count: int
    mount_count: int
    namespace_totals: CounterSet  # filtered
    mount_totals: CounterSet  # filtered
    reported: CounterSet
    namespaces_minus_reported: CounterSet  # unfiltered vs. .total
    mounts_minus_reported: CounterSet  # unfiltered vs. .total
    filtered: bool

    @property
    def consistent(self) -> bool:
        return self.namespaces_minus_reported == CounterSet()


def count_summary(snapshot: Snapshot, ctx: FilterContext) -> CountSummary:
    ns_all = aggregate_from_namespaces(snapshot.namespaces)
    m_all = aggregate_from_mounts(snapshot.namespaces)
    return CountSummary(
        start_time=snapshot.start_time,
        namespace_count=len(snapshot.namespaces),
        mount_count=snapshot.mount_count,
        namespace_totals=aggregate_from_namespaces(snapshot.namespaces, ctx.keep),
        mount_totals=aggregate_from_mounts(snapshot.namespaces, ctx.keep),
        reported=snapshot.total,
        namespaces_minus_reported=diff_counter_sets(ns_all, snapshot.total),
        mounts_minus_reported=diff_counter_sets(m_all, snapshot.total),
        filtered=ctx.excluding,
    )
