from __future__ import annotations

import dataclasses
from collections.abc import Iterable

from .aggregate import KeepPredicate, keep_all
from .models import MountRecord, NamespaceRecord


@dataclasses.dataclass(frozen=True)
class ReconciliationRow:
    """A namespace whose own mounts do not add up to its reported client count.

    delta = mounts_clients_sum - namespace_clients. A positive delta usually means clients that
    authenticated through more than one mount, or legacy/deleted mount accessors that still carry
    counts. The row reports the gap; it never corrects it.
    """

    namespace: str
    namespace_clients: int
    mounts_clients_sum: int
    delta: int
    mount_count: int
    mounts_by_clients: tuple[MountRecord, ...] = ()


def sorted_mounts(ns: NamespaceRecord) -> tuple[MountRecord, ...]:
    return tuple(sorted(ns.mounts, key=lambda m: (-m.counts.clients, m.mount_path, m.mount_type)))


def reconcile_namespace(ns: NamespaceRecord) -> ReconciliationRow | None:
    mounts_sum = ns.mounts_clients_sum
    delta = mounts_sum - ns.clients
    if delta == 0:
        return None
    return ReconciliationRow(
        namespace=ns.key,
        namespace_clients=ns.clients,
        mounts_clients_sum=mounts_sum,
        delta=delta,
        mount_count=ns.mount_count,
        mounts_by_clients=sorted_mounts(ns),
    )


def reconcile(namespaces: Iterable[NamespaceRecord], keep: KeepPredicate = keep_all) -> list[ReconciliationRow]:
    rows: list[ReconciliationRow] = []
    for ns in namespaces:
        if not keep(ns.key):
            continue
        row = reconcile_namespace(ns)
        if row is not None:
            rows.append(row)
    rows.sort(key=lambda r: (-abs(r.delta), -r.delta, r.namespace))
    return rows
