from __future__ import annotations

import dataclasses

COUNTER_FIELDS = ("clients", "entity_clients", "non_entity_clients", "acme_clients", "secret_syncs")


@dataclasses.dataclass(frozen=True)
class CounterSet:
    clients: int = 0
    entity_clients: int = 0
    non_entity_clients: int = 0
    acme_clients: int = 0
    secret_syncs: int = 0

    def __add__(self, other: CounterSet) -> CounterSet:
        return CounterSet(*(getattr(self, f) + getattr(other, f) for f in COUNTER_FIELDS))

    def __sub__(self, other: CounterSet) -> CounterSet:
        return CounterSet(*(getattr(self, f) - getattr(other, f) for f in COUNTER_FIELDS))

    def as_dict(self) -> dict[str, int]:
        return {f: int(getattr(self, f)) for f in COUNTER_FIELDS}


@dataclasses.dataclass(frozen=True)
class MountRecord:
    mount_path: str
    mount_type: str
    counts: CounterSet = CounterSet()


@dataclasses.dataclass(frozen=True)
class NamespaceRecord:
    key: str  # normalized namespace_path ("" -> "root")
    namespace_id: str = ""
    mounts: tuple[MountRecord, ...] = ()
    counts: CounterSet = CounterSet()

    @property
    def clients(self) -> int:
        return self.counts.clients

    @property
    def mount_count(self) -> int:
        return len(self.mounts)

    @property
    def mounts_clients_sum(self) -> int:
        return sum(m.counts.clients for m in self.mounts)


@dataclasses.dataclass(frozen=True)
class MonthRecord:
    timestamp: str
    counts: CounterSet = CounterSet()
    new_clients: CounterSet = CounterSet()


@dataclasses.dataclass(frozen=True)
class Snapshot:
    start_time: str
    namespaces: tuple[NamespaceRecord, ...]
    total: CounterSet = CounterSet()
    months: tuple[MonthRecord, ...] = ()
    source: str = ""

    @property
    def mount_count(self) -> int:
        return sum(ns.mount_count for ns in self.namespaces)

    def by_key(self) -> dict[str, NamespaceRecord]:
        return {ns.key: ns for ns in self.namespaces}
