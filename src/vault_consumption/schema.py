from __future__ import annotations

import json
import logging
import math
from pathlib import Path

from .errors import InputError
from .models import COUNTER_FIELDS, CounterSet, MonthRecord, MountRecord, NamespaceRecord, Snapshot

logger = logging.getLogger(__name__)

ROOT_KEY = "root"

# canonical field -> legacy spellings, first match wins
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "clients": (),
    "entity_clients": ("distinct_entities",),
    "non_entity_clients": ("non_entity_tokens",),
    "acme_clients": (),
    "secret_syncs": (),
}


def coerce_count(value: object) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value > 0 else 0
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value) or value <= 0:
            return 0
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return 0
        try:
            return coerce_count(int(s))
        except ValueError:
            pass
        try:
            return coerce_count(float(s))
        except ValueError:
            return 0
    return 0


def _first_present(obj: dict, keys: tuple[str, ...]) -> object:
    for k in keys:
        v = obj.get(k)
        if v is not None:
            return v
    return None


def counter_set_from_raw(obj: object) -> CounterSet:
    if not isinstance(obj, dict):
        return CounterSet()
    values = []
    for field in COUNTER_FIELDS:
        values.append(coerce_count(_first_present(obj, (field, *FIELD_ALIASES[field]))))
    return CounterSet(*values)


def normalize_namespace_path(value: object) -> str:
    if value is None:
        return ROOT_KEY
    s = str(value)
    return s if s else ROOT_KEY


def _as_list(value: object) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def mount_from_raw(obj: dict) -> MountRecord:
    return MountRecord(
        mount_path=_as_str(obj.get("mount_path")),
        mount_type=_as_str(obj.get("mount_type")),
        counts=counter_set_from_raw(obj.get("counts")),
    )


def namespace_from_raw(obj: dict) -> NamespaceRecord:
    mounts = tuple(mount_from_raw(m) for m in _as_list(obj.get("mounts")) if isinstance(m, dict))
    return NamespaceRecord(
        key=normalize_namespace_path(obj.get("namespace_path")),
        namespace_id=_as_str(obj.get("namespace_id")),
        mounts=mounts,
        counts=counter_set_from_raw(obj.get("counts")),
    )


def month_from_raw(obj: dict) -> MonthRecord:
    new_clients = obj.get("new_clients")
    return MonthRecord(
        timestamp=_as_str(obj.get("timestamp")),
        counts=counter_set_from_raw(obj.get("counts")),
        new_clients=counter_set_from_raw(new_clients.get("counts") if isinstance(new_clients, dict) else None),
    )


def merge_namespaces(a: NamespaceRecord, b: NamespaceRecord) -> NamespaceRecord:
    return NamespaceRecord(
        key=a.key,
        namespace_id=a.namespace_id or b.namespace_id,
        mounts=a.mounts + b.mounts,
        counts=a.counts + b.counts,
    )


def dedupe_namespaces(records: list[NamespaceRecord], *, source: str = "") -> tuple[NamespaceRecord, ...]:
    """
    Collapse entries whose normalized key collides (e.g. both "" and null paths map to "root").
    Duplicates are merged by summing counters and concatenating mounts; the merged record keeps the
    position of the first occurrence.
    """
    by_key: dict[str, NamespaceRecord] = {}
    for rec in records:
        cur = by_key.get(rec.key)
        if cur is None:
            by_key[rec.key] = rec
            continue
        logger.warning("duplicate namespace key %r in %s; merging by summing counts", rec.key, source or "snapshot")
        by_key[rec.key] = merge_namespaces(cur, rec)
    return tuple(by_key.values())


def snapshot_from_dict(doc: object, *, source: str = "") -> Snapshot:
    if not isinstance(doc, dict):
        logger.warning("%s is not a JSON object; treating it as an empty snapshot", source or "document")
        doc = {}
    records = [namespace_from_raw(ns) for ns in _as_list(doc.get("by_namespace")) if isinstance(ns, dict)]
    months = tuple(month_from_raw(m) for m in _as_list(doc.get("months")) if isinstance(m, dict))
    return Snapshot(
        start_time=_as_str(doc.get("start_time")),
        namespaces=dedupe_namespaces(records, source=source),
        total=counter_set_from_raw(doc.get("total")),
        months=months,
        source=source,
    )


def load_json_file(path: Path, *, label: str = "file") -> object:
    if not path.is_file():
        raise InputError(f"{label} not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InputError(f"{label} is not valid JSON: {path} ({exc})") from exc


def load_snapshot(path: Path, *, label: str = "file") -> Snapshot:
    return snapshot_from_dict(load_json_file(path, label=label), source=str(path))
