from __future__ import annotations

import csv
import dataclasses
import io
import json
import os
import tempfile
from pathlib import Path

from .aggregate import MonthRow, MountRow, NamespaceRow
from .diff import DiffResult
from .models import COUNTER_FIELDS
from .reconcile import ReconciliationRow
from .rollup import NamespaceShareRow, PrefixRow, format_share


@dataclasses.dataclass(frozen=True)
class CsvFormat:
    delimiter: str = ","
    decimal_separator: str = "."


DEFAULT_CSV = CsvFormat()
ANALYZE_CSV = CsvFormat(delimiter=";", decimal_separator=",")


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_text_atomic(path: Path, text: str) -> None:
    """Write `text` to a sibling temp file and move it over `path`; readers never see a partial file."""
    ensure_dir(path.parent)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def write_json(path: Path, data: object) -> None:
    write_text_atomic(path, json.dumps(data, indent=2, sort_keys=False) + "\n")


def _bool(value: bool) -> str:
    return "true" if value else "false"


def write_csv(path: Path, header: list[str], rows: list[list[object]], fmt: CsvFormat = DEFAULT_CSV) -> None:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=fmt.delimiter, lineterminator="\n")
    writer.writerow(header)
    for r in rows:
        writer.writerow(r)
    write_text_atomic(path, buf.getvalue())


def write_namespaces_csv(path: Path, rows: list[NamespaceRow], fmt: CsvFormat = DEFAULT_CSV) -> None:
    header = ["namespace", "namespace_id", "mounts", *COUNTER_FIELDS, "non_production", "excluded"]
    out = [
        [r.namespace, r.namespace_id, r.mounts, *(getattr(r.counts, f) for f in COUNTER_FIELDS), _bool(r.non_production), _bool(r.excluded)]
        for r in rows
    ]
    write_csv(path, header, out, fmt)


def write_mounts_csv(path: Path, rows: list[MountRow], fmt: CsvFormat = DEFAULT_CSV) -> None:
    header = ["namespace", "mount_path", "mount_type", *COUNTER_FIELDS, "namespace_non_production", "namespace_excluded"]
    out = [
        [
            r.namespace,
            r.mount_path,
            r.mount_type,
            *(getattr(r.counts, f) for f in COUNTER_FIELDS),
            _bool(r.namespace_non_production),
            _bool(r.namespace_excluded),
        ]
        for r in rows
    ]
    write_csv(path, header, out, fmt)


def write_months_csv(path: Path, rows: list[MonthRow], fmt: CsvFormat = DEFAULT_CSV) -> None:
    write_csv(path, ["timestamp", "clients", "new_clients"], [[m.timestamp, m.clients, m.new_clients] for m in rows], fmt)


def write_reconciliation_csv(path: Path, rows: list[ReconciliationRow], fmt: CsvFormat = DEFAULT_CSV) -> None:
    header = ["namespace", "namespace_clients", "mounts_clients_sum", "delta", "mounts"]
    out = [[r.namespace, r.namespace_clients, r.mounts_clients_sum, r.delta, r.mount_count] for r in rows]
    write_csv(path, header, out, fmt)


def write_reconciliation_mounts_csv(path: Path, rows: list[ReconciliationRow], fmt: CsvFormat = DEFAULT_CSV) -> None:
    header = ["namespace", "namespace_clients", "mounts_clients_sum", "delta", "mount_path", "mount_type", *COUNTER_FIELDS]
    out: list[list[object]] = []
    for r in rows:
        for m in r.mounts_by_clients:
            out.append(
                [r.namespace, r.namespace_clients, r.mounts_clients_sum, r.delta, m.mount_path, m.mount_type]
                + [getattr(m.counts, f) for f in COUNTER_FIELDS]
            )
    write_csv(path, header, out, fmt)


def write_namespace_diff_csv(path: Path, result: DiffResult, fmt: CsvFormat = DEFAULT_CSV) -> None:
    header = ["namespace", "old_clients", "new_clients", "delta_clients", "old_mounts", "new_mounts", "delta_mounts", "non_production"]
    out = [
        [r.namespace, r.old_clients, r.new_clients, r.delta_clients, r.old_mounts, r.new_mounts, r.delta_mounts, _bool(r.non_production)]
        for r in result.rows
    ]
    write_csv(path, header, out, fmt)


def write_diff_summary_csv(path: Path, result: DiffResult, fmt: CsvFormat = DEFAULT_CSV) -> None:
    header = [
        "filter_mode",
        "old_start_time",
        "new_start_time",
        "old_clients",
        "new_clients",
        "delta_clients",
        "top3_increases_total",
        "deleted_namespaces_net_change",
    ]
    row = [
        result.filter_mode,
        result.old_start_time,
        result.new_start_time,
        result.old_total,
        result.new_total,
        result.delta_total,
        result.top3_increases_total,
        result.deleted_namespaces_net_change,
    ]
    write_csv(path, header, [row], fmt)


def write_share_namespaces_csv(path: Path, rows: list[NamespaceShareRow], fmt: CsvFormat = ANALYZE_CSV) -> None:
    out = [[r.namespace, r.clients, r.mounts, format_share(r.share_bp, fmt.decimal_separator)] for r in rows]
    write_csv(path, ["namespace", "clients", "mounts", "share_of_total"], out, fmt)


def write_prefixes_csv(path: Path, rows: list[PrefixRow], fmt: CsvFormat = ANALYZE_CSV) -> None:
    out = [[r.prefix, r.namespaces_count, r.clients_sum, format_share(r.share_bp, fmt.decimal_separator)] for r in rows]
    write_csv(path, ["prefix", "namespaces_count", "clients_sum", "share_of_total"], out, fmt)
