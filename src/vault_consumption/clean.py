from __future__ import annotations

import dataclasses
import json
import logging
import re
from pathlib import Path

from .errors import InputError
from .schema import coerce_count
from .write import write_text_atomic

logger = logging.getLogger(__name__)

MODE_STRIP = "strip"
MODE_NDJSON_AUTO = "ndjson-auto"
CLEAN_MODES = (MODE_STRIP, MODE_NDJSON_AUTO)

# Lines like "### NAMESPACE: team-a ###" that some export wrappers interleave with the JSON.
MARKER_RE = re.compile(r"^\s*###(\s+NAMESPACE:.*)?###?\s*$")

SCORE_FIELDS = ("clients", "distinct_entities", "non_entity_tokens")


@dataclasses.dataclass(frozen=True)
class CleanResult:
    text: str
    removed_markers: int
    documents: int
    output_type: str
    valid_json: bool


def strip_markers(text: str) -> tuple[str, int]:
    kept: list[str] = []
    removed = 0
    for line in text.splitlines(keepends=True):
        if MARKER_RE.match(line.rstrip("\r\n")):
            removed += 1
            continue
        kept.append(line)
    return "".join(kept), removed


def parse_json_stream(text: str) -> list[object]:
    decoder = json.JSONDecoder()
    values: list[object] = []
    pos = 0
    n = len(text)
    while True:
        while pos < n and text[pos].isspace():
            pos += 1
        if pos >= n:
            return values
        value, pos = decoder.raw_decode(text, pos)
        values.append(value)


def score(doc: object) -> int:
    """Size of an export: the first non-zero of total.clients, total.distinct_entities, total.non_entity_tokens."""
    if not isinstance(doc, dict):
        return 0
    total = doc.get("total")
    if not isinstance(total, dict):
        return 0
    for k in SCORE_FIELDS:
        v = coerce_count(total.get(k))
        if v:
            return v
    return 0


def _best(candidates: list[object]) -> dict:
    objs = [c for c in candidates if isinstance(c, dict)]
    if not objs:
        return {}
    # max() keeps the first of equally scored documents.
    return max(objs, key=score)


def _to_object(value: object) -> dict:
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return _best(value)
    return {}


def collapse(values: list[object]) -> dict:
    if not values:
        return {}
    if len(values) == 1:
        return _to_object(values[0])
    return _best([_to_object(v) for v in values])


def _json_type(value: object) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if value is None:
        return "null"
    return "number"


def clean_export(text: str, mode: str = MODE_NDJSON_AUTO) -> CleanResult:
    if mode not in CLEAN_MODES:
        raise InputError(f"--mode must be one of: {', '.join(CLEAN_MODES)} (got: {mode})")
    stripped, removed = strip_markers(text)

    if mode == MODE_STRIP:
        try:
            values = parse_json_stream(stripped)
        except json.JSONDecodeError:
            values = []
            valid = False
        else:
            valid = len(values) == 1
        return CleanResult(
            text=stripped,
            removed_markers=removed,
            documents=len(values),
            output_type=_json_type(values[0]) if valid else "n/a",
            valid_json=valid,
        )

    try:
        values = parse_json_stream(stripped)
    except json.JSONDecodeError as exc:
        raise InputError(f"Could not parse JSON even after stripping {removed} marker line(s): {exc}") from exc
    doc = collapse(values)
    logger.debug("collapsed %d JSON value(s) to one object (score=%d)", len(values), score(doc))
    return CleanResult(
        text=json.dumps(doc, indent=2) + "\n",
        removed_markers=removed,
        documents=len(values),
        output_type="object",
        valid_json=True,
    )


def default_output_path(in_path: Path) -> Path:
    return in_path.with_name(in_path.name + ".clean.json")


def clean_file(in_path: Path, out_path: Path | None = None, *, mode: str = MODE_NDJSON_AUTO, force: bool = False) -> tuple[Path, CleanResult]:
    if not in_path.is_file():
        raise InputError(f"input not found: {in_path}")
    out_path = out_path or default_output_path(in_path)
    if out_path.exists() and not force:
        raise InputError(f"output exists: {out_path} (use --force true)")
    try:
        text = in_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise InputError(f"input is not UTF-8 text: {in_path} ({exc})") from exc
    result = clean_export(text, mode)
    write_text_atomic(out_path, result.text)
    return out_path, result
