from __future__ import annotations

import dataclasses
import logging
import re
from collections import defaultdict
from collections.abc import Iterable

from .errors import InputError
from .filters import MODE_EXCLUDE
from .models import NamespaceRecord
from .schema import ROOT_KEY

logger = logging.getLogger(__name__)

DEFAULT_DELETED_PATTERN = r"^deleted"
DELETED_PREFIX = "deleted"

SCOPE_PROD = "prod"
SCOPE_NON_PROD = "non-prod"
SCOPE_SHARED = "shared"
SCOPE_OTHER = "other"
SCOPES = (SCOPE_PROD, SCOPE_NON_PROD, SCOPE_SHARED, SCOPE_OTHER)

# Default triage policy; independent of any user filter file.
PROD_RE = re.compile(r"^prod/")
NON_PROD_RE = re.compile(r"^(sand/|dev/|test/|dr/|sandbox/)")
SHARED_RES = (re.compile(r"^okta/"), re.compile(r"^gitlab/"))

STARTER_EXCLUDE_PATTERNS = ("^deleted", "^dev/", "^dr/", "^sand/", "^sandbox/", "^test/")
SUGGEST_SKIP_PREFIXES = frozenset({ROOT_KEY, "prod/"})


@dataclasses.dataclass(frozen=True)
class DeletedMatcher:
    pattern: str = DEFAULT_DELETED_PATTERN
    _rx: re.Pattern[str] = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "_rx", re.compile(self.pattern))
        except re.error as exc:
            raise InputError(f"--deleted-pattern is not a valid regex: {self.pattern!r} ({exc})") from exc

    def matches(self, key: str) -> bool:
        return self._rx.search(key) is not None


def share_basis_points(value: int, total: int) -> int:
    """Share of total in 1/10000 units, truncated toward zero (never rounded up)."""
    if total <= 0:
        return 0
    return (int(value) * 10000) // int(total)


def format_share(bp: int, decimal_separator: str = ".") -> str:
    return f"{bp // 10000}{decimal_separator}{bp % 10000:04d}"


def format_pct(bp: int, decimal_separator: str = ".") -> str:
    return f"{bp // 100}{decimal_separator}{bp % 100:02d}"


def prefix_for(key: str, deleted: DeletedMatcher) -> str:
    if key == ROOT_KEY:
        return ROOT_KEY
    if deleted.matches(key):
        return DELETED_PREFIX
    return key.split("/", 1)[0] + "/"


def scope_for(key: str, deleted: DeletedMatcher | None = None) -> str:
    deleted = deleted or DeletedMatcher()
    if PROD_RE.search(key):
        return SCOPE_PROD
    if NON_PROD_RE.search(key) or deleted.matches(key):
        return SCOPE_NON_PROD
    if key == ROOT_KEY or any(rx.search(key) for rx in SHARED_RES):
        return SCOPE_SHARED
    return SCOPE_OTHER


@dataclasses.dataclass(frozen=True)
class PrefixRow:
    prefix: str
    namespaces_count: int
    clients_sum: int
    share_bp: int


@dataclasses.dataclass(frozen=True)
class ScopeRow:
    scope: str
    namespaces_count: int
    clients_sum: int
    share_bp: int


@dataclasses.dataclass(frozen=True)
class NamespaceShareRow:
    namespace: str
    clients: int
    mounts: int
    share_bp: int
    scope: str


def total_clients(namespaces: Iterable[NamespaceRecord]) -> int:
    return sum(ns.clients for ns in namespaces)


def _grouped(namespaces: list[NamespaceRecord], group_of) -> list[tuple[str, int, int, int]]:
    counts: dict[str, int] = defaultdict(int)
    sums: dict[str, int] = defaultdict(int)
    for ns in namespaces:
        g = group_of(ns.key)
        counts[g] += 1
        sums[g] += ns.clients
    grand = sum(sums.values())
    out = [(g, counts[g], sums[g], share_basis_points(sums[g], grand)) for g in counts]
    out.sort(key=lambda t: (-t[2], t[0]))
    return out


def rollup_by_prefix(namespaces: Iterable[NamespaceRecord], deleted: DeletedMatcher | None = None) -> list[PrefixRow]:
    deleted = deleted or DeletedMatcher()
    rows = _grouped(list(namespaces), lambda k: prefix_for(k, deleted))
    return [PrefixRow(prefix=g, namespaces_count=n, clients_sum=s, share_bp=bp) for g, n, s, bp in rows]


def rollup_by_scope(namespaces: Iterable[NamespaceRecord], deleted: DeletedMatcher | None = None) -> list[ScopeRow]:
    deleted = deleted or DeletedMatcher()
    rows = _grouped(list(namespaces), lambda k: scope_for(k, deleted))
    return [ScopeRow(scope=g, namespaces_count=n, clients_sum=s, share_bp=bp) for g, n, s, bp in rows]


def namespace_share_rows(namespaces: Iterable[NamespaceRecord], deleted: DeletedMatcher | None = None) -> list[NamespaceShareRow]:
    deleted = deleted or DeletedMatcher()
    items = list(namespaces)
    grand = total_clients(items)
    rows = [
        NamespaceShareRow(
            namespace=ns.key,
            clients=ns.clients,
            mounts=ns.mount_count,
            share_bp=share_basis_points(ns.clients, grand),
            scope=scope_for(ns.key, deleted),
        )
        for ns in items
    ]
    rows.sort(key=lambda r: (-r.clients, r.namespace))
    return rows


def candidate_prefixes(prefix_rows: list[PrefixRow], threshold_pct: float) -> list[PrefixRow]:
    threshold_bp = float(threshold_pct) * 100.0
    return [r for r in prefix_rows if r.prefix not in SUGGEST_SKIP_PREFIXES and r.share_bp >= threshold_bp]


def suggested_filter(prefix_rows: list[PrefixRow], threshold_pct: float) -> dict[str, object]:
    suggested = ["^" + re.escape(r.prefix) for r in candidate_prefixes(prefix_rows, threshold_pct)]
    patterns = sorted(set(STARTER_EXCLUDE_PATTERNS) | set(suggested))
    logger.debug("suggested filter: %d starter + %d candidate patterns", len(STARTER_EXCLUDE_PATTERNS), len(suggested))
    return {
        "mode": MODE_EXCLUDE,
        "exclude_namespaces": patterns,
        "non_production_namespaces": list(patterns),
    }
