from __future__ import annotations

import pytest

from vault_consumption.diff import diff_snapshots, key_takeaway, non_production_movers
from vault_consumption.errors import InputError
from vault_consumption.filters import FilterContext, rule_set_from_dict
from vault_consumption.rollup import DeletedMatcher
from vault_consumption.schema import snapshot_from_dict


def _snap(counts: dict[str, int], start: str = "2024-01-01") -> object:
    return snapshot_from_dict(
        {
            "start_time": start,
            "by_namespace": [
                {"namespace_path": k, "counts": {"clients": v}, "mounts": [{"mount_path": "auth/x/", "counts": {"clients": v}}]}
                for k, v in counts.items()
            ],
        }
    )


def test_root_sixty_to_seventy_four() -> None:
    ns = {
        "namespace_path": "root",
        "counts": {"clients": 60},
        "mounts": [{"mount_path": "auth/okta_oidc/", "mount_type": "oidc/", "counts": {"clients": 53}}],
    }
    old = snapshot_from_dict({"by_namespace": [ns]})
    new = snapshot_from_dict({"by_namespace": [{**ns, "counts": {"clients": 74}}]})
    result = diff_snapshots(old, new, FilterContext.disabled())
    row = result.row_for("root")
    assert row is not None
    assert (row.old_clients, row.new_clients, row.delta_clients) == (60, 74, 14)
    assert result.trend == "increased"


def test_empty_path_joins_with_root() -> None:
    old = snapshot_from_dict({"by_namespace": [{"namespace_path": "", "counts": {"clients": 1}}]})
    new = snapshot_from_dict({"by_namespace": [{"namespace_path": "root", "counts": {"clients": 4}}]})
    result = diff_snapshots(old, new, FilterContext.disabled())
    assert [(r.namespace, r.delta_clients) for r in result.rows] == [("root", 3)]


def test_key_union_completeness_and_lifecycle() -> None:
    old = _snap({"a/": 10, "gone/": 7, "same/": 3})
    new = _snap({"a/": 12, "fresh/": 5, "same/": 3})
    result = diff_snapshots(old, new, FilterContext.disabled())
    keys = [r.namespace for r in result.rows]
    assert sorted(keys) == ["a/", "fresh/", "gone/", "same/"]
    assert len(keys) == len(set(keys))
    assert result.only_in_old == ("gone/",)
    assert result.only_in_new == ("fresh/",)
    gone = result.row_for("gone/")
    assert gone is not None and (gone.new_clients, gone.new_mounts, gone.delta_mounts) == (0, 0, -1)
    # zero-delta rows stay in the full table but not in the movers lists
    assert "same/" not in [r.namespace for r in result.increased + result.decreased]


def test_symmetry() -> None:
    a = _snap({"x/": 10, "y/": 4, "z/": 1})
    b = _snap({"x/": 3, "y/": 9, "w/": 2})
    ab = diff_snapshots(a, b, FilterContext.disabled())
    ba = diff_snapshots(b, a, FilterContext.disabled())
    for key in ("x/", "y/"):
        assert ab.row_for(key).delta_clients == -ba.row_for(key).delta_clients
    assert ab.delta_total == -ba.delta_total


def test_movers_ordering_and_top3() -> None:
    old = _snap({"a/": 0, "b/": 0, "c/": 0, "d/": 0, "e/": 50})
    new = _snap({"a/": 10, "b/": 30, "c/": 20, "d/": 5, "e/": 20})
    result = diff_snapshots(old, new, FilterContext.disabled())
    assert [r.namespace for r in result.increased] == ["b/", "c/", "a/", "d/"]
    assert [r.namespace for r in result.decreased] == ["e/"]
    assert result.top3_increases_total == 60
    assert (result.old_total, result.new_total, result.delta_total) == (50, 85, 35)


def test_top3_with_fewer_than_three_increases() -> None:
    result = diff_snapshots(_snap({"a/": 1}), _snap({"a/": 4}), FilterContext.disabled())
    assert result.top3_increases_total == 3


def test_deleted_net_change_uses_configurable_pattern() -> None:
    old = _snap({"deleted-1/": 10, "deleted-2/": 0, "app/": 5, "retired/old/": 4})
    new = _snap({"deleted-1/": 2, "deleted-2/": 3, "app/": 9})
    assert diff_snapshots(old, new, FilterContext.disabled()).deleted_namespaces_net_change == -5
    custom = diff_snapshots(old, new, FilterContext.disabled(), deleted=DeletedMatcher(r"^retired/"))
    assert custom.deleted_namespaces_net_change == -4


def test_invalid_deleted_pattern_is_input_error() -> None:
    with pytest.raises(InputError):
        DeletedMatcher("([")


def test_exclusion_applies_to_both_sides_and_totals() -> None:
    old = _snap({"prod/a/": 10, "dev/b/": 100})
    new = _snap({"prod/a/": 12, "dev/b/": 300})
    ctx = FilterContext.build(rule_set_from_dict({"exclude_namespaces": ["^dev/"]}))
    result = diff_snapshots(old, new, ctx)
    assert [r.namespace for r in result.rows] == ["prod/a/"]
    assert (result.old_total, result.new_total) == (10, 12)


def test_highlight_movers_by_absolute_change() -> None:
    old = _snap({"prod/a/": 10, "dev/b/": 10, "dev/c/": 10})
    new = _snap({"prod/a/": 40, "dev/b/": 12, "dev/c/": 2})
    ctx = FilterContext.build(rule_set_from_dict({"mode": "highlight", "exclude_namespaces": ["^dev/"], "non_production_namespaces": ["^dev/"]}))
    result = diff_snapshots(old, new, ctx)
    assert len(result.rows) == 3
    assert [r.namespace for r in non_production_movers(result, ctx)] == ["dev/c/", "dev/b/"]
    assert non_production_movers(result, FilterContext.disabled()) == []


def test_key_takeaway_sentence() -> None:
    result = diff_snapshots(_snap({"a/": 10}), _snap({"a/": 25}), FilterContext.disabled())
    text = key_takeaway(result)
    assert text.startswith("Client count grew from 10 to 25 (+15)")
    unchanged = diff_snapshots(_snap({"a/": 10}), _snap({"a/": 10}), FilterContext.disabled())
    assert "unchanged" in key_takeaway(unchanged)
    assert unchanged.trend == "unchanged"


def test_duplicate_keys_are_joined_once() -> None:
    old = snapshot_from_dict({"by_namespace": [{"namespace_path": "", "counts": {"clients": 2}}, {"namespace_path": None, "counts": {"clients": 3}}]})
    new = snapshot_from_dict({"by_namespace": [{"namespace_path": "root", "counts": {"clients": 9}}]})
    result = diff_snapshots(old, new, FilterContext.disabled())
    assert [(r.namespace, r.old_clients, r.delta_clients) for r in result.rows] == [("root", 5, 4)]
