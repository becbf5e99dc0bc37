from __future__ import annotations

import json
from pathlib import Path

import pytest

from vault_consumption.cli import main


def _export(path: Path, counts: dict[str, int], start: str = "2024-01-01T00:00:00Z") -> Path:
    doc = {
        "start_time": start,
        "total": {"clients": sum(counts.values())},
        "by_namespace": [
            {"namespace_path": k, "counts": {"clients": v}, "mounts": [{"mount_path": "auth/approle/", "mount_type": "approle/", "counts": {"clients": v}}]}
            for k, v in counts.items()
        ],
    }
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _no_color(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.delenv("COLOR", raising=False)


def test_count_success(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    f = _export(tmp_path / "a.json", {"": 300, "prod/x/": 303})
    rc = main(["count", "--file", str(f), "--entitlement", "600", "--out-csv", str(tmp_path / "csv"), "--out-md", str(tmp_path / "r.md")])
    assert rc == 0
    out = capsys.readouterr().out
    assert "over by 3" in out
    assert (tmp_path / "csv" / "namespaces.csv").is_file()
    assert (tmp_path / "r.md").read_text(encoding="utf-8").startswith("# Vault client count report")


def test_missing_file_exits_2(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main(["count", "--file", str(tmp_path / "nope.json")])
    assert rc == 2
    err = capsys.readouterr().err
    assert err.startswith("Error: File not found")
    assert len(err.strip().splitlines()) == 1


def test_invalid_json_exits_2(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bad = tmp_path / "bad.json"
    bad.write_text("### NAMESPACE: x ###\n{}", encoding="utf-8")
    assert main(["count", "--file", str(bad)]) == 2
    assert "not valid JSON" in capsys.readouterr().err


def test_usage_errors_exit_2(tmp_path: Path) -> None:
    f = _export(tmp_path / "a.json", {"a/": 1})
    assert main([]) == 2
    assert main(["count"]) == 2
    assert main(["count", "--file", str(f), "--entitlement", "-1"]) == 2
    assert main(["count", "--file", str(f), "--entitlement", "ten"]) == 2
    assert main(["count", "--file", str(f), "--filter-mode", "hide"]) == 2
    assert main(["diff", "--old", str(f)]) == 2


def test_help_exits_0(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--help"]) == 0
    out = capsys.readouterr().out
    for cmd in ("analyze", "count", "diff", "all", "clean"):
        assert cmd in out


def test_invalid_filter_file_exits_2(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    f = _export(tmp_path / "a.json", {"a/": 1})
    flt = tmp_path / "filter.json"
    flt.write_text("[oops", encoding="utf-8")
    assert main(["count", "--file", str(f), "--filter", str(flt)]) == 2
    assert "Filter file is not valid JSON" in capsys.readouterr().err
    assert main(["count", "--file", str(f), "--filter", str(tmp_path / "missing.json")]) == 2


def test_diff_with_filter(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    old = _export(tmp_path / "old.json", {"root": 60, "dev/a/": 10})
    new = _export(tmp_path / "new.json", {"root": 74, "dev/a/": 50})
    flt = tmp_path / "filter.json"
    flt.write_text(json.dumps({"mode": "exclude", "exclude_namespaces": ["^dev/"], "non_production_namespaces": ["^dev/"]}), encoding="utf-8")
    rc = main(["diff", "--old", str(old), "--new", str(new), "--filter", str(flt), "--out-csv", str(tmp_path / "d")])
    assert rc == 0
    summary = (tmp_path / "d" / "summary.csv").read_text(encoding="utf-8").splitlines()
    assert summary[1] == "exclude,2024-01-01T00:00:00Z,2024-01-01T00:00:00Z,60,74,14,14,0"
    diff_rows = (tmp_path / "d" / "namespace_diff.csv").read_text(encoding="utf-8").splitlines()
    assert diff_rows[1:] == ["root,60,74,14,1,1,0,false"]
    capsys.readouterr()

    rc = main(["diff", "--old", str(old), "--new", str(new), "--filter", str(flt), "--filter-mode", "highlight"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "dev/a/  [non-production]  10 -> 50 (+40)" in out
    assert "Non-production movers" in out


def test_analyze_emits_outputs(tmp_path: Path) -> None:
    f = _export(tmp_path / "a.json", {"": 50, "prod/a/": 30, "teamx/a/": 20})
    out_dir = tmp_path / "ns"
    assert main(["analyze", "--file", str(f), "--out-dir", str(out_dir), "--emit-filter", "true"]) == 0
    assert (out_dir / "namespaces.csv").read_text(encoding="utf-8").splitlines()[0] == "namespace;clients;mounts;share_of_total"
    assert (out_dir / "namespaces.md").read_text(encoding="utf-8").startswith("# Detected namespaces")
    suggestion = json.loads((out_dir / "exclude.json").read_text(encoding="utf-8"))
    assert "^teamx/" in suggestion["exclude_namespaces"]


def test_analyze_without_emit_filter(tmp_path: Path) -> None:
    f = _export(tmp_path / "a.json", {"a/": 1})
    assert main(["analyze", "--file", str(f), "--out-dir", str(tmp_path / "ns")]) == 0
    assert not (tmp_path / "ns" / "exclude.json").exists()


def test_all_uses_profile(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    old = _export(tmp_path / "old.json", {"root": 10, "deleted-x/": 3})
    new = _export(tmp_path / "new.json", {"root": 12})
    cfg = tmp_path / "vcc.config.json"
    cfg.write_text(
        json.dumps({"profiles": {"prod": {"old": str(old), "new": str(new), "out_dir": str(tmp_path / "out"), "top": 5, "entitlement": 11}}}),
        encoding="utf-8",
    )
    rc = main(["all", "--config", str(cfg), "--profile", "prod"])
    assert rc == 0
    out_root = tmp_path / "out"
    for rel in ("namespaces/namespaces.md", "old/report.md", "new/report.md", "diff/diff.md", "diff/summary.csv", "old/namespaces.csv"):
        assert (out_root / rel).is_file(), rel
    assert "over by 1" in capsys.readouterr().out
    summary = (out_root / "diff" / "summary.csv").read_text(encoding="utf-8").splitlines()[1]
    assert summary.endswith(",-3")


def test_all_requires_inputs(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["all", "--config", str(tmp_path / "none.json")]) == 2
    assert "all requires" in capsys.readouterr().err


def test_all_unknown_profile(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg = tmp_path / "c.json"
    cfg.write_text(json.dumps({"profiles": {"default": {}}}), encoding="utf-8")
    assert main(["all", "--config", str(cfg), "--profile", "nope"]) == 2
    assert "Profile not found" in capsys.readouterr().err


def test_clean_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    src = tmp_path / "raw.json"
    src.write_text('### NAMESPACE: a ###\n{"total": {"clients": 1}}\n### NAMESPACE: b ###\n{"total": {"clients": 9}}\n', encoding="utf-8")
    assert main(["clean", "--in", str(src)]) == 0
    out = tmp_path / "raw.json.clean.json"
    assert json.loads(out.read_text(encoding="utf-8")) == {"total": {"clients": 9}}
    assert "removed namespace markers: 2" in capsys.readouterr().out

    assert main(["clean", "--in", str(src)]) == 2
    assert "output exists" in capsys.readouterr().err
    assert main(["clean", "--in", str(src), "--force", "true"]) == 0


def test_all_checks_inputs_before_writing(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    new = _export(tmp_path / "new.json", {"root": 12})
    out_dir = tmp_path / "out"
    rc = main(["all", "--old", str(tmp_path / "missing.json"), "--new", str(new), "--out-dir", str(out_dir), "--config", str(tmp_path / "none.json")])
    assert rc == 2
    assert "Old file not found" in capsys.readouterr().err
    assert not out_dir.exists() or [p for p in out_dir.rglob("*")] == []

    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    rc = main(["all", "--old", str(new), "--new", str(bad), "--out-dir", str(out_dir), "--config", str(tmp_path / "none.json")])
    assert rc == 2
    assert "New file is not valid JSON" in capsys.readouterr().err
    assert not out_dir.exists() or [p for p in out_dir.rglob("*")] == []


def test_clean_rejects_non_utf8_input(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    src = tmp_path / "raw.json"
    src.write_bytes(b'{"total": "\xff\xfe"}')
    assert main(["clean", "--in", str(src)]) == 2
    assert "not UTF-8" in capsys.readouterr().err
    assert not (tmp_path / "raw.json.clean.json").exists()


def test_deleted_pattern_help_mentions_broad_default(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["diff", "--help"]) == 0
    out = " ".join(capsys.readouterr().out.split())
    assert "deleted-archive/" in out
    assert "'^deleted namespace'" in out
