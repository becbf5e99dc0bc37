from __future__ import annotations

import logging
from pathlib import Path

from .errors import InputError
from .filters import FilterRuleSet, rule_set_from_dict
from .schema import load_json_file

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "vcc.config.json"
DEFAULT_PROFILE = "default"

PROFILE_KEYS = ("old", "new", "out_dir", "top", "suggest_threshold", "emit_filter", "filter", "filter_mode", "entitlement")


def load_config(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    doc = load_json_file(config_path, label="Config file")
    if not isinstance(doc, dict):
        raise InputError(f"Config file must contain a JSON object: {config_path}")
    return doc


def profile_settings(config: dict, name: str) -> dict[str, object]:
    """
    Return the known keys of `profiles.<name>`; unknown keys are ignored and null values dropped.

    A missing profile is only an error when the config actually defines profiles, so a fresh
    checkout without a config file still runs on CLI flags alone.
    """
    profiles = config.get("profiles") or {}
    if not isinstance(profiles, dict):
        raise InputError("Config key 'profiles' must be an object")
    if name not in profiles:
        if profiles:
            raise InputError(f"Profile not found in config: {name} (available: {', '.join(sorted(profiles))})")
        return {}
    raw = profiles[name]
    if not isinstance(raw, dict):
        raise InputError(f"Profile '{name}' must be an object")
    out: dict[str, object] = {}
    for k in PROFILE_KEYS:
        v = raw.get(k)
        if v is not None and v != "":
            out[k] = v
    ignored = sorted(set(raw) - set(PROFILE_KEYS))
    if ignored:
        logger.debug("profile %s: ignoring unknown keys %s", name, ignored)
    return out


def load_filter_file(path: Path) -> FilterRuleSet:
    doc = load_json_file(path, label="Filter file")
    if not isinstance(doc, dict):
        raise InputError(f"Filter file must contain a JSON object: {path}")
    return rule_set_from_dict(doc)


def bool_norm(value: object) -> bool:
    return str(value if value is not None else "").strip().lower() in ("true", "1", "yes")
