from __future__ import annotations

import dataclasses
import json
import logging
import re

from .errors import InputError

logger = logging.getLogger(__name__)

MODE_EXCLUDE = "exclude"
MODE_HIGHLIGHT = "highlight"
FILTER_MODES = (MODE_EXCLUDE, MODE_HIGHLIGHT)


@dataclasses.dataclass(frozen=True)
class FilterRuleSet:
    mode: str = ""
    exclude_namespaces: tuple[str, ...] = ()
    non_production_namespaces: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class Classification:
    excluded: bool
    non_production: bool


def _patterns(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(p) for p in value if p is not None)


def rule_set_from_dict(doc: object) -> FilterRuleSet:
    if not isinstance(doc, dict):
        return FilterRuleSet()
    mode = doc.get("mode")
    return FilterRuleSet(
        mode=str(mode).strip().lower() if mode else "",
        exclude_namespaces=_patterns(doc.get("exclude_namespaces")),
        non_production_namespaces=_patterns(doc.get("non_production_namespaces")),
    )


def resolve_mode(cli_mode: str | None, file_mode: str | None) -> str:
    for candidate, origin in ((cli_mode, "--filter-mode"), (file_mode, "filter file mode")):
        s = (candidate or "").strip().lower()
        if not s:
            continue
        if s not in FILTER_MODES:
            raise InputError(f"{origin} must be 'exclude' or 'highlight' (got: {candidate})")
        return s
    return MODE_EXCLUDE


def compile_patterns(patterns: tuple[str, ...]) -> tuple[re.Pattern[str], ...]:
    compiled: list[re.Pattern[str]] = []
    for p in patterns:
        try:
            compiled.append(re.compile(p))
        except re.error as exc:
            # A broken pattern never matches; the rest of the rule set still applies.
            logger.warning("ignoring malformed filter pattern %r: %s", p, exc)
    return tuple(compiled)


def matches_any(compiled: tuple[re.Pattern[str], ...], key: str) -> bool:
    return any(rx.search(key) is not None for rx in compiled)


@dataclasses.dataclass(frozen=True)
class FilterContext:
    enabled: bool
    mode: str
    rules: FilterRuleSet
    exclude: tuple[re.Pattern[str], ...] = ()
    non_production: tuple[re.Pattern[str], ...] = ()

    @classmethod
    def disabled(cls, mode: str = MODE_EXCLUDE) -> FilterContext:
        return cls(enabled=False, mode=mode, rules=FilterRuleSet())

    @classmethod
    def build(cls, rules: FilterRuleSet | None, *, cli_mode: str | None = None) -> FilterContext:
        """
        `rules=None` means no filter file was given: every namespace is kept and untagged, but an
        explicit `cli_mode` is still validated and reported.
        """
        if rules is None:
            return cls.disabled(resolve_mode(cli_mode, None))
        return cls(
            enabled=True,
            mode=resolve_mode(cli_mode, rules.mode),
            rules=rules,
            exclude=compile_patterns(rules.exclude_namespaces),
            non_production=compile_patterns(rules.non_production_namespaces),
        )

    @property
    def excluding(self) -> bool:
        return self.enabled and self.mode == MODE_EXCLUDE

    @property
    def highlighting(self) -> bool:
        return self.enabled and self.mode == MODE_HIGHLIGHT

    def classify(self, key: str) -> Classification:
        return Classification(
            excluded=matches_any(self.exclude, key),
            non_production=matches_any(self.non_production, key),
        )

    def is_excluded(self, key: str) -> bool:
        return matches_any(self.exclude, key)

    def is_non_production(self, key: str) -> bool:
        return matches_any(self.non_production, key)

    def keep(self, key: str) -> bool:
        return not (self.excluding and self.is_excluded(key))

    def highlight_non_production(self, key: str) -> bool:
        return self.highlighting and self.is_non_production(key)

    def describe(self) -> dict[str, str]:
        return {
            "mode": self.mode,
            "exclude_namespaces": json.dumps(list(self.rules.exclude_namespaces), separators=(",", ":")),
            "non_production_namespaces": json.dumps(list(self.rules.non_production_namespaces), separators=(",", ":")),
        }
