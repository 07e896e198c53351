"""Fuzzy field resolution: map a canonical measure name onto record columns.

Uploaded fact sheets name their columns inconsistently (``Revenue_$mm``,
``revenue mm``, ``Total Revenue``...).  :func:`resolve_field` looks a
canonical name up in one record using four tiers, strictest first:

1. exact match on the normalized name
2. containment of one normalized name in the other (both longer than 3)
3. every target core word matches some column core word
4. every target core word appears somewhere in the lower-case column name

Within a tier, columns are tried in record order and the first one holding
a numeric value wins.  Identifier-like columns (normalized name containing
``id``, ``period``, ``date`` or ``quarter``) never match.
"""
import re
import logging
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..extract.normalizer import coerce_number

logger = logging.getLogger(__name__)

# Order matters: "$mm" must go before "$m" and bare "mm".
_UNIT_TOKENS = [
    re.compile(r"\$mm"),
    re.compile(r"\$m(?![a-z])"),
    re.compile(r"mm(?![a-z])"),
    re.compile(r"_bps"),
    re.compile(r"_pct"),
    re.compile(r"_annual"),
    re.compile(r"_fte"),
]
_IDENTIFIER_MARKERS = ("id", "period", "date", "quarter")

TIER_NAMES = {1: "exact", 2: "containment", 3: "word-set", 4: "partial"}


@lru_cache(maxsize=4096)
def normalize_field_name(name: str) -> str:
    """Lower-case, strip unit tokens, then drop every non-alphanumeric.

    Examples:
        "Revenue_$mm" -> "revenue"
        "Total Revenue" -> "totalrevenue"
        "Headcount_FTE" -> "headcount"
    """
    text = str(name).lower()
    for pattern in _UNIT_TOKENS:
        text = pattern.sub("", text)
    return re.sub(r"[^a-z0-9]", "", text)


@lru_cache(maxsize=4096)
def core_words(name: str) -> Tuple[str, ...]:
    """Split a name into its lower-case core words, unit tokens removed.

    Examples:
        "Base_Compensation_$mm" -> ("base", "compensation")
        "Avg AUM" -> ("avg", "aum")
    """
    text = str(name).lower()
    for pattern in _UNIT_TOKENS:
        text = pattern.sub(" ", text)
    text = re.sub(r"[^a-z0-9\s_]", " ", text)
    return tuple(w for w in re.split(r"[\s_]+", text) if len(w) > 1)


def is_identifier_field(key: str) -> bool:
    normalized = normalize_field_name(key)
    return any(marker in normalized for marker in _IDENTIFIER_MARKERS)


def names_match(a: str, b: str) -> bool:
    """Loose name equality: normalized forms equal or one contains the other."""
    na, nb = normalize_field_name(a), normalize_field_name(b)
    if not na or not nb:
        return False
    return na == nb or na in nb or nb in na


# ------------------------------------------------------------------
# Tier predicates: (target, candidate key) -> bool
# ------------------------------------------------------------------

def _exact(target: str, key: str) -> bool:
    nt = normalize_field_name(target)
    return bool(nt) and normalize_field_name(key) == nt


def _containment(target: str, key: str) -> bool:
    nt, nk = normalize_field_name(target), normalize_field_name(key)
    if len(nt) <= 3 or len(nk) <= 3:
        return False
    return nt in nk or nk in nt


def _target_words(target: str) -> Tuple[str, ...]:
    words = core_words(target)
    if not words or any(len(w) <= 2 for w in words):
        return ()
    return words


def _word_set(target: str, key: str) -> bool:
    words = _target_words(target)
    if not words:
        return False
    key_words = core_words(key)
    return all(any(w in k or k in w for k in key_words) for w in words)


def _partial(target: str, key: str) -> bool:
    words = _target_words(target)
    if not words:
        return False
    lowered = str(key).lower()
    return all(w in lowered for w in words)


_TIERS: List[Tuple[int, Callable[[str, str], bool]]] = [
    (1, _exact),
    (2, _containment),
    (3, _word_set),
    (4, _partial),
]


def resolve_match(record: Mapping[str, Any], target: str) -> Optional[Tuple[str, float, int]]:
    """Return ``(column, value, tier)`` for the best match, or ``None``."""
    candidates = [k for k in record.keys() if not is_identifier_field(k)]
    for tier, predicate in _TIERS:
        for key in candidates:
            if not predicate(target, key):
                continue
            value = coerce_number(record[key])
            if value is not None:
                return key, value, tier
    return None


def resolve_field(record: Mapping[str, Any], target: str) -> Optional[float]:
    """Resolve *target* against *record*; ``None`` means no match, not zero."""
    match = resolve_match(record, target)
    if match is None:
        logger.debug("No field matching '%s' in record keys %s", target, list(record.keys()))
        return None
    return match[1]


def resolve_key(record: Mapping[str, Any], target: str) -> Optional[str]:
    """Return the column name that :func:`resolve_field` would read."""
    match = resolve_match(record, target)
    return match[0] if match else None


class FieldResolver:
    """Resolves a fixed vocabulary against many records and reports coverage.

    Keeps per-name hit counts so an unmapped canonical field can be
    surfaced after an aggregation pass.
    """

    def __init__(self, names: Optional[List[str]] = None):
        self.names = list(names or [])
        self.hits: Dict[str, int] = {n: 0 for n in self.names}
        self.misses: Dict[str, int] = {n: 0 for n in self.names}
        self.columns: Dict[str, Dict[str, int]] = {}

    def resolve(self, record: Mapping[str, Any], name: str) -> Optional[float]:
        match = resolve_match(record, name)
        if match is None:
            self.misses[name] = self.misses.get(name, 0) + 1
            return None
        self.hits[name] = self.hits.get(name, 0) + 1
        per_name = self.columns.setdefault(name, {})
        per_name[match[0]] = per_name.get(match[0], 0) + 1
        return match[1]

    def resolve_all(self, record: Mapping[str, Any]) -> Dict[str, Optional[float]]:
        return {name: self.resolve(record, name) for name in self.names}

    def unresolved(self) -> List[str]:
        """Names that never matched any record."""
        return [n for n in self.names if self.hits.get(n, 0) == 0]

    def get_resolution_report(self) -> str:
        """Generate a markdown report of which columns each name resolved to."""
        lines = ["# Field Resolution Report\n"]
        lines.append("## Summary")
        lines.append(f"- Names: {len(self.names)}")
        lines.append(f"- Unresolved: {len(self.unresolved())}\n")

        lines.append("| Name | Hits | Misses | Columns |")
        lines.append("|------|------|--------|---------|")
        for name in self.names:
            cols = ", ".join(
                f"{col} ({count})" for col, count in self.columns.get(name, {}).items()
            ) or "-"
            lines.append(
                f"| {name} | {self.hits.get(name, 0)} | {self.misses.get(name, 0)} | {cols} |"
            )
        return "\n".join(lines)
