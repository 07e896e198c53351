"""Lever elasticity estimation from historical fact records.

For each ``(lever, impacted field)`` pair declared in the naming table,
estimates the percent change in the field per 1 % change in the lever:

    elasticity = CV(field) / CV(lever)      when both CVs are positive
               = |pearson r|                else, when |r| > threshold
               = default (1.0)              otherwise

clamped to ``[elasticity_min, elasticity_max]``.  Only records where both
values resolve and are non-zero contribute a sample.
"""
import re
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config.models import (
    ElasticityEntry,
    ElasticityTable,
    EngineConfig,
    ImpactMapping,
    Lever,
)
from ..mapping.resolver import resolve_field

logger = logging.getLogger(__name__)


@dataclass
class ElasticityStats:
    """Sample statistics behind one elasticity estimate."""
    sample_size: int
    lever_mean: float = 0.0
    field_mean: float = 0.0
    correlation: float = 0.0
    lever_cv: float = 0.0
    field_cv: float = 0.0
    elasticity: float = 1.0
    method: str = "default"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def estimate_elasticity(
    pairs: Sequence[Tuple[float, float]], config: Optional[EngineConfig] = None
) -> ElasticityStats:
    """Estimate elasticity from ``(lever_value, field_value)`` samples."""
    config = config or EngineConfig()
    low, high = config.elasticity_min, config.elasticity_max
    n = len(pairs)
    if n == 0:
        return ElasticityStats(sample_size=0, elasticity=1.0)

    lever_mean = sum(p[0] for p in pairs) / n
    field_mean = sum(p[1] for p in pairs) / n
    stats = ElasticityStats(sample_size=n, lever_mean=lever_mean, field_mean=field_mean)
    if lever_mean == 0 or field_mean == 0:
        stats.elasticity = _clamp(config.default_elasticity, low, high)
        return stats

    sum_product = sum_lever_sq = sum_field_sq = 0.0
    for lever_value, field_value in pairs:
        lever_dev = lever_value - lever_mean
        field_dev = field_value - field_mean
        sum_product += lever_dev * field_dev
        sum_lever_sq += lever_dev * lever_dev
        sum_field_sq += field_dev * field_dev

    if sum_lever_sq > 0 and sum_field_sq > 0:
        stats.correlation = sum_product / math.sqrt(sum_lever_sq * sum_field_sq)

    # Population standard deviation; CV keeps the sign of the mean.
    stats.lever_cv = math.sqrt(sum_lever_sq / n) / lever_mean
    stats.field_cv = math.sqrt(sum_field_sq / n) / field_mean

    if stats.lever_cv > 0 and stats.field_cv > 0:
        raw, stats.method = stats.field_cv / stats.lever_cv, "cv_ratio"
    elif abs(stats.correlation) > config.correlation_threshold:
        raw, stats.method = abs(stats.correlation), "correlation"
    else:
        raw = config.default_elasticity

    stats.elasticity = _clamp(raw, low, high)
    return stats


def _squash(name: str) -> str:
    return re.sub(r"[_\s-]", "", name.strip().lower())


def match_pnl_field(impacted: str, pnl_fields: Sequence[str]) -> Optional[str]:
    """Match an impacted field name to a P&L field: exact first, then containment."""
    target = _squash(impacted)
    if not target:
        return None
    for field_key in pnl_fields:
        if _squash(field_key) == target:
            return field_key
    for field_key in pnl_fields:
        candidate = _squash(field_key)
        if candidate and (target in candidate or candidate in target):
            return field_key
    return None


def lever_record_value(record: Mapping[str, Any], lever: Lever) -> Optional[float]:
    """First non-zero value found under any of the lever's lookup names."""
    for name in lever.lookup_names():
        value = resolve_field(record, name)
        if value:
            return value
    return None


class ElasticityEstimator:
    """Builds the dense elasticity table once per dataset load."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.stats: Dict[Tuple[str, str], ElasticityStats] = {}

    def collect_pairs(
        self, records: Sequence[Mapping[str, Any]], lever: Lever, field_key: str
    ) -> List[Tuple[float, float]]:
        pairs = []
        for record in records:
            lever_value = lever_record_value(record, lever)
            if not lever_value:
                continue
            field_value = resolve_field(record, field_key)
            if not field_value:
                continue
            pairs.append((lever_value, field_value))
        return pairs

    def estimate(
        self,
        records: Sequence[Mapping[str, Any]],
        levers: Sequence[Lever],
        mapping: ImpactMapping,
        pnl_fields: Sequence[str],
    ) -> ElasticityTable:
        """Estimate every declared ``(lever, field)`` pair.

        Impacted fields that match no P&L field are skipped with a warning.
        """
        entries: List[ElasticityEntry] = []
        self.stats = {}
        for lever in levers:
            impacted = mapping.fields_for(lever.id)
            if not impacted:
                continue
            for name in impacted:
                field_key = match_pnl_field(name, pnl_fields)
                if field_key is None:
                    logger.warning(
                        "Impacted field '%s' of lever '%s' matches no P&L field",
                        name, lever.id,
                    )
                    continue
                if any(e.lever_id == lever.id and e.field_key == field_key for e in entries):
                    continue

                stats = estimate_elasticity(
                    self.collect_pairs(records, lever, field_key), self.config
                )
                if stats.sample_size == 0:
                    logger.warning(
                        "No samples for lever '%s' -> '%s'; using elasticity 1.0",
                        lever.id, field_key,
                    )
                self.stats[(lever.id, field_key)] = stats
                entries.append(ElasticityEntry(
                    lever_id=lever.id,
                    field_key=field_key,
                    coefficient=stats.elasticity,
                    sample_size=stats.sample_size,
                    method=stats.method,
                ))
                logger.debug(
                    "Elasticity %s -> %s: r=%.3f e=%.3f (%s, n=%d)",
                    lever.id, field_key, stats.correlation, stats.elasticity,
                    stats.method, stats.sample_size,
                )
        logger.info("Estimated %d elasticities", len(entries))
        return ElasticityTable(entries=entries)
