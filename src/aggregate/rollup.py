"""Fact aggregation and bottom-up roll-up.

Transaction-style fact records are bucketed by their period key and summed
per canonical field (for P&L line items) or per leaf name (for driver-tree
leaves).  Parent tree amounts are never resolved from records: they are the
sum of their children, so ``parent == sum(children)`` holds for every period.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..config.models import DriverTree, DriverTreeNode, PeriodAmount, PnLLineItem
from ..extract.normalizer import normalize_margin_pct
from ..mapping.resolver import FieldResolver, resolve_field
from .periods import calculate_trend, sort_periods

logger = logging.getLogger(__name__)

MARGIN_FIELD = "Margin_$mm"
MARGIN_KEY = "Margin"
MARGIN_PCT_KEY = "MarginPct"
MARGIN_PCT_FIELDS = ("MarginPct", "Margin_%")

PeriodValues = Dict[str, float]
TreeAmounts = Dict[str, PeriodValues]


def find_period_key(record: Mapping[str, Any], period_field: str = "quarter") -> Optional[str]:
    """Return the record's period column: exact (case-insensitive) name first,
    then the first column whose name contains it."""
    target = period_field.lower()
    keys = list(record.keys())
    for key in keys:
        if str(key).strip().lower() == target:
            return key
    for key in keys:
        if target in str(key).lower():
            return key
    return None


def record_period(record: Mapping[str, Any], period_field: str = "quarter") -> Optional[str]:
    """Return the trimmed period value, or ``None`` when absent or blank."""
    key = find_period_key(record, period_field)
    if key is None:
        return None
    value = record[key]
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


class FactAggregator:
    """Sums resolved field values per period over a fixed set of records.

    Records without a resolvable period are dropped once, at construction.
    """

    def __init__(self, records: Iterable[Mapping[str, Any]], period_field: str = "quarter"):
        self.period_field = period_field
        self.by_period: List[Tuple[str, Mapping[str, Any]]] = []
        dropped = 0
        for record in records:
            period = record_period(record, period_field)
            if period is None:
                dropped += 1
                continue
            self.by_period.append((period, record))
        if dropped:
            logger.warning("Dropped %d fact records without a '%s' value", dropped, period_field)
        self.periods: List[str] = sort_periods(p for p, _ in self.by_period)

    def aggregate_field(
        self, name: str, resolver: Optional[FieldResolver] = None
    ) -> PeriodValues:
        """Per-period sum of *name*; periods with no resolved value are absent."""
        resolve = resolver.resolve if resolver else resolve_field
        totals: PeriodValues = {}
        for period, record in self.by_period:
            value = resolve(record, name)
            if value is None:
                continue
            totals[period] = totals.get(period, 0.0) + value
        return totals

    def first_value(
        self, names: Sequence[str], exclude: Sequence[str] = ()
    ) -> PeriodValues:
        """Per-period first non-zero value resolved from any of *names*.

        Columns named exactly like one of *exclude* (case-insensitive) are
        never read.
        """
        skip = {n.strip().lower() for n in exclude}
        found: PeriodValues = {}
        for period, record in self.by_period:
            if found.get(period):
                continue
            if skip:
                record = {k: v for k, v in record.items() if str(k).strip().lower() not in skip}
            for name in names:
                value = resolve_field(record, name)
                if value:
                    found[period] = value
                    break
        return found

    # ------------------------------------------------------------------
    # P&L
    # ------------------------------------------------------------------

    def aggregate_pnl(self, line_items: Sequence[PnLLineItem]) -> Dict[str, PeriodValues]:
        """Baseline P&L: ``period -> field -> amount``.

        Every period carries every line-item field (0 when nothing resolved)
        plus ``Margin``, ``Margin_$mm`` and a unit-normalized ``MarginPct``.
        """
        fields: List[str] = []
        for item in line_items:
            if item.field_key and item.field_key not in fields:
                fields.append(item.field_key)

        resolver = FieldResolver(fields + [MARGIN_FIELD])
        data: Dict[str, PeriodValues] = {}
        for period in self.periods:
            row = {f: 0.0 for f in fields}
            row.update({MARGIN_KEY: 0.0, MARGIN_PCT_KEY: 0.0, MARGIN_FIELD: 0.0})
            data[period] = row

        for name in fields + [MARGIN_FIELD]:
            for period, total in self.aggregate_field(name, resolver).items():
                data[period][name] += total

        for period, pct in self.first_value(MARGIN_PCT_FIELDS, exclude=(MARGIN_FIELD,)).items():
            data[period][MARGIN_PCT_KEY] = normalize_margin_pct(pct)
        for row in data.values():
            row[MARGIN_KEY] = row[MARGIN_FIELD]

        for name in resolver.unresolved():
            logger.debug("P&L field '%s' did not resolve in any record", name)
        logger.info("Aggregated baseline P&L: %d periods, %d fields", len(data), len(fields))
        return data

    # ------------------------------------------------------------------
    # Driver tree
    # ------------------------------------------------------------------

    def aggregate_tree(self, tree: DriverTree) -> TreeAmounts:
        """Resolve every leaf by its own name, then roll up."""
        leaf_amounts: TreeAmounts = {}
        for leaf in tree.leaves():
            leaf_amounts[leaf.id] = self.aggregate_field(leaf.name)
        return roll_up(tree, leaf_amounts, self.periods)


def _roll_node(
    node: DriverTreeNode,
    leaf_amounts: Mapping[str, Mapping[str, float]],
    periods: Sequence[str],
    out: TreeAmounts,
) -> PeriodValues:
    if node.is_leaf:
        own = leaf_amounts.get(node.id, {})
        values = {p: float(own.get(p, 0.0)) for p in periods}
    else:
        child_values = [_roll_node(c, leaf_amounts, periods, out) for c in node.children]
        values = {p: sum(cv[p] for cv in child_values) for p in periods}
    out[node.id] = values
    return values


def roll_up(
    tree: DriverTree,
    leaf_amounts: Mapping[str, Mapping[str, float]],
    periods: Sequence[str],
) -> TreeAmounts:
    """Return ``node_id -> period -> amount`` for every node.

    Leaves take their amount from *leaf_amounts* (0 where missing); every
    other node is the sum of its children.
    """
    out: TreeAmounts = {}
    for root in tree.roots:
        _roll_node(root, leaf_amounts, periods, out)
    return out


def apply_amounts(tree: DriverTree, amounts: Mapping[str, Mapping[str, float]]) -> None:
    """Write rolled-up amounts into ``node.amounts``."""
    for node in tree.iter_nodes():
        node.amounts = dict(amounts.get(node.id, {}))


# ------------------------------------------------------------------
# Accounting facts
# ------------------------------------------------------------------

def match_accounting_fact(
    name: str, facts: Mapping[str, Sequence[PeriodAmount]]
) -> Optional[str]:
    """Find the fact key for a node name: exact, then partial (case-insensitive)."""
    target = name.strip().lower()
    for key in facts:
        if key.strip().lower() == target:
            return key
    for key in facts:
        lowered = key.strip().lower()
        if lowered and (target in lowered or lowered in target):
            return key
    return None


def attach_accounting_facts(
    tree: DriverTree, facts: Mapping[str, Sequence[PeriodAmount]]
) -> TreeAmounts:
    """Attach accounting-fact amounts to leaves by name, roll up, store on nodes."""
    leaf_amounts: TreeAmounts = {}
    periods: List[str] = []
    for leaf in tree.leaves():
        key = match_accounting_fact(leaf.name, facts)
        if key is None:
            continue
        values: PeriodValues = {}
        for entry in facts[key]:
            values[entry.period] = values.get(entry.period, 0.0) + entry.value
            periods.append(entry.period)
        leaf_amounts[leaf.id] = values

    amounts = roll_up(tree, leaf_amounts, sort_periods(periods))
    apply_amounts(tree, amounts)
    logger.info("Attached accounting facts to %d of %d leaves", len(leaf_amounts), len(tree.leaves()))
    return amounts


def node_trend(amounts: Mapping[str, float]) -> Optional[float]:
    """Trend of one node's per-period amounts (see :func:`calculate_trend`)."""
    return calculate_trend(list(amounts.items()))
