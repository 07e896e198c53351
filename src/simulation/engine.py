"""Scenario application engine - lever what-if over the P&L and driver tree.

Given baseline per-period P&L values, the elasticity table and the current
lever values, produces a perturbed P&L and driver tree:

1. every active lever moves each impacted field by
   ``baseline * lever% / 100 * elasticity`` (levers add, no cross terms)
2. every total row is its baseline plus the deltas of its own detail rows
3. margin is baseline margin plus revenue delta minus expense delta;
   margin % is recomputed against the scenario revenue
4. driver-tree leaves matching a lever's field (or an impacted field) are
   scaled, and ancestors are rolled up again

The engine is a pure function of its inputs; nothing is mutated.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..aggregate.periods import sort_periods
from ..aggregate.rollup import (
    MARGIN_FIELD,
    MARGIN_KEY,
    MARGIN_PCT_KEY,
    TreeAmounts,
    roll_up,
)
from ..config.models import DriverTree, ElasticityTable, Lever, PnLLineItem, ScenarioResult
from ..mapping.resolver import names_match

logger = logging.getLogger(__name__)


@dataclass
class SectionLayout:
    """Detail rows owning each total row, derived once from the line items."""
    details: Dict[str, List[str]] = field(default_factory=dict)
    revenue_total: Optional[str] = None
    expense_total: Optional[str] = None


def build_section_layout(line_items: Sequence[PnLLineItem]) -> SectionLayout:
    """Map every total row to the detail rows it reconciles against.

    A section header (indent 0) owns the non-total rows of its section at
    indent 1 or 2.  A subtotal (indent 1) owns the indent-2 rows that
    follow it.
    """
    layout = SectionLayout()
    for i, item in enumerate(line_items):
        if not item.is_total:
            continue
        owned: List[str] = []
        for other in line_items[i + 1:]:
            if item.indent == 0:
                if other.indent == 0:
                    break
                if other.section == item.section and not other.is_total and other.indent >= 1:
                    owned.append(other.field_key)
            else:
                if other.indent <= item.indent:
                    break
                if not other.is_total:
                    owned.append(other.field_key)
        layout.details[item.field_key] = list(dict.fromkeys(owned))

        if item.indent == 0 and item.section == "revenue" and layout.revenue_total is None:
            layout.revenue_total = item.field_key
        elif item.indent == 0 and item.section == "expense" and layout.expense_total is None:
            layout.expense_total = item.field_key
    return layout


class ScenarioEngine:
    """Applies lever values to a fixed baseline.

    Args:
        line_items:    P&L layout.
        baseline_pnl:  ``period -> field -> value``.
        elasticities:  Dense ``(lever, field)`` table.
        levers:        Lever configuration (bounds, declared fields).
        tree:          Driver tree (structure only is read).
        baseline_tree: ``node_id -> period -> value``.
    """

    def __init__(
        self,
        line_items: Sequence[PnLLineItem],
        baseline_pnl: Mapping[str, Mapping[str, float]],
        elasticities: ElasticityTable,
        levers: Sequence[Lever],
        tree: Optional[DriverTree] = None,
        baseline_tree: Optional[Mapping[str, Mapping[str, float]]] = None,
    ):
        self.line_items = list(line_items)
        self.baseline_pnl = baseline_pnl
        self.elasticities = elasticities
        self.levers = list(levers)
        self.tree = tree or DriverTree()
        self.baseline_tree = baseline_tree or {}
        self.layout = build_section_layout(self.line_items)

    # ------------------------------------------------------------------
    # Lever handling
    # ------------------------------------------------------------------

    def active_levers(
        self, lever_values: Mapping[str, float], warnings: List[str]
    ) -> List[Tuple[Lever, float]]:
        """Clamp lever values and drop zero ones; flag unknown ids."""
        known = {lever.id for lever in self.levers}
        for lever_id in lever_values:
            if lever_id not in known:
                warnings.append(f"Unknown lever '{lever_id}' ignored")
        active = []
        for lever in self.levers:
            value = lever.clamp(lever_values.get(lever.id, 0.0))
            if value != 0:
                active.append((lever, value))
        return active

    # ------------------------------------------------------------------
    # P&L
    # ------------------------------------------------------------------

    def period_deltas(
        self, base: Mapping[str, float], active: Sequence[Tuple[Lever, float]]
    ) -> Dict[str, float]:
        deltas: Dict[str, float] = {}
        for lever, value in active:
            for field_key, coefficient in self.elasticities.for_lever(lever.id).items():
                delta = base.get(field_key, 0.0) * (value / 100) * coefficient
                deltas[field_key] = deltas.get(field_key, 0.0) + delta
        return deltas

    def _section_delta(self, total_key: Optional[str], deltas: Mapping[str, float]) -> float:
        if total_key is None:
            return 0.0
        return sum(deltas.get(k, 0.0) for k in self.layout.details.get(total_key, []))

    def apply_period(
        self, base: Mapping[str, float], active: Sequence[Tuple[Lever, float]]
    ) -> Dict[str, float]:
        """Scenario values for one period; an exact copy when nothing moves."""
        deltas = self.period_deltas(base, active)
        if not deltas:
            return dict(base)

        scenario = dict(base)
        for field_key, delta in deltas.items():
            scenario[field_key] = base.get(field_key, 0.0) + delta

        for total_key, detail_keys in self.layout.details.items():
            scenario[total_key] = base.get(total_key, 0.0) + sum(
                deltas.get(k, 0.0) for k in detail_keys
            )

        revenue_delta = self._section_delta(self.layout.revenue_total, deltas)
        expense_delta = self._section_delta(self.layout.expense_total, deltas)
        base_margin = base.get(MARGIN_FIELD) or base.get(MARGIN_KEY) or 0.0
        margin = base_margin + revenue_delta - expense_delta
        scenario[MARGIN_KEY] = margin
        scenario[MARGIN_FIELD] = margin

        revenue = scenario.get(self.layout.revenue_total, 0.0) if self.layout.revenue_total else 0.0
        scenario[MARGIN_PCT_KEY] = margin / revenue * 100 if revenue else 0.0
        return scenario

    # ------------------------------------------------------------------
    # Driver tree
    # ------------------------------------------------------------------

    def leaf_effect(self, name: str, active: Sequence[Tuple[Lever, float]]) -> float:
        """Summed fractional change for a leaf across all active levers.

        A leaf named like the lever's own field takes the lever change as-is;
        otherwise the first impacted field it matches scales the change by
        that field's elasticity.
        """
        effect = 0.0
        for lever, value in active:
            if names_match(name, lever.field_name) or names_match(name, lever.name):
                effect += value / 100
                continue
            for field_key, coefficient in self.elasticities.for_lever(lever.id).items():
                if names_match(name, field_key):
                    effect += value / 100 * coefficient
                    break
        return effect

    def apply_tree(
        self, active: Sequence[Tuple[Lever, float]], periods: Sequence[str]
    ) -> TreeAmounts:
        leaf_amounts: TreeAmounts = {}
        for leaf in self.tree.leaves():
            base = self.baseline_tree.get(leaf.id, {})
            effect = self.leaf_effect(leaf.name, active) if active else 0.0
            if effect == 0:
                leaf_amounts[leaf.id] = {p: base.get(p, 0.0) for p in periods}
            else:
                leaf_amounts[leaf.id] = {
                    p: base.get(p, 0.0) + base.get(p, 0.0) * effect for p in periods
                }
        return roll_up(self.tree, leaf_amounts, periods)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def known_periods(self) -> List[str]:
        """P&L periods, or the tree's own periods when there is no P&L baseline."""
        if self.baseline_pnl:
            return list(self.baseline_pnl.keys())
        return sort_periods(p for amounts in self.baseline_tree.values() for p in amounts)

    def compute(
        self,
        lever_values: Mapping[str, float],
        periods: Optional[Sequence[str]] = None,
    ) -> ScenarioResult:
        """Recompute the full scenario from baseline for the selected periods."""
        warnings: List[str] = []
        selected = list(periods) if periods else self.known_periods()
        active = self.active_levers(lever_values, warnings)

        for lever, _ in active:
            if not self.elasticities.for_lever(lever.id):
                message = f"Lever '{lever.id}' has no impacted P&L fields; P&L unchanged"
                logger.warning(message)
                warnings.append(message)

        pnl: Dict[str, Dict[str, float]] = {}
        baseline_pnl: Dict[str, Dict[str, float]] = {}
        for period in selected:
            if period not in self.baseline_pnl:
                if self.baseline_pnl:
                    warnings.append(f"Period '{period}' has no baseline data")
                continue
            base = self.baseline_pnl[period]
            baseline_pnl[period] = dict(base)
            pnl[period] = self.apply_period(base, active)

        tree_periods = [p for p in selected if p in self.baseline_pnl] if self.baseline_pnl else selected
        baseline_tree = {
            node_id: {p: amounts.get(p, 0.0) for p in tree_periods}
            for node_id, amounts in self.baseline_tree.items()
        }
        tree = self.apply_tree(active, tree_periods)

        return ScenarioResult(
            periods=[p for p in selected if p in pnl] or tree_periods,
            lever_values={lever.id: value for lever, value in active},
            pnl=pnl,
            baseline_pnl=baseline_pnl,
            tree=tree,
            baseline_tree=baseline_tree,
            warnings=warnings,
        )
