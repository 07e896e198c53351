"""Derived index and scenario session.

:class:`DerivedIndex` holds everything computed once per dataset load (P&L
layout, impact mapping, elasticities, baselines).  It is rebuilt only when
the dataset or naming configuration changes and never mutated by scenario
application.  :class:`ScenarioSession` owns the mutable lever vector and
period selection and recomputes the scenario from scratch on every change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..aggregate.periods import sort_periods
from ..aggregate.rollup import FactAggregator, TreeAmounts, apply_amounts, attach_accounting_facts
from ..config.models import (
    Dataset,
    ElasticityTable,
    EngineConfig,
    ImpactMapping,
    Lever,
    PnLLineItem,
    ScenarioResult,
)
from ..naming.convention import build_impact_mapping, build_pnl_line_items
from .elasticity import ElasticityEstimator
from .engine import ScenarioEngine

logger = logging.getLogger(__name__)


@dataclass
class DerivedIndex:
    """Read-only tables derived from (dataset, config)."""
    dataset: Dataset
    config: EngineConfig
    line_items: List[PnLLineItem] = field(default_factory=list)
    mapping: ImpactMapping = field(default_factory=ImpactMapping)
    elasticities: ElasticityTable = field(default_factory=ElasticityTable)
    periods: List[str] = field(default_factory=list)
    baseline_pnl: Dict[str, Dict[str, float]] = field(default_factory=dict)
    baseline_tree: TreeAmounts = field(default_factory=dict)
    tree_source: str = "none"

    @classmethod
    def build(cls, dataset: Dataset, config: Optional[EngineConfig] = None) -> "DerivedIndex":
        config = config or EngineConfig()
        index = cls(dataset=dataset, config=config)

        index.line_items = build_pnl_line_items(dataset.naming_records)
        index.mapping = build_impact_mapping(dataset.naming_records, config.levers)

        aggregator = FactAggregator(dataset.fact_records, config.period_field)
        index.periods = aggregator.periods
        index.baseline_pnl = aggregator.aggregate_pnl(index.line_items)

        pnl_fields = [item.field_key for item in index.line_items]
        index.elasticities = ElasticityEstimator(config).estimate(
            dataset.fact_records, config.levers, index.mapping, pnl_fields
        )

        if len(dataset.tree) == 0:
            index.baseline_tree = {}
        elif dataset.fact_records:
            index.baseline_tree = aggregator.aggregate_tree(dataset.tree)
            apply_amounts(dataset.tree, index.baseline_tree)
            index.tree_source = "fact_records"
        elif dataset.accounting_facts:
            index.baseline_tree = attach_accounting_facts(dataset.tree, dataset.accounting_facts)
            index.tree_source = "accounting_facts"
        if not index.periods:
            index.periods = sort_periods(
                p for amounts in index.baseline_tree.values() for p in amounts
            )
        logger.info(
            "Derived index: %d line items, %d elasticities, %d periods, tree from %s",
            len(index.line_items), len(index.elasticities), len(index.periods), index.tree_source,
        )
        return index

    def engine(self) -> ScenarioEngine:
        return ScenarioEngine(
            line_items=self.line_items,
            baseline_pnl=self.baseline_pnl,
            elasticities=self.elasticities,
            levers=self.config.levers,
            tree=self.dataset.tree,
            baseline_tree=self.baseline_tree,
        )


def compute_scenario(
    index: DerivedIndex,
    lever_values: Mapping[str, float],
    periods: Optional[Sequence[str]] = None,
) -> ScenarioResult:
    """Pure entry point: (index, lever values, periods) -> ScenarioResult."""
    return index.engine().compute(lever_values, periods)


class ScenarioSession:
    """One analyst's scenario over one loaded dataset."""

    def __init__(self, dataset: Dataset, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.index = DerivedIndex.build(dataset, self.config)
        self._engine = self.index.engine()
        self.lever_values: Dict[str, float] = {lever.id: 0.0 for lever in self.config.levers}
        self.selected_periods: List[str] = list(self.index.periods)

    @property
    def dataset(self) -> Dataset:
        return self.index.dataset

    @property
    def levers(self) -> List[Lever]:
        return [
            lever.model_copy(update={"current_value": self.lever_values.get(lever.id, 0.0)})
            for lever in self.config.levers
        ]

    def set_lever(self, lever_id: str, value: float) -> float:
        """Set one lever (clamped to its bounds); returns the stored value."""
        lever = self.config.lever(lever_id)
        if lever is None:
            raise KeyError(lever_id)
        self.lever_values[lever_id] = lever.clamp(value)
        return self.lever_values[lever_id]

    def set_levers(self, values: Mapping[str, float]) -> None:
        for lever_id, value in values.items():
            self.set_lever(lever_id, value)

    def reset_levers(self) -> None:
        self.lever_values = {lever.id: 0.0 for lever in self.config.levers}

    def select_periods(self, periods: Optional[Sequence[str]]) -> List[str]:
        """Restrict to known periods, in chronological order; empty selects all."""
        if not periods:
            self.selected_periods = list(self.index.periods)
        else:
            wanted = {str(p).strip() for p in periods}
            self.selected_periods = [p for p in self.index.periods if p in wanted]
        return self.selected_periods

    def reload_naming(self, naming_records: List[Dict[str, Any]]) -> None:
        """Replace the naming table and rebuild the derived index."""
        dataset = self.index.dataset.model_copy(update={"naming_records": naming_records})
        self.index = DerivedIndex.build(dataset, self.config)
        self._engine = self.index.engine()

    def recompute(self) -> ScenarioResult:
        return self._engine.compute(self.lever_values, self.selected_periods)
