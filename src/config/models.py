"""
Driver Scenario - Configuration and Data Models
===============================================

Defines ALL Pydantic v2 models used across the scenario pipeline:

  Tree      : DriverTreeNode, DriverTree
  P&L       : PnLLineItem
  Levers    : Lever, ImpactMapping
  Elasticity: ElasticityEntry, ElasticityTable
  Dataset   : PeriodAmount, Dataset
  Scenario  : ScenarioResult
  Config    : EngineConfig

Convention
----------
- Fact records stay plain ``dict`` objects.  Their column naming is free-form
  and is only ever read through :mod:`src.mapping.resolver`.
- Per-period amounts are ``Dict[period, float]`` keyed by the trimmed period
  string exactly as it appears in the source records.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .levers import DEFAULT_LEVER_SPECS

logger = logging.getLogger(__name__)


class DatasetLoadError(RuntimeError):
    """Raised when a stored or uploaded dataset cannot be decoded as a whole."""


# ============================================================
# 1 / 2.  DriverTreeNode  &  DriverTree
# ============================================================


class DriverTreeNode(BaseModel):
    """One node in the business driver hierarchy.

    Attributes:
        id:        Stable identifier (``node-<n>``), unique within a tree.
        name:      Display name as read from the hierarchy sheet.
        level:     Hierarchy level taken from the ``Level N`` column.
        parent_id: Identifier of the owning node, ``None`` for roots.
        children:  Owned children in first-encounter order.
        amounts:   Baseline period -> aggregated amount.
    """

    id: str
    name: str
    level: int = Field(default=0, ge=0)
    parent_id: Optional[str] = None
    children: List["DriverTreeNode"] = Field(default_factory=list)
    amounts: Dict[str, float] = Field(default_factory=dict)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self) -> Iterator["DriverTreeNode"]:
        """Yield this node and every descendant, depth-first pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()


DriverTreeNode.model_rebuild()


class DriverTree(BaseModel):
    """A forest of :class:`DriverTreeNode` roots with lookup helpers."""

    roots: List[DriverTreeNode] = Field(default_factory=list)

    def iter_nodes(self) -> Iterator[DriverTreeNode]:
        for root in self.roots:
            yield from root.walk()

    def leaves(self) -> List[DriverTreeNode]:
        return [n for n in self.iter_nodes() if n.is_leaf]

    def get(self, node_id: str) -> Optional[DriverTreeNode]:
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None

    def find_by_name(self, name: str) -> List[DriverTreeNode]:
        """Return nodes whose name equals *name* (case-insensitive)."""
        target = name.strip().lower()
        return [n for n in self.iter_nodes() if n.name.strip().lower() == target]

    def index(self) -> Dict[str, DriverTreeNode]:
        return {n.id: n for n in self.iter_nodes()}

    @property
    def max_level(self) -> int:
        return max((n.level for n in self.iter_nodes()), default=0)

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    @classmethod
    def from_payload(cls, nodes: List[Dict[str, Any]]) -> "DriverTree":
        """Rebuild a tree from stored node dicts.

        Accepts both ``parentId``/``parent_id`` spellings, and either an
        ``amounts`` mapping or an ``accountingPeriods`` list of
        ``{"period", "value"}`` pairs.
        """
        return cls(roots=[_node_from_payload(n, None) for n in nodes or []])


def _node_from_payload(raw: Dict[str, Any], parent_id: Optional[str]) -> DriverTreeNode:
    if not isinstance(raw, dict):
        raise DatasetLoadError(f"Tree node must be an object, got {type(raw).__name__}")
    node_id = str(raw.get("id") or "")
    name = str(raw.get("name") or "").strip()
    if not node_id or not name:
        raise DatasetLoadError(f"Tree node is missing id or name: {raw!r}")

    amounts: Dict[str, float] = {}
    if isinstance(raw.get("amounts"), dict):
        amounts = {str(k): float(v) for k, v in raw["amounts"].items()}
    elif isinstance(raw.get("accountingPeriods"), list):
        for entry in raw["accountingPeriods"]:
            period = str(entry.get("period") or "").strip()
            if period:
                amounts[period] = amounts.get(period, 0.0) + float(entry.get("value") or 0)

    node = DriverTreeNode(
        id=node_id,
        name=name,
        level=int(raw.get("level") or 0),
        parent_id=raw.get("parentId", raw.get("parent_id", parent_id)),
        amounts=amounts,
    )
    node.children = [_node_from_payload(c, node.id) for c in raw.get("children") or []]
    return node


# ============================================================
# 3.  PnLLineItem
# ============================================================


class PnLLineItem(BaseModel):
    """A row of the profit-and-loss presentation.

    ``indent`` is 0 for section headers (which carry the declared section
    total), 1 for section-level rows and subtotals, 2 for detail rows.
    """

    model_config = ConfigDict(frozen=True)

    label: str
    field_key: str
    indent: int = Field(default=2, ge=0, le=2)
    is_total: bool = False
    section: Literal["revenue", "expense"] = "expense"


# ============================================================
# 4 / 5.  Lever  &  ImpactMapping
# ============================================================


class Lever(BaseModel):
    """A user-adjustable percentage input.

    Attributes:
        id:            Stable key used in lever-value mappings.
        name:          Display name; also tried first when resolving the
                       lever's historical value from fact records.
        field_name:    Canonical record field the lever directly drives.
        aliases:       Lower-case spellings matched against the naming
                       table's ``Report Naming`` column.
        min_value:     Lower bound (percent).
        max_value:     Upper bound (percent).
        unit:          Display unit, ``%`` in all current levers.
        current_value: Current percentage change.
    """

    id: str = Field(..., min_length=1)
    name: str
    field_name: str = ""
    aliases: List[str] = Field(default_factory=list)
    min_value: float = -50.0
    max_value: float = 50.0
    unit: str = "%"
    current_value: float = 0.0

    @model_validator(mode="after")
    def _check_bounds(self) -> "Lever":
        if self.min_value > self.max_value:
            raise ValueError(
                f"Lever {self.id!r}: min_value {self.min_value} exceeds max_value {self.max_value}"
            )
        self.current_value = self.clamp(self.current_value)
        return self

    def clamp(self, value: float) -> float:
        """Clamp *value* into ``[min_value, max_value]``."""
        return max(self.min_value, min(self.max_value, float(value)))

    def lookup_names(self) -> List[str]:
        """Names tried, in order, when resolving this lever from a record."""
        names = [self.name, self.field_name, *self.aliases]
        out: List[str] = []
        for n in names:
            if n and n not in out:
                out.append(n)
        return out


class ImpactMapping(BaseModel):
    """Lever id -> canonical measure fields it is declared to influence."""

    mapping: Dict[str, List[str]] = Field(default_factory=dict)

    def fields_for(self, lever_id: str) -> List[str]:
        return list(self.mapping.get(lever_id, []))

    def add(self, lever_id: str, field_key: str) -> None:
        fields = self.mapping.setdefault(lever_id, [])
        if field_key not in fields:
            fields.append(field_key)

    def is_empty(self) -> bool:
        return not any(self.mapping.values())


# ============================================================
# 6.  ElasticityEntry  &  ElasticityTable
# ============================================================


class ElasticityEntry(BaseModel):
    """Percent change in *field_key* per 1 % change in *lever_id*."""

    model_config = ConfigDict(frozen=True)

    lever_id: str
    field_key: str
    coefficient: float
    sample_size: int = 0
    method: Literal["cv_ratio", "correlation", "default"] = "default"


class ElasticityTable(BaseModel):
    """Dense ``(lever, field) -> coefficient`` lookup built once per load."""

    entries: List[ElasticityEntry] = Field(default_factory=list)

    def get(self, lever_id: str, field_key: str) -> Optional[float]:
        for entry in self.entries:
            if entry.lever_id == lever_id and entry.field_key == field_key:
                return entry.coefficient
        return None

    def for_lever(self, lever_id: str) -> Dict[str, float]:
        """Return ``field -> coefficient`` for one lever, in insertion order."""
        return {e.field_key: e.coefficient for e in self.entries if e.lever_id == lever_id}

    def __len__(self) -> int:
        return len(self.entries)


# ============================================================
# 7 / 8.  PeriodAmount  &  Dataset
# ============================================================


class PeriodAmount(BaseModel):
    """One ``(period, value)`` observation from an accounting fact sheet."""

    period: str
    value: float


class Dataset(BaseModel):
    """A fully parsed upload, owned by the session that loaded it.

    Attributes:
        tree:              Driver hierarchy.
        accounting_facts:  Driver name -> period observations.
        fact_records:      Transaction-style records (free-form columns).
        dimension_tables:  Table name -> id -> record.
        naming_records:    Rows of the naming-convention table.
        metadata:          Upload metadata (file name, counts, quarters).
    """

    tree: DriverTree = Field(default_factory=DriverTree)
    accounting_facts: Dict[str, List[PeriodAmount]] = Field(default_factory=dict)
    fact_records: List[Dict[str, Any]] = Field(default_factory=list)
    dimension_tables: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    naming_records: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "Dataset":
        """Decode a stored dataset payload, all or nothing.

        Both the camelCase storage keys (``tree``, ``accountingFacts``,
        ``factMarginRecords``, ``dimensionTables``,
        ``namingConventionRecords``) and snake_case field names are accepted.
        Absent sections default to empty.

        Raises:
            DatasetLoadError: if any section is malformed.
        """
        if not isinstance(payload, dict):
            raise DatasetLoadError("Dataset payload must be a JSON object")

        def pick(*keys: str, default: Any) -> Any:
            for key in keys:
                if payload.get(key) is not None:
                    return payload[key]
            return default

        try:
            tree_raw = pick("tree", default=[])
            if isinstance(tree_raw, dict):
                tree = DriverTree.model_validate(tree_raw)
            else:
                tree = DriverTree.from_payload(tree_raw)

            facts_raw = pick("accountingFacts", "accounting_facts", default=[])
            if isinstance(facts_raw, dict):
                facts_items = list(facts_raw.items())
            else:
                facts_items = [tuple(pair) for pair in facts_raw]
            accounting_facts = {
                str(name): [PeriodAmount.model_validate(p) for p in periods]
                for name, periods in facts_items
            }

            records = pick("factMarginRecords", "fact_records", default=[])
            naming = pick("namingConventionRecords", "naming_records", default=[])
            if not isinstance(records, list) or not isinstance(naming, list):
                raise DatasetLoadError("Fact and naming records must be lists")

            return cls(
                tree=tree,
                accounting_facts=accounting_facts,
                fact_records=[r for r in records if isinstance(r, dict)],
                dimension_tables=pick("dimensionTables", "dimension_tables", default={}),
                naming_records=[r for r in naming if isinstance(r, dict)],
                metadata=pick("metadata", default={}),
            )
        except DatasetLoadError:
            raise
        except (ValidationError, TypeError, ValueError) as e:
            raise DatasetLoadError(f"Malformed dataset payload: {e}") from e

    def to_payload(self) -> Dict[str, Any]:
        """Serialise into the camelCase storage shape read by :meth:`from_payload`."""
        return {
            "tree": [root.model_dump(by_alias=True) for root in self.tree.roots],
            "accountingFacts": [
                [name, [p.model_dump() for p in periods]]
                for name, periods in self.accounting_facts.items()
            ],
            "factMarginRecords": self.fact_records,
            "dimensionTables": self.dimension_tables,
            "namingConventionRecords": self.naming_records,
            "metadata": self.metadata,
        }


# ============================================================
# 9.  ScenarioResult
# ============================================================


class ScenarioResult(BaseModel):
    """Perturbed P&L and tree amounts paired with their baselines.

    Never persisted: always derivable from (baseline, elasticities, lever
    values, periods).
    """

    periods: List[str] = Field(default_factory=list)
    lever_values: Dict[str, float] = Field(default_factory=dict)
    pnl: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    baseline_pnl: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    tree: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    baseline_tree: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    def pnl_delta(self, period: str, field_key: str) -> float:
        scenario = self.pnl.get(period, {}).get(field_key, 0.0)
        base = self.baseline_pnl.get(period, {}).get(field_key, 0.0)
        return scenario - base

    def tree_delta(self, node_id: str, period: str) -> float:
        scenario = self.tree.get(node_id, {}).get(period, 0.0)
        base = self.baseline_tree.get(node_id, {}).get(period, 0.0)
        return scenario - base

    def is_flat(self) -> bool:
        """True when no P&L value or tree amount differs from baseline."""
        for period in self.periods:
            if self.pnl.get(period) != self.baseline_pnl.get(period):
                return False
        return self.tree == self.baseline_tree


# ============================================================
# 10.  EngineConfig
# ============================================================


def default_levers() -> List[Lever]:
    return [Lever(**spec) for spec in DEFAULT_LEVER_SPECS]


class EngineConfig(BaseModel):
    """Tunable settings for the resolution, elasticity and scenario layers.

    Attributes:
        levers:                Lever configuration surface.
        elasticity_min:        Lower clamp for estimated elasticities.
        elasticity_max:        Upper clamp for estimated elasticities.
        default_elasticity:    Pass-through value when data is insufficient.
        correlation_threshold: ``|r|`` above which correlation is used as
                               the elasticity when the CV ratio is undefined.
        period_field:          Record column holding the period key.
    """

    levers: List[Lever] = Field(default_factory=default_levers)
    elasticity_min: float = Field(default=0.1, ge=0.0)
    elasticity_max: float = Field(default=2.0, gt=0.0)
    default_elasticity: float = 1.0
    correlation_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    period_field: str = "quarter"

    @field_validator("period_field")
    @classmethod
    def _lower_period_field(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("period_field must not be empty")
        return v

    @model_validator(mode="after")
    def _check_consistency(self) -> "EngineConfig":
        if self.elasticity_min > self.elasticity_max:
            raise ValueError("elasticity_min must not exceed elasticity_max")
        ids = [lever.id for lever in self.levers]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate lever ids: {ids}")
        return self

    def lever(self, lever_id: str) -> Optional[Lever]:
        for lever in self.levers:
            if lever.id == lever_id:
                return lever
        return None


def load_engine_config(config_path: Optional[str] = None) -> EngineConfig:
    """Load :class:`EngineConfig` from a YAML or JSON file.

    ``None`` yields the defaults.  ``.yaml``/``.yml`` files are read with
    PyYAML, anything else as JSON.
    """
    if not config_path:
        return EngineConfig()
    path = Path(config_path)
    if path.suffix in (".yaml", ".yml"):
        import yaml

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    logger.info("Loaded engine config from %s", path)
    return EngineConfig.model_validate(data)
