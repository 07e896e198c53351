"""Scenario request and response schemas."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ScenarioRequest(BaseModel):
    """Lever changes to apply to a loaded dataset."""

    levers: Dict[str, float] = Field(
        default_factory=dict,
        description="Lever id -> percent change (e.g., {'AvgAUM': 10})",
    )
    periods: Optional[List[str]] = Field(
        default=None, description="Periods to compute; all periods when omitted"
    )


class LeverOut(BaseModel):
    """A lever with its bounds and declared impacts."""

    id: str
    name: str
    field_name: str = ""
    min_value: float = -50.0
    max_value: float = 50.0
    unit: str = "%"
    current_value: float = 0.0
    impacted_fields: List[str] = Field(default_factory=list)


class ElasticityOut(BaseModel):
    """One entry of the elasticity table."""

    lever_id: str
    field_key: str
    coefficient: float
    sample_size: int = 0
    method: str = "default"


class ScenarioLine(BaseModel):
    """A P&L line paired with its baseline so deltas can be shown."""

    label: str
    field_key: str
    indent: int = 2
    is_total: bool = False
    baseline: Dict[str, float] = Field(default_factory=dict)
    scenario: Dict[str, float] = Field(default_factory=dict)
    delta: Dict[str, float] = Field(default_factory=dict)


class ScenarioTreeNode(BaseModel):
    """A driver-tree node with baseline and scenario amounts."""

    id: str
    name: str
    level: int = 0
    parent_id: Optional[str] = None
    baseline: Dict[str, float] = Field(default_factory=dict)
    scenario: Dict[str, float] = Field(default_factory=dict)
    children: List["ScenarioTreeNode"] = Field(default_factory=list)


ScenarioTreeNode.model_rebuild()


class ScenarioResponse(BaseModel):
    """Full scenario output for the presentation layer."""

    upload_id: str
    periods: List[str] = Field(default_factory=list)
    lever_values: Dict[str, float] = Field(default_factory=dict)
    lines: List[ScenarioLine] = Field(default_factory=list)
    pnl: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    baseline_pnl: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    tree: List[ScenarioTreeNode] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
