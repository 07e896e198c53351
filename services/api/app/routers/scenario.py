"""Scenario endpoint: apply lever changes to a loaded dataset."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException

from shared.schemas.scenario import ScenarioLine, ScenarioRequest, ScenarioResponse, ScenarioTreeNode
from src.aggregate.rollup import MARGIN_KEY, MARGIN_PCT_KEY
from src.config.models import DriverTreeNode, ScenarioResult
from src.simulation.session import compute_scenario

from .datasets import load_session

logger = logging.getLogger(__name__)
router = APIRouter()


def _tree_out(node: DriverTreeNode, result: ScenarioResult) -> ScenarioTreeNode:
    return ScenarioTreeNode(
        id=node.id,
        name=node.name,
        level=node.level,
        parent_id=node.parent_id,
        baseline=result.baseline_tree.get(node.id, {}),
        scenario=result.tree.get(node.id, {}),
        children=[_tree_out(child, result) for child in node.children],
    )


def _line(label: str, field_key: str, indent: int, is_total: bool, result: ScenarioResult) -> ScenarioLine:
    baseline = {p: result.baseline_pnl.get(p, {}).get(field_key, 0.0) for p in result.periods}
    scenario = {p: result.pnl.get(p, {}).get(field_key, 0.0) for p in result.periods}
    return ScenarioLine(
        label=label,
        field_key=field_key,
        indent=indent,
        is_total=is_total,
        baseline=baseline,
        scenario=scenario,
        delta={p: scenario[p] - baseline[p] for p in result.periods},
    )


@router.post("/datasets/{upload_id}/scenario", response_model=ScenarioResponse)
async def run_scenario(upload_id: str, body: ScenarioRequest):
    """Recompute the scenario from baseline for the requested lever values.

    Lever values outside a lever's bounds are clamped; unknown lever ids
    are rejected.
    """
    session = load_session(upload_id)
    index = session.index

    unknown = [lever_id for lever_id in body.levers if index.config.lever(lever_id) is None]
    if unknown:
        raise HTTPException(
            status_code=422,
            detail={
                "code": "UNKNOWN_LEVER",
                "message": f"Unknown lever(s): {', '.join(unknown)}",
                "known": [lever.id for lever in index.config.levers],
            },
        )

    periods = None
    if body.periods:
        wanted = {p.strip() for p in body.periods}
        periods = [p for p in index.periods if p in wanted]
        missing = sorted(wanted - set(periods))
        if missing:
            logger.info("Scenario for %s ignores unknown periods: %s", upload_id, missing)

    result = compute_scenario(index, body.levers, periods)

    lines: List[ScenarioLine] = [
        _line(item.label, item.field_key, item.indent, item.is_total, result)
        for item in index.line_items
    ]
    lines.append(_line("Margin", MARGIN_KEY, 0, True, result))
    lines.append(_line("Margin %", MARGIN_PCT_KEY, 0, False, result))

    return ScenarioResponse(
        upload_id=upload_id,
        periods=result.periods,
        lever_values=result.lever_values,
        lines=lines,
        pnl=result.pnl,
        baseline_pnl=result.baseline_pnl,
        tree=[_tree_out(root, result) for root in session.dataset.tree.roots],
        warnings=result.warnings,
    )
