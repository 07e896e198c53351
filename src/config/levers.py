"""
Driver Scenario - Lever Configuration
=====================================

Lookup tables that define the default what-if levers and how they are
recognised in uploaded data.

* **DEFAULT_LEVER_SPECS** -- constructor kwargs for
  :class:`src.config.models.Lever`.  ``field_name`` is the canonical record
  column the lever drives directly.  ``aliases`` serve twice: as extra
  names when resolving the lever's value from a fact record, and as
  phrases matched against the naming table's ``Report Naming`` column.

* **LEVER_BOUNDS** -- the shared ``[min, max]`` percentage range.

Report Naming matching: a multi-word alias matches when it is contained in
the cell text; a single-word alias must equal it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple


LEVER_BOUNDS: Tuple[float, float] = (-50.0, 50.0)


# ====================================================================
# Default levers
# ====================================================================

DEFAULT_LEVER_SPECS: List[Dict[str, Any]] = [
    {
        "id": "AvgAUM",
        "name": "Avg AUM",
        "field_name": "AUM_$mm",
        "aliases": ["avg aum", "aum"],
    },
    {
        "id": "TradingVolume",
        "name": "Trading Volume",
        "field_name": "TradingVolume_$mm",
        "aliases": ["trading volume", "tradingvolume"],
    },
    {
        "id": "HeadcountFTE",
        "name": "Headcount FTE",
        "field_name": "Headcount_FTE",
        "aliases": ["headcount fte", "headcount", "fte"],
    },
    {
        "id": "AcquisitionCostPerClient",
        "name": "Acquisition Cost Per Client",
        "field_name": "AcquisitionCostPerClient",
        "aliases": [
            "acquisition cost per client",
            "acquisition cost",
            "acquisition",
            "clientacquisitionspend",
        ],
    },
]

for _spec in DEFAULT_LEVER_SPECS:
    _spec.setdefault("min_value", LEVER_BOUNDS[0])
    _spec.setdefault("max_value", LEVER_BOUNDS[1])
    _spec.setdefault("unit", "%")


def lever_ids() -> List[str]:
    """Return the ids of the default levers in display order."""
    return [spec["id"] for spec in DEFAULT_LEVER_SPECS]


def alias_matches(alias: str, report_naming: str) -> bool:
    """Match one lever alias against a lower-cased ``Report Naming`` cell."""
    alias = alias.strip().lower()
    text = report_naming.strip().lower()
    if not alias or not text:
        return False
    if " " in alias:
        return alias in text
    return alias == text
