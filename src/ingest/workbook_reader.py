"""Read a scenario workbook (.xlsx) into a :class:`Dataset` with openpyxl.

Expected sheets (located by exact name, then by case-insensitive substring):

* ``Driver Tree``       -- hierarchy, ``Level N`` columns or one indented column
* ``Fact_Margin``       -- transaction-style fact records with a ``Quarter`` column
* ``Accounting Fact``   -- per-driver period amounts (long or wide layout)
* ``NamingConvention``  -- naming table
* ``Dim_*`` / ``DIM_*`` -- dimension lookup tables

Every sheet is optional; absent ones yield empty sections.
"""
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import load_workbook

from ..config.models import Dataset, DriverTree, PeriodAmount
from ..drivertree.builder import build_driver_tree
from ..extract.normalizer import coerce_number, normalize_period
from .base import SheetTable

logger = logging.getLogger(__name__)

SHEET_RULES: Dict[str, Dict[str, List[str]]] = {
    "tree": {"exact": ["Driver Tree"], "contains": ["driver"]},
    "facts": {"exact": ["Fact_Margin"], "contains": ["fact_margin", "fact margin"]},
    "accounting": {"exact": ["Accounting Fact"], "contains": ["accounting"]},
    "naming": {"exact": ["NamingConvention"], "contains": ["naming"]},
}
DIMENSION_PREFIXES = ("dim_", "dim ")


def _cell_value(value: Any) -> Any:
    """JSON-friendly cell: dates become ISO strings, text is stripped."""
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == datetime.min.time() else value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    return value


def load_sheets(file_path: str) -> Dict[str, SheetTable]:
    """Load every worksheet's cell values, keyed by sheet name."""
    wb = load_workbook(file_path, read_only=True, data_only=True)
    try:
        sheets = {}
        for ws in wb.worksheets:
            rows = [[_cell_value(c) for c in row] for row in ws.iter_rows(values_only=True)]
            sheets[ws.title] = SheetTable(name=ws.title, rows=rows)
        return sheets
    finally:
        wb.close()


def find_sheet(sheets: Dict[str, SheetTable], role: str) -> Optional[SheetTable]:
    rule = SHEET_RULES[role]
    for name in rule["exact"]:
        if name in sheets:
            return sheets[name]
    for title, table in sheets.items():
        lowered = title.lower()
        if lowered.startswith(DIMENSION_PREFIXES):
            continue
        if any(token in lowered for token in rule["contains"]):
            return table
    return None


def find_dimension_sheets(sheets: Dict[str, SheetTable]) -> List[SheetTable]:
    return [t for title, t in sheets.items() if title.lower().startswith(DIMENSION_PREFIXES)]


# ------------------------------------------------------------------
# Accounting facts
# ------------------------------------------------------------------

def _first_column(header: Sequence[str], predicate, default: int = -1) -> int:
    for i, h in enumerate(header):
        if predicate(h.lower()):
            return i
    return default


def parse_accounting_facts(table: SheetTable) -> Dict[str, List[PeriodAmount]]:
    """Parse the accounting-fact sheet into ``driver -> [PeriodAmount]``.

    Long layout: identifier + ``Period`` + ``Accounted Amount`` columns, one
    row per observation.  Wide layout: one amount column per period, the
    header text being the period label.
    """
    header = table.header
    if not header:
        return {}

    id_col = _first_column(
        header,
        lambda h: any(t in h for t in ("id", "name", "driver", "node")) and "product" not in h,
        default=0,
    )
    period_col = _first_column(header, lambda h: "period" in h)
    amount_col = _first_column(header, lambda h: "accounted" in h and "amount" in h)

    facts: Dict[str, List[PeriodAmount]] = {}
    if period_col >= 0 and amount_col >= 0:
        for row in table.data_rows:
            cells = list(row) + [None] * (len(header) - len(row))
            driver, period, amount = cells[id_col], cells[period_col], cells[amount_col]
            if driver in (None, "") or period in (None, ""):
                continue
            value = coerce_number(amount)
            if value is None:
                continue
            facts.setdefault(str(driver).strip(), []).append(
                PeriodAmount(period=normalize_period(period), value=value)
            )
        logger.info("Parsed %d accounting-fact drivers (long layout)", len(facts))
        return facts

    amount_cols = [i for i, h in enumerate(header) if "accounted" in h.lower() and "amount" in h.lower()]
    if not amount_cols:
        amount_cols = [
            i for i, h in enumerate(header)
            if any(t in h.lower() for t in ("amount", "value", "$"))
        ]
    if not amount_cols:
        amount_cols = [i for i in range(len(header)) if i != id_col]

    for row in table.data_rows:
        cells = list(row) + [None] * (len(header) - len(row))
        driver = cells[id_col]
        if driver in (None, "") or not str(driver).strip():
            continue
        periods = []
        for i in amount_cols:
            value = coerce_number(cells[i])
            if value is None:
                continue
            periods.append(PeriodAmount(period=header[i] or f"Period {i}", value=value))
        if periods:
            facts[str(driver).strip()] = periods
    logger.info("Parsed %d accounting-fact drivers (wide layout)", len(facts))
    return facts


def parse_dimension_table(table: SheetTable) -> Dict[str, Dict[str, Any]]:
    """Key records by the first header containing ``id`` (else the first column)."""
    header = table.header
    if not header:
        return {}
    key_col = header[_first_column(header, lambda h: "id" in h, default=0)]
    out: Dict[str, Dict[str, Any]] = {}
    for record in table.records():
        key = record.get(key_col)
        if key is None:
            continue
        out[str(key).strip()] = record
    return out


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------

def read_workbook(file_path: str) -> Dataset:
    """Read a scenario workbook into a :class:`Dataset`.

    Raises:
        FileNotFoundError: if *file_path* does not exist.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    sheets = load_sheets(str(path))
    logger.info("Loaded workbook %s with sheets %s", path.name, list(sheets))

    tree_sheet = find_sheet(sheets, "tree")
    tree = build_driver_tree(tree_sheet.rows) if tree_sheet else DriverTree()
    if tree_sheet is None:
        logger.warning("No driver tree sheet in %s", path.name)

    facts_sheet = find_sheet(sheets, "facts")
    accounting_sheet = find_sheet(sheets, "accounting")
    naming_sheet = find_sheet(sheets, "naming")
    if naming_sheet is None:
        logger.warning("No naming convention sheet in %s; P&L will be empty", path.name)

    dimension_tables = {}
    for table in find_dimension_sheets(sheets):
        dimension_tables[table.name] = parse_dimension_table(table)

    return Dataset(
        tree=tree,
        accounting_facts=parse_accounting_facts(accounting_sheet) if accounting_sheet else {},
        fact_records=facts_sheet.records() if facts_sheet else [],
        dimension_tables=dimension_tables,
        naming_records=naming_sheet.records() if naming_sheet else [],
        metadata={"fileName": path.name},
    )
