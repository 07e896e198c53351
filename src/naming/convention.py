"""Naming-convention table: P&L layout, lever impacts and report names.

The naming table is the only input format interpreted strictly.  Its
columns are located case-insensitively on the first row:

    Fact_Margin Naming   canonical record field name
    Category             only "Financial Result" rows enter the P&L
    P&L Impact           revenue / expense / margin
    Lever Impact         field(s) a lever moves
    Report Naming        display phrase matched against lever aliases

Missing columns never raise; they yield an empty layout or mapping.
"""
import re
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config.levers import alias_matches
from ..config.models import ImpactMapping, Lever, PnLLineItem

logger = logging.getLogger(__name__)

NAMING_COLUMN_ALIASES: Dict[str, List[str]] = {
    "naming": [
        "Fact_Margin Naming", "Fact Margin Naming", "Naming", "Field Name",
        "Fact_Margin Field Name",
    ],
    "category": ["Category"],
    "pnl_impact": ["P&L Impact", "P and L Impact", "PL Impact"],
    "lever_impact": ["Lever Impact", "Lever", "Driver Impact"],
    "report_naming": ["Report Naming", "Report Naming Column", "Report Field Name"],
}

FINANCIAL_RESULT = "financial result"

TOTAL_REVENUE_FIELD = "TotalRevenue_$mm"
TOTAL_EXPENSE_FIELD = "TotalExpense_$mm"
TOTAL_COMPENSATION_FIELD = "TotalCompensation_$mm"
COMPENSATION_DETAIL_FIELDS = ("BaseCompensation_$mm", "VariableCompensation_$mm")

# Fact_Margin field name -> report display name
REPORT_FIELD_NAMES: Dict[str, str] = {
    "TradingVolume_$mm": "Trading Volume",
    "TxnFeeRate_bps": "Rev Transaction Fees",
    "AUM_$mm": "AUM",
    "CashBalances_$mm": "Cash Balance",
    "NIM_bps_annual": "NIM",
    "MarketReturn_pct": "Market Return Percent",
    "Rev_TransactionalFees_$mm": "Rev Transaction Fees",
    "Rev_CustodySafekeeping_$mm": "Rev CustodySafekeeping",
    "Rev_AdminFundExpense_$mm": "AdminFundExpense",
    "Rev_PerformanceFees_$mm": "PerformanceFees",
    "Rev_InterestRateRevenue_$mm": "Interest Rate Revenue",
    "TotalRevenue_$mm": "TotalRevenue",
    "Headcount_FTE": "Headcount",
    "Exp_CompBenefits_$mm": "Exp_CompBenefits",
    "Exp_TechData_$mm": "Exp_Tech and Data",
    "Exp_SalesMktg_$mm": "Exp_SalesMktg",
    "Exp_OpsProfSvcs_$mm": "Exp_OpsProfSvcs",
    "TotalExpense_$mm": "Total Expense",
    "Margin_$mm": "Margin",
    "MarginPct": "MarginPct",
}

_IMPACT_SPLIT = re.compile(r"[,;\n]")


def find_column(records: Sequence[Mapping[str, Any]], candidates: Sequence[str]) -> Optional[str]:
    """Return the first-row key equal (case-insensitive) to a candidate, in candidate order."""
    if not records:
        return None
    keys = list(records[0].keys())
    for candidate in candidates:
        for key in keys:
            if str(key).strip().lower() == candidate.lower():
                return key
    return None


def resolve_columns(records: Sequence[Mapping[str, Any]]) -> Dict[str, Optional[str]]:
    """Locate every known naming-table column; absent ones map to ``None``."""
    return {role: find_column(records, names) for role, names in NAMING_COLUMN_ALIASES.items()}


def _cell(record: Mapping[str, Any], column: Optional[str]) -> str:
    if column is None:
        return ""
    value = record.get(column)
    return "" if value is None else str(value).strip()


def report_field_name(field_name: str) -> str:
    """Display name for a canonical field: exact, then containment, else itself."""
    if field_name in REPORT_FIELD_NAMES:
        return REPORT_FIELD_NAMES[field_name]
    lowered = field_name.lower()
    for fact_field, report in REPORT_FIELD_NAMES.items():
        candidate = fact_field.lower()
        if candidate in lowered or lowered in candidate:
            return report
    return field_name


def _classify(field_name: str, impact: str) -> str:
    """Return ``revenue``, ``expense`` or ``margin`` for one naming row."""
    for section in ("revenue", "expense", "margin"):
        if section in impact:
            return section
    lowered = field_name.lower()
    if "rev" in lowered:
        return "revenue"
    return "expense"


def build_pnl_line_items(records: Sequence[Mapping[str, Any]]) -> List[PnLLineItem]:
    """Build the P&L layout from the naming table.

    Layout::

        Revenue              TotalRevenue_$mm     indent 0, total
          <revenue rows>                          indent 2
        Expenses             TotalExpense_$mm     indent 0, total
          <expense rows>                          indent 2
          Total Compensation TotalCompensation    indent 1, total
            Base / Variable compensation          indent 2

    Declared totals are never detail rows.  Margin rows are read directly
    from the facts and are not part of the layout.
    """
    if not records:
        return []

    columns = resolve_columns(records)
    naming_col = columns["naming"]
    if naming_col is None:
        logger.warning("Naming convention: Fact_Margin naming column not found")
        return []

    category_col = columns["category"]
    financial = [
        r for r in records
        if category_col is None or _cell(r, category_col).lower() == FINANCIAL_RESULT
    ]
    if not financial:
        logger.warning("Naming convention: no rows with Category = 'Financial Result'")
        return []

    revenue: List[PnLLineItem] = []
    expense: List[PnLLineItem] = []
    compensation: Dict[str, PnLLineItem] = {}
    total_compensation: Optional[PnLLineItem] = None
    comp_fields = {f.lower() for f in COMPENSATION_DETAIL_FIELDS}
    seen = set()

    for record in financial:
        field_name = _cell(record, naming_col)
        lowered = field_name.lower()
        if not field_name or lowered in seen:
            continue
        seen.add(lowered)
        if lowered in (TOTAL_REVENUE_FIELD.lower(), TOTAL_EXPENSE_FIELD.lower()):
            continue

        if lowered == TOTAL_COMPENSATION_FIELD.lower():
            total_compensation = PnLLineItem(
                label="Total Compensation", field_key=field_name,
                indent=1, is_total=True, section="expense",
            )
            continue
        if lowered in comp_fields:
            compensation[lowered] = PnLLineItem(
                label=field_name, field_key=field_name, indent=2, section="expense",
            )
            continue

        section = _classify(field_name, _cell(record, columns["pnl_impact"]).lower())
        if section == "revenue":
            revenue.append(PnLLineItem(label=field_name, field_key=field_name, section="revenue"))
        elif section == "expense":
            expense.append(PnLLineItem(label=field_name, field_key=field_name, section="expense"))

    items: List[PnLLineItem] = []
    if revenue:
        items.append(PnLLineItem(
            label="Revenue", field_key=TOTAL_REVENUE_FIELD,
            indent=0, is_total=True, section="revenue",
        ))
        items.extend(revenue)
    if expense:
        items.append(PnLLineItem(
            label="Expenses", field_key=TOTAL_EXPENSE_FIELD,
            indent=0, is_total=True, section="expense",
        ))
        items.extend(expense)
        if total_compensation is not None:
            items.append(total_compensation)
            for name in COMPENSATION_DETAIL_FIELDS:
                if name.lower() in compensation:
                    items.append(compensation[name.lower()])

    logger.info(
        "Built %d P&L line items (%d revenue, %d expense)", len(items), len(revenue), len(expense)
    )
    return items


def split_impacts(value: str) -> List[str]:
    """Split a ``Lever Impact`` cell holding one or more field names."""
    return [part.strip() for part in _IMPACT_SPLIT.split(value) if part.strip()]


def match_lever(report_naming: str, levers: Sequence[Lever]) -> Optional[Lever]:
    """Return the first lever with an alias matching the ``Report Naming`` text."""
    for lever in levers:
        for alias in [lever.name.lower(), *lever.aliases]:
            if alias_matches(alias, report_naming):
                return lever
    return None


def build_impact_mapping(
    records: Sequence[Mapping[str, Any]], levers: Sequence[Lever]
) -> ImpactMapping:
    """Map lever ids to the fields named in the ``Lever Impact`` column."""
    mapping = ImpactMapping(mapping={lever.id: [] for lever in levers})
    if not records:
        return mapping

    columns = resolve_columns(records)
    report_col, impact_col = columns["report_naming"], columns["lever_impact"]
    if report_col is None or impact_col is None:
        logger.warning(
            "Naming convention: Report Naming / Lever Impact columns not found (have %s)",
            list(records[0].keys()),
        )
        return mapping

    for record in records:
        report_naming = _cell(record, report_col)
        impacts = split_impacts(_cell(record, impact_col))
        if not report_naming or not impacts:
            continue
        lever = match_lever(report_naming, levers)
        if lever is None:
            logger.debug("Report Naming '%s' matches no lever", report_naming)
            continue
        for field_key in impacts:
            mapping.add(lever.id, field_key)

    for lever in levers:
        if not mapping.fields_for(lever.id):
            logger.warning("Lever '%s' has no impacted fields in the naming table", lever.id)
    return mapping
