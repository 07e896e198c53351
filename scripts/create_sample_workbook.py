#!/usr/bin/env python3
"""
Generate a sample scenario workbook for local development and demos.

Creates:
  - samples/sample_dataset.xlsx

Sheets:
  Driver Tree       Level 1 / Level 2 / Level 3 hierarchy
  Fact_Margin       one row per (quarter, product)
  Accounting Fact   long layout: Driver / Period / Accounted Amount
  NamingConvention  P&L layout and lever impacts
  Dim_Product       product lookup
"""

from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
ROOT_DIR = Path(__file__).resolve().parent.parent
SAMPLES_DIR = ROOT_DIR / "samples"

QUARTERS = ["Q1 2024", "Q2 2024", "Q3 2024", "Q4 2024"]
PRODUCTS = [
    ("P001", "Institutional Custody", 1.0),
    ("P002", "Wealth Platform", 0.6),
]

HEADER_FILL = PatternFill(patternType="solid", fgColor="FF4472C4")
HEADER_FONT = Font(color="FFFFFFFF", bold=True)

TREE_ROWS = [
    ("Margin", "Revenue", "Rev_TransactionalFees_$mm"),
    ("Margin", "Revenue", "Rev_CustodySafekeeping_$mm"),
    ("Margin", "Expense", "Exp_CompBenefits_$mm"),
    ("Margin", "Expense", "Exp_TechData_$mm"),
    ("Volume", "AUM_$mm", None),
    ("Volume", "TradingVolume_$mm", None),
]

NAMING_ROWS = [
    # field, category, P&L impact, lever impact, report naming
    ("Rev_TransactionalFees_$mm", "Financial Result", "Revenue", "", "Rev Transaction Fees"),
    ("Rev_CustodySafekeeping_$mm", "Financial Result", "Revenue", "", "Rev CustodySafekeeping"),
    ("TotalRevenue_$mm", "Financial Result", "Revenue", "", "TotalRevenue"),
    ("Exp_CompBenefits_$mm", "Financial Result", "Expense", "", "Exp_CompBenefits"),
    ("Exp_TechData_$mm", "Financial Result", "Expense", "", "Exp_Tech and Data"),
    ("TotalExpense_$mm", "Financial Result", "Expense", "", "Total Expense"),
    ("Margin_$mm", "Financial Result", "Margin", "", "Margin"),
    ("AUM_$mm", "Driver", "", "Rev_CustodySafekeeping_$mm", "Avg AUM"),
    ("TradingVolume_$mm", "Driver", "", "Rev_TransactionalFees_$mm", "Trading Volume"),
    ("Headcount_FTE", "Driver", "", "Exp_CompBenefits_$mm", "Headcount"),
    ("ClientAcquisitionSpend_$mm", "Driver", "", "Exp_TechData_$mm", "Acquisition Cost"),
]


def _write_table(ws, headers, rows):
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
    for r, row in enumerate(rows, 2):
        for c, value in enumerate(row, 1):
            ws.cell(row=r, column=c, value=value)
    for idx in range(1, len(headers) + 1):
        ws.column_dimensions[get_column_letter(idx)].width = 24


def fact_rows():
    """Deterministic fact records: volumes grow each quarter, fees follow volumes."""
    rows = []
    for q, quarter in enumerate(QUARTERS):
        growth = 1 + 0.05 * q
        for product_id, _, scale in PRODUCTS:
            aum = round(12000 * scale * growth, 2)
            volume = round(3000 * scale * (1 + 0.08 * q), 2)
            headcount = round(40 * scale + 2 * q, 1)
            acquisition = round(1.5 * scale + 0.1 * q, 2)
            txn_fees = round(volume * 0.004, 4)
            custody = round(aum * 0.0011, 4)
            comp = round(headcount * 0.06, 4)
            tech = round(2.0 * scale + acquisition * 0.5, 4)
            revenue = round(txn_fees + custody, 4)
            expense = round(comp + tech, 4)
            margin = round(revenue - expense, 4)
            rows.append((
                quarter, product_id, aum, volume, headcount, acquisition,
                txn_fees, custody, revenue, comp, tech, expense, margin,
                round(margin / revenue, 4) if revenue else 0.0,
            ))
    return rows


def create_workbook() -> Workbook:
    wb = Workbook()

    ws = wb.active
    ws.title = "Driver Tree"
    _write_table(ws, ["Level 1", "Level 2", "Level 3"], TREE_ROWS)

    facts = fact_rows()
    _write_table(
        wb.create_sheet("Fact_Margin"),
        [
            "Quarter", "ProductID", "AUM_$mm", "TradingVolume_$mm", "Headcount_FTE",
            "ClientAcquisitionSpend_$mm", "Rev_TransactionalFees_$mm",
            "Rev_CustodySafekeeping_$mm", "TotalRevenue_$mm", "Exp_CompBenefits_$mm",
            "Exp_TechData_$mm", "TotalExpense_$mm", "Margin_$mm", "MarginPct",
        ],
        facts,
    )

    accounting = []
    for row in facts:
        quarter = row[0]
        accounting.append(("Rev_TransactionalFees_$mm", quarter, row[6]))
        accounting.append(("Exp_CompBenefits_$mm", quarter, row[9]))
    _write_table(wb.create_sheet("Accounting Fact"), ["Driver", "Period", "Accounted Amount"], accounting)

    _write_table(
        wb.create_sheet("NamingConvention"),
        ["Fact_Margin Naming", "Category", "P&L Impact", "Lever Impact", "Report Naming"],
        NAMING_ROWS,
    )

    _write_table(
        wb.create_sheet("Dim_Product"),
        ["ProductID", "ProductName"],
        [(pid, name) for pid, name, _ in PRODUCTS],
    )
    return wb


def main():
    SAMPLES_DIR.mkdir(parents=True, exist_ok=True)
    path = SAMPLES_DIR / "sample_dataset.xlsx"
    create_workbook().save(str(path))
    print(f"[OK] Created {path}")
    print(f"  → {len(QUARTERS)} quarters x {len(PRODUCTS)} products")


if __name__ == "__main__":
    main()
