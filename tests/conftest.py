"""Shared fixtures for the Driver Scenario test suite.

Provides a small two-quarter dataset whose drivers and P&L fields move in
proportion (so estimated elasticities come out at 1.0), plus a matching
workbook on disk.
"""

import pytest
import openpyxl

from src.config.models import (
    Dataset,
    ElasticityEntry,
    ElasticityTable,
    EngineConfig,
    PnLLineItem,
)


# ---------------------------------------------------------------------------
# Raw records
# ---------------------------------------------------------------------------

FACT_COLUMNS = [
    "Quarter", "ProductID", "TradingVolume_$mm", "AUM_$mm", "Headcount_FTE",
    "Rev_TransactionalFees_$mm", "Rev_CustodySafekeeping_$mm", "TotalRevenue_$mm",
    "Exp_CompBenefits_$mm", "Exp_TechData_$mm", "TotalExpense_$mm",
    "Margin_$mm", "MarginPct",
]

FACT_ROWS = [
    ["Q1 2024", "P001", 1000, 5000, 50, 200, 800, 1000, 500, 200, 700, 300, 0.3],
    ["Q2 2024", "P001", 1100, 5500, 55, 220, 880, 1100, 550, 220, 770, 330, 0.3],
]

NAMING_COLUMNS = ["Fact_Margin Naming", "Category", "P&L Impact", "Lever Impact", "Report Naming"]

NAMING_ROWS = [
    ["Rev_TransactionalFees_$mm", "Financial Result", "Revenue", None, "Rev Transaction Fees"],
    ["Rev_CustodySafekeeping_$mm", "Financial Result", "Revenue", None, "Rev CustodySafekeeping"],
    ["TotalRevenue_$mm", "Financial Result", "Revenue", None, "TotalRevenue"],
    ["Exp_CompBenefits_$mm", "Financial Result", "Expense", None, "Exp_CompBenefits"],
    ["Exp_TechData_$mm", "Financial Result", "Expense", None, "Exp_Tech and Data"],
    ["TotalExpense_$mm", "Financial Result", "Expense", None, "Total Expense"],
    ["Margin_$mm", "Financial Result", "Margin", None, "Margin"],
    ["TradingVolume_$mm", "Driver", None, "Rev_TransactionalFees_$mm", "Trading Volume"],
    ["AUM_$mm", "Driver", None, "Rev_CustodySafekeeping_$mm", "Avg AUM"],
    ["Headcount_FTE", "Driver", None, "Exp_CompBenefits_$mm", "Headcount"],
]


def _records(columns, rows):
    return [dict(zip(columns, row)) for row in rows]


@pytest.fixture
def fact_records():
    return _records(FACT_COLUMNS, FACT_ROWS)


@pytest.fixture
def naming_records():
    return _records(NAMING_COLUMNS, NAMING_ROWS)


@pytest.fixture
def tree_payload():
    """Margin -> Revenue (fees, custody) / Expense (comp)."""
    return [
        {
            "id": "n0", "name": "Margin", "level": 1,
            "children": [
                {
                    "id": "n1", "name": "Revenue", "level": 2,
                    "children": [
                        {"id": "n2", "name": "Rev_TransactionalFees_$mm", "level": 3},
                        {"id": "n3", "name": "Rev_CustodySafekeeping_$mm", "level": 3},
                    ],
                },
                {
                    "id": "n4", "name": "Expense", "level": 2,
                    "children": [
                        {"id": "n5", "name": "Exp_CompBenefits_$mm", "level": 3},
                    ],
                },
            ],
        }
    ]


@pytest.fixture
def dataset_payload(fact_records, naming_records, tree_payload):
    """Storage-shaped (camelCase) dataset payload."""
    return {
        "tree": tree_payload,
        "accountingFacts": [],
        "factMarginRecords": fact_records,
        "dimensionTables": {"Dim_Product": {"P001": {"ProductID": "P001", "ProductName": "Custody"}}},
        "namingConventionRecords": naming_records,
    }


@pytest.fixture
def sample_dataset(dataset_payload):
    return Dataset.from_payload(dataset_payload)


@pytest.fixture
def engine_config():
    return EngineConfig()


# ---------------------------------------------------------------------------
# Engine-level fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def simple_line_items():
    return [
        PnLLineItem(label="Revenue", field_key="TotalRevenue_$mm", indent=0, is_total=True, section="revenue"),
        PnLLineItem(label="Rev_TransactionalFees_$mm", field_key="Rev_TransactionalFees_$mm", section="revenue"),
        PnLLineItem(label="Rev_CustodySafekeeping_$mm", field_key="Rev_CustodySafekeeping_$mm", section="revenue"),
        PnLLineItem(label="Expenses", field_key="TotalExpense_$mm", indent=0, is_total=True, section="expense"),
        PnLLineItem(label="Exp_CompBenefits_$mm", field_key="Exp_CompBenefits_$mm", section="expense"),
        PnLLineItem(label="Exp_TechData_$mm", field_key="Exp_TechData_$mm", section="expense"),
    ]


@pytest.fixture
def simple_baseline():
    return {
        "Q1 2024": {
            "TotalRevenue_$mm": 1000.0,
            "Rev_TransactionalFees_$mm": 200.0,
            "Rev_CustodySafekeeping_$mm": 800.0,
            "TotalExpense_$mm": 700.0,
            "Exp_CompBenefits_$mm": 500.0,
            "Exp_TechData_$mm": 200.0,
            "Margin": 300.0,
            "Margin_$mm": 300.0,
            "MarginPct": 30.0,
        }
    }


@pytest.fixture
def unit_elasticities():
    return ElasticityTable(entries=[
        ElasticityEntry(lever_id="TradingVolume", field_key="Rev_TransactionalFees_$mm", coefficient=1.0),
        ElasticityEntry(lever_id="HeadcountFTE", field_key="Exp_CompBenefits_$mm", coefficient=1.0),
    ])


# ---------------------------------------------------------------------------
# Workbook fixtures
# ---------------------------------------------------------------------------

def _build_scenario_workbook():
    """Workbook with every sheet the reader understands.

    Sheets: "Driver Tree" (Level 1..3), "Fact_Margin", "Accounting Fact"
    (long layout), "NamingConvention", "Dim_Product".
    """
    wb = openpyxl.Workbook()

    ws = wb.active
    ws.title = "Driver Tree"
    ws.append(["Level 1", "Level 2", "Level 3"])
    ws.append(["Margin", "Revenue", "Rev_TransactionalFees_$mm"])
    ws.append(["Margin", "Revenue", "Rev_CustodySafekeeping_$mm"])
    ws.append(["Margin", "Expense", "Exp_CompBenefits_$mm"])

    ws = wb.create_sheet("Fact_Margin")
    ws.append(FACT_COLUMNS)
    for row in FACT_ROWS:
        ws.append(row)

    ws = wb.create_sheet("Accounting Fact")
    ws.append(["Driver", "Period", "Accounted Amount"])
    ws.append(["Rev_TransactionalFees_$mm", "Q1 2024", 200])
    ws.append(["Rev_TransactionalFees_$mm", "Q2 2024", 220])

    ws = wb.create_sheet("NamingConvention")
    ws.append(NAMING_COLUMNS)
    for row in NAMING_ROWS:
        ws.append(row)

    ws = wb.create_sheet("Dim_Product")
    ws.append(["ProductID", "ProductName"])
    ws.append(["P001", "Custody"])
    return wb


@pytest.fixture
def sample_workbook_path(tmp_path):
    """Create the scenario workbook on disk and return its path as a string."""
    wb = _build_scenario_workbook()
    file_path = tmp_path / "scenario.xlsx"
    wb.save(str(file_path))
    wb.close()
    return str(file_path)
