"""Shared fixtures for API integration tests.

Uses FastAPI TestClient (in-memory, no network) so tests run
without a live server or external dependencies.
"""

from __future__ import annotations

import io
import os
import sys

import pytest

# Ensure project root is on sys.path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Force local filesystem storage (no Supabase needed for tests)
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_KEY", None)


FACT_COLUMNS = [
    "Quarter", "TradingVolume_$mm", "Headcount_FTE",
    "Rev_TransactionalFees_$mm", "TotalRevenue_$mm",
    "Exp_CompBenefits_$mm", "TotalExpense_$mm", "Margin_$mm",
]

FACT_ROWS = [
    ["Q1 2024", 1000, 50, 200, 1000, 500, 700, 300],
    ["Q2 2024", 1100, 55, 220, 1100, 550, 770, 330],
]

NAMING_COLUMNS = ["Fact_Margin Naming", "Category", "P&L Impact", "Lever Impact", "Report Naming"]

NAMING_ROWS = [
    ["Rev_TransactionalFees_$mm", "Financial Result", "Revenue", None, "Rev Transaction Fees"],
    ["TotalRevenue_$mm", "Financial Result", "Revenue", None, "TotalRevenue"],
    ["Exp_CompBenefits_$mm", "Financial Result", "Expense", None, "Exp_CompBenefits"],
    ["TotalExpense_$mm", "Financial Result", "Expense", None, "Total Expense"],
    ["TradingVolume_$mm", "Driver", None, "Rev_TransactionalFees_$mm", "Trading Volume"],
    ["Headcount_FTE", "Driver", None, "Exp_CompBenefits_$mm", "Headcount"],
]

TREE = [
    {
        "id": "n0", "name": "Margin", "level": 1,
        "children": [
            {"id": "n1", "name": "Rev_TransactionalFees_$mm", "level": 2},
            {"id": "n2", "name": "Exp_CompBenefits_$mm", "level": 2},
        ],
    }
]


@pytest.fixture(autouse=True)
def _reset_storage(tmp_path, monkeypatch):
    """Point storage at a temp dir and clear cached sessions before each test."""
    from core import storage
    from services.api.app import db

    monkeypatch.setattr(storage, "LOCAL_DATASET_DIR", str(tmp_path / "store"))
    monkeypatch.setattr(storage, "SUPABASE_URL", "")
    monkeypatch.setattr(storage, "_supabase_client", None)
    db._mem_sessions.clear()
    db._engine_config = None
    yield
    db._mem_sessions.clear()


@pytest.fixture()
def client():
    """FastAPI TestClient — no network, no server startup needed."""
    from fastapi.testclient import TestClient

    from services.api.app.main import app

    return TestClient(app)


@pytest.fixture()
def dataset_payload():
    return {
        "tree": TREE,
        "factMarginRecords": [dict(zip(FACT_COLUMNS, row)) for row in FACT_ROWS],
        "namingConventionRecords": [dict(zip(NAMING_COLUMNS, row)) for row in NAMING_ROWS],
        "dimensionTables": {"Dim_Product": {"P001": {"ProductID": "P001"}}},
    }


@pytest.fixture()
def sample_upload(client, dataset_payload):
    """Create a dataset through the JSON endpoint and return its upload id."""
    resp = client.post("/v1/datasets", json={"data": dataset_payload, "fileName": "sample.xlsx"})
    assert resp.status_code == 201
    return resp.json()["upload_id"]


@pytest.fixture()
def workbook_bytes():
    """The same dataset as an in-memory .xlsx workbook."""
    import openpyxl

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Driver Tree"
    ws.append(["Level 1", "Level 2"])
    ws.append(["Margin", "Rev_TransactionalFees_$mm"])
    ws.append(["Margin", "Exp_CompBenefits_$mm"])

    ws = wb.create_sheet("Fact_Margin")
    ws.append(FACT_COLUMNS)
    for row in FACT_ROWS:
        ws.append(row)

    ws = wb.create_sheet("NamingConvention")
    ws.append(NAMING_COLUMNS)
    for row in NAMING_ROWS:
        ws.append(row)

    buf = io.BytesIO()
    wb.save(buf)
    wb.close()
    return buf.getvalue()
