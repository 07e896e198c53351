"""Dataset upload and inspection endpoints."""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from openpyxl.utils.exceptions import InvalidFileException

from shared.schemas.datasets import (
    DatasetCreateRequest,
    DatasetMetadata,
    DatasetSummary,
    DatasetUploadResponse,
    PnLResponse,
    PnLRow,
    TreeResponse,
)
from shared.schemas.scenario import ElasticityOut, LeverOut
from src.aggregate.rollup import MARGIN_KEY, MARGIN_PCT_KEY, node_trend
from src.config.models import Dataset, DatasetLoadError
from src.ingest.workbook_reader import read_workbook
from src.naming.convention import report_field_name
from src.simulation.session import ScenarioSession

from .. import db

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_UPLOAD_BYTES = 20 * 1024 * 1024  # 20MB limit
WORKBOOK_EXTENSIONS = (".xlsx", ".xlsm")


def load_session(upload_id: str) -> ScenarioSession:
    """Fetch a dataset session or raise the matching HTTP error."""
    try:
        session = db.get_session(upload_id)
    except DatasetLoadError as e:
        logger.warning("Dataset %s failed to load: %s", upload_id, e)
        raise HTTPException(
            status_code=422,
            detail={"code": "INVALID_DATASET", "message": str(e)},
        )
    if session is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "DATASET_NOT_FOUND", "message": f"Dataset {upload_id} not found"},
        )
    return session


def _metadata(session: ScenarioSession) -> DatasetMetadata:
    return DatasetMetadata.model_validate(session.dataset.metadata)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@router.post("/datasets", status_code=201, response_model=DatasetUploadResponse)
async def create_dataset(body: DatasetCreateRequest):
    """Store a dataset that was already parsed client-side."""
    try:
        dataset = Dataset.from_payload(body.data)
    except DatasetLoadError as e:
        raise HTTPException(
            status_code=422,
            detail={"code": "INVALID_DATASET", "message": str(e)},
        )
    upload_id, metadata = db.create_dataset(dataset, body.file_name)
    return DatasetUploadResponse(upload_id=upload_id, metadata=DatasetMetadata.model_validate(metadata))


@router.post("/datasets/upload", status_code=201, response_model=DatasetUploadResponse)
async def upload_workbook(
    file: UploadFile = File(...),
    file_name: Optional[str] = Form(None),
):
    """Upload an Excel workbook and parse it into a dataset."""
    filename = file_name or file.filename or "uploaded_file.xlsx"
    if not filename.lower().endswith(WORKBOOK_EXTENSIONS):
        raise HTTPException(
            status_code=415,
            detail={"code": "UNSUPPORTED_FILE", "message": "Only .xlsx / .xlsm workbooks are accepted"},
        )
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail={"code": "FILE_TOO_LARGE", "message": "File must be 20MB or smaller"},
        )

    suffix = os.path.splitext(filename)[1].lower()
    with tempfile.TemporaryDirectory() as tmp_dir:
        tmp_path = os.path.join(tmp_dir, f"upload{suffix}")
        with open(tmp_path, "wb") as fh:
            fh.write(content)
        try:
            dataset = read_workbook(tmp_path)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as e:
            logger.warning("Workbook %s could not be parsed: %s", filename, e)
            raise HTTPException(
                status_code=422,
                detail={"code": "INVALID_DATASET", "message": f"Could not read workbook: {e}"},
            )

    upload_id, metadata = db.create_dataset(dataset, filename)
    return DatasetUploadResponse(upload_id=upload_id, metadata=DatasetMetadata.model_validate(metadata))


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@router.get("/datasets/{upload_id}", response_model=DatasetSummary)
async def get_dataset(upload_id: str):
    session = load_session(upload_id)
    index = session.index
    return DatasetSummary(
        upload_id=upload_id,
        metadata=_metadata(session),
        periods=index.periods,
        record_count=len(session.dataset.fact_records),
        tree_node_count=len(session.dataset.tree),
        line_item_count=len(index.line_items),
        elasticity_count=len(index.elasticities),
        dimension_tables=sorted(session.dataset.dimension_tables),
        tree_source=index.tree_source,
    )


@router.get("/datasets/{upload_id}/tree", response_model=TreeResponse)
async def get_tree(upload_id: str):
    """Driver tree with rolled-up baseline amounts and first-to-last trends."""
    session = load_session(upload_id)
    index = session.index
    trends = {
        node_id: node_trend(amounts) for node_id, amounts in index.baseline_tree.items()
    }
    return TreeResponse(
        upload_id=upload_id,
        periods=index.periods,
        roots=[root.model_dump() for root in session.dataset.tree.roots],
        trends=trends,
    )


@router.get("/datasets/{upload_id}/pnl", response_model=PnLResponse)
async def get_pnl(upload_id: str):
    """Baseline P&L in display order, followed by margin rows."""
    session = load_session(upload_id)
    index = session.index
    rows = []
    for item in index.line_items:
        rows.append(PnLRow(
            label=item.label,
            field_key=item.field_key,
            display_name=report_field_name(item.field_key),
            indent=item.indent,
            is_total=item.is_total,
            section=item.section,
            values={p: index.baseline_pnl.get(p, {}).get(item.field_key, 0.0) for p in index.periods},
        ))
    for label, key in (("Margin", MARGIN_KEY), ("Margin %", MARGIN_PCT_KEY)):
        rows.append(PnLRow(
            label=label,
            field_key=key,
            display_name=label,
            indent=0,
            is_total=key == MARGIN_KEY,
            section="margin",
            values={p: index.baseline_pnl.get(p, {}).get(key, 0.0) for p in index.periods},
        ))
    return PnLResponse(upload_id=upload_id, periods=index.periods, rows=rows)


@router.get("/datasets/{upload_id}/levers")
async def get_levers(upload_id: str):
    """Lever configuration with the fields each lever impacts."""
    session = load_session(upload_id)
    return {
        "upload_id": upload_id,
        "levers": [
            LeverOut(
                id=lever.id,
                name=lever.name,
                field_name=lever.field_name,
                min_value=lever.min_value,
                max_value=lever.max_value,
                unit=lever.unit,
                current_value=lever.current_value,
                impacted_fields=session.index.mapping.fields_for(lever.id),
            ).model_dump()
            for lever in session.levers
        ],
    }


@router.get("/datasets/{upload_id}/elasticities")
async def get_elasticities(upload_id: str):
    session = load_session(upload_id)
    return {
        "upload_id": upload_id,
        "elasticities": [
            ElasticityOut(**entry.model_dump()).model_dump()
            for entry in session.index.elasticities.entries
        ],
    }


@router.delete("/datasets/{upload_id}")
async def delete_dataset(upload_id: str):
    if not db.delete_dataset(upload_id):
        raise HTTPException(
            status_code=404,
            detail={"code": "DATASET_NOT_FOUND", "message": f"Dataset {upload_id} not found"},
        )
    return {"deleted": True, "upload_id": upload_id}
