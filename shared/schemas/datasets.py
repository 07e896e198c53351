"""Dataset upload and inspection schemas."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class DatasetCreateRequest(BaseModel):
    """A dataset already parsed by the client, in storage shape."""

    model_config = ConfigDict(populate_by_name=True)

    data: Dict[str, Any] = Field(
        ...,
        description="tree / accountingFacts / factMarginRecords / dimensionTables / "
                    "namingConventionRecords",
    )
    file_name: Optional[str] = Field(default=None, alias="fileName")


class DatasetMetadata(BaseModel):
    """Upload metadata stored next to the dataset."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(default="uploaded_file.xlsx", alias="fileName")
    record_count: int = Field(default=0, alias="recordCount")
    quarter_range: List[str] = Field(default_factory=list, alias="quarterRange")


class DatasetUploadResponse(BaseModel):
    """Response after a dataset is persisted."""

    upload_id: str
    metadata: DatasetMetadata


class DatasetSummary(BaseModel):
    """Overview of a loaded dataset and its derived tables."""

    upload_id: str
    metadata: DatasetMetadata
    periods: List[str] = Field(default_factory=list)
    record_count: int = 0
    tree_node_count: int = 0
    line_item_count: int = 0
    elasticity_count: int = 0
    dimension_tables: List[str] = Field(default_factory=list)
    tree_source: str = "none"


class PnLRow(BaseModel):
    """One P&L line with its per-period baseline values."""

    label: str
    field_key: str
    display_name: str = ""
    indent: int = 2
    is_total: bool = False
    section: Literal["revenue", "expense", "margin"] = "expense"
    values: Dict[str, float] = Field(default_factory=dict)


class PnLResponse(BaseModel):
    """Baseline P&L for every period."""

    upload_id: str
    periods: List[str] = Field(default_factory=list)
    rows: List[PnLRow] = Field(default_factory=list)


class TreeResponse(BaseModel):
    """Driver tree with baseline amounts on every node."""

    upload_id: str
    periods: List[str] = Field(default_factory=list)
    roots: List[Dict[str, Any]] = Field(default_factory=list)
    trends: Dict[str, Optional[float]] = Field(
        default_factory=dict, description="node id -> first-to-last period % change"
    )
