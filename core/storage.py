"""Dataset storage helper backed by Supabase Storage.

Supports two modes:
- Supabase Storage when SUPABASE_URL + SUPABASE_SERVICE_KEY are set
- Local filesystem fallback for development

Datasets are stored as one JSON document per upload id::

    {"uploadId": ..., "uploadedAt": ..., "metadata": {...}, "data": {...}}

where ``data`` is the payload read by ``Dataset.from_payload``.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from src.config.models import Dataset, DatasetLoadError
from src.aggregate.rollup import record_period

logger = logging.getLogger(__name__)

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY", "")
STORAGE_BUCKET = os.environ.get("STORAGE_BUCKET", "datasets")
LOCAL_DATASET_DIR = os.environ.get("LOCAL_DATASET_DIR", "/tmp/driver_scenario_datasets")

_supabase_client = None


def _get_supabase():
    """Lazy-init Supabase client."""
    global _supabase_client
    if _supabase_client is not None:
        return _supabase_client
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        return None
    try:
        from supabase import create_client
        _supabase_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
        logger.info("Supabase client initialized")
        return _supabase_client
    except ImportError:
        logger.warning("supabase package not installed, using local storage")
        return None
    except Exception as e:
        logger.warning("Failed to init Supabase: %s, using local storage", e)
        return None


def _use_supabase() -> bool:
    return _get_supabase() is not None


def _storage_path(upload_id: str) -> str:
    return f"datasets/{upload_id}.json"


def _local_path(upload_id: str) -> Path:
    return Path(LOCAL_DATASET_DIR) / _storage_path(upload_id)


def generate_upload_id() -> str:
    return f"upload_{uuid.uuid4().hex}"


def build_metadata(
    records: Iterable[Mapping[str, Any]],
    file_name: Optional[str] = None,
    period_field: str = "quarter",
) -> Dict[str, Any]:
    """Upload metadata: record count and upper-cased, sorted quarter range."""
    records = list(records)
    quarters = set()
    for record in records:
        period = record_period(record, period_field)
        if period:
            quarters.add(period.upper())
    return {
        "fileName": file_name or "uploaded_file.xlsx",
        "recordCount": len(records),
        "quarterRange": sorted(quarters),
    }


def save_dataset(upload_id: str, dataset: Dataset, metadata: Optional[Dict[str, Any]] = None) -> str:
    """Persist *dataset* under *upload_id* and return its storage path."""
    document = {
        "uploadId": upload_id,
        "uploadedAt": datetime.now(timezone.utc).isoformat(),
        "metadata": metadata if metadata is not None else dict(dataset.metadata),
        "data": dataset.to_payload(),
    }
    content = json.dumps(document, default=str).encode("utf-8")
    storage_path = _storage_path(upload_id)

    if _use_supabase():
        client = _get_supabase()
        client.storage.from_(STORAGE_BUCKET).upload(
            path=storage_path,
            file=content,
            file_options={"content-type": "application/json", "upsert": "true"},
        )
        logger.info("Saved dataset to Supabase: %s", storage_path)
    else:
        local_path = _local_path(upload_id)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(content)
        logger.info("Saved dataset locally: %s", local_path)
    return storage_path


def _read_document(upload_id: str) -> Optional[bytes]:
    if _use_supabase():
        client = _get_supabase()
        try:
            return client.storage.from_(STORAGE_BUCKET).download(_storage_path(upload_id))
        except Exception as e:
            logger.info("Dataset %s not found in Supabase: %s", upload_id, e)
            return None
    local_path = _local_path(upload_id)
    if local_path.exists():
        return local_path.read_bytes()
    return None


def load_document(upload_id: str) -> Optional[Dict[str, Any]]:
    """Return the raw stored document, or ``None`` when missing.

    Raises:
        DatasetLoadError: if the stored bytes are not a JSON object.
    """
    raw = _read_document(upload_id)
    if raw is None:
        return None
    try:
        document = json.loads(raw)
    except ValueError as e:
        raise DatasetLoadError(f"Stored dataset {upload_id} is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise DatasetLoadError(f"Stored dataset {upload_id} is not a JSON object")
    return document


def load_dataset(upload_id: str) -> Optional[Dataset]:
    """Load a dataset by upload id, all or nothing.

    Returns ``None`` when no dataset is stored under *upload_id*.

    Raises:
        DatasetLoadError: if the stored dataset cannot be decoded.
    """
    document = load_document(upload_id)
    if document is None:
        return None
    data = document.get("data", document)
    if not isinstance(data, dict):
        raise DatasetLoadError(f"Stored dataset {upload_id} has no data object")
    payload = dict(data)
    payload["metadata"] = {
        **(document.get("metadata") or {}),
        "uploadId": upload_id,
        "uploadedAt": document.get("uploadedAt"),
    }
    dataset = Dataset.from_payload(payload)
    logger.info("Loaded dataset %s (%d records)", upload_id, len(dataset.fact_records))
    return dataset


def list_datasets() -> List[str]:
    """Upload ids of every stored dataset."""
    if _use_supabase():
        client = _get_supabase()
        entries = client.storage.from_(STORAGE_BUCKET).list("datasets")
        return sorted(e["name"][:-5] for e in entries if e.get("name", "").endswith(".json"))
    local_dir = Path(LOCAL_DATASET_DIR) / "datasets"
    if not local_dir.exists():
        return []
    return sorted(p.stem for p in local_dir.glob("*.json"))


def delete_dataset(upload_id: str) -> bool:
    """Delete a stored dataset."""
    if _use_supabase():
        client = _get_supabase()
        client.storage.from_(STORAGE_BUCKET).remove([_storage_path(upload_id)])
        return True
    local_path = _local_path(upload_id)
    if local_path.exists():
        local_path.unlink()
        return True
    return False
