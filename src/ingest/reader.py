"""Main dispatcher for dataset ingestion.

Auto-detects file type by extension and delegates to the appropriate
reader.

Supported formats
-----------------
* **.xlsx / .xlsm** -- via :func:`~src.ingest.workbook_reader.read_workbook`
* **.json**         -- a stored dataset payload, via
  :meth:`~src.config.models.Dataset.from_payload`

Usage::

    from src.ingest.reader import read_dataset

    dataset = read_dataset("path/to/model.xlsx")
    print(len(dataset.fact_records))
"""
import json
import logging
from pathlib import Path

from ..config.models import Dataset

logger = logging.getLogger(__name__)

_EXTENSION_MAP = {
    ".xlsx": "workbook",
    ".xlsm": "workbook",
    ".json": "json",
}


def read_dataset(file_path: str) -> Dataset:
    """Read a dataset file and return the parsed :class:`Dataset`.

    Parameters
    ----------
    file_path : str
        Path to a workbook or a stored JSON dataset.

    Raises
    ------
    FileNotFoundError
        If *file_path* does not exist.
    ValueError
        If the file extension is not supported.
    DatasetLoadError
        If a JSON payload is malformed.
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {file_path}")

    suffix = path.suffix.lower()
    file_type = _EXTENSION_MAP.get(suffix)
    if file_type is None:
        supported = ", ".join(sorted(_EXTENSION_MAP.keys()))
        raise ValueError(
            f"Unsupported file type '{suffix}' for: {file_path}. "
            f"Supported extensions: {supported}"
        )

    logger.info("Reading %s dataset: %s", file_type, file_path)

    if file_type == "workbook":
        from .workbook_reader import read_workbook
        return read_workbook(file_path)

    with open(path, encoding="utf-8") as f:
        payload = json.load(f)
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        data = dict(payload["data"])
        data.setdefault("metadata", payload.get("metadata") or {})
        payload = data
    return Dataset.from_payload(payload)
