"""Dataset session layer.

Datasets are persisted through ``core.storage`` (Supabase Storage or the
local filesystem fallback).  Each loaded dataset is wrapped in a
``ScenarioSession`` whose derived index (P&L layout, impact mapping,
elasticities, baselines) is cached in memory, keyed by upload id.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Tuple

from core import storage
from src.config.models import Dataset, EngineConfig, load_engine_config
from src.simulation.session import ScenarioSession

logger = logging.getLogger(__name__)

ENGINE_CONFIG_PATH = os.environ.get("ENGINE_CONFIG_PATH", "")

# ---------------------------------------------------------------------------
# In-memory caches
# ---------------------------------------------------------------------------

_mem_sessions: Dict[str, ScenarioSession] = {}
_engine_config: Optional[EngineConfig] = None


def get_engine_config() -> EngineConfig:
    """Engine configuration, loaded once from ENGINE_CONFIG_PATH (defaults when unset)."""
    global _engine_config
    if _engine_config is None:
        _engine_config = load_engine_config(ENGINE_CONFIG_PATH or None)
        logger.info("Engine config loaded (%d levers)", len(_engine_config.levers))
    return _engine_config


# ===================================================================
# Datasets
# ===================================================================

def create_dataset(dataset: Dataset, file_name: Optional[str] = None) -> Tuple[str, Dict[str, Any]]:
    """Persist a dataset and cache its session. Returns (upload_id, metadata)."""
    config = get_engine_config()
    upload_id = storage.generate_upload_id()
    metadata = storage.build_metadata(dataset.fact_records, file_name, config.period_field)
    storage.save_dataset(upload_id, dataset, metadata)

    session_dataset = dataset.model_copy(update={"metadata": {**metadata, "uploadId": upload_id}})
    _mem_sessions[upload_id] = ScenarioSession(session_dataset, config)
    logger.info("Dataset %s created (%d records)", upload_id, metadata["recordCount"])
    return upload_id, metadata


def get_session(upload_id: str) -> Optional[ScenarioSession]:
    """Cached session for *upload_id*, loading from storage on first use.

    Returns ``None`` when no dataset is stored under the id.

    Raises:
        DatasetLoadError: if the stored dataset cannot be decoded.
    """
    session = _mem_sessions.get(upload_id)
    if session is not None:
        return session
    dataset = storage.load_dataset(upload_id)
    if dataset is None:
        return None
    session = ScenarioSession(dataset, get_engine_config())
    _mem_sessions[upload_id] = session
    return session


def delete_dataset(upload_id: str) -> bool:
    _mem_sessions.pop(upload_id, None)
    return storage.delete_dataset(upload_id)
