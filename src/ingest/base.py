"""Base classes for workbook ingestion."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class SheetTable:
    """Raw cell values of one worksheet, header row first."""
    name: str
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def header(self) -> List[str]:
        if not self.rows:
            return []
        return ["" if c is None else str(c).strip() for c in self.rows[0]]

    @property
    def data_rows(self) -> List[List[Any]]:
        """Rows after the header that hold at least one non-blank cell."""
        return [r for r in self.rows[1:] if any(not _is_blank(c) for c in r)]

    @property
    def has_content(self) -> bool:
        return bool(self.data_rows)

    def records(self) -> List[Dict[str, Any]]:
        """Data rows as dicts keyed by header; unnamed columns are dropped.

        Empty string cells become ``None`` so blank and missing read alike.
        """
        header = self.header
        out = []
        for row in self.data_rows:
            record: Dict[str, Any] = {}
            for i, key in enumerate(header):
                if not key:
                    continue
                value = row[i] if i < len(row) else None
                record[key] = None if _is_blank(value) else value
            out.append(record)
        return out
