"""Dataset ingestion module — read scenario workbooks and stored datasets.

Public API
----------
.. autofunction:: read_dataset
.. autofunction:: read_workbook
.. autoclass:: SheetTable
"""
from .base import SheetTable
from .reader import read_dataset
from .workbook_reader import read_workbook

__all__ = [
    "read_dataset",
    "read_workbook",
    "SheetTable",
]
