"""Excel export of a computed scenario."""
import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from ..aggregate.rollup import MARGIN_KEY, MARGIN_PCT_KEY
from ..config.models import DriverTree, ElasticityTable, PnLLineItem, ScenarioResult
from ..naming.convention import report_field_name

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="FF4472C4", end_color="FF4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFFFF", bold=True)
TOTAL_FILL = PatternFill(start_color="FFD9E1F2", end_color="FFD9E1F2", fill_type="solid")
NUMBER_FORMAT = "#,##0.00"

PNL_SHEET = "P&L Scenario"
TREE_SHEET = "Driver Tree"
ELASTICITY_SHEET = "Elasticities"


class ScenarioWorkbookWriter:
    """Writes baseline vs. scenario figures into a fresh workbook."""

    def __init__(self, output_path: str):
        self.output_path = Path(output_path)
        self.wb = None

    def generate(
        self,
        result: ScenarioResult,
        line_items: Sequence[PnLLineItem],
        tree: Optional[DriverTree] = None,
        elasticities: Optional[ElasticityTable] = None,
    ) -> str:
        """
        Build and save the export workbook.

        Steps:
        1. P&L sheet: Base / Scenario / Delta per period, then margin rows
        2. Driver tree sheet: indented nodes, Base / Scenario per period
        3. Elasticity sheet
        4. Auto-fit columns and save
        """
        self.wb = openpyxl.Workbook()
        self._write_pnl(self.wb.active, result, line_items)
        self._write_tree(self.wb.create_sheet(TREE_SHEET), result, tree or DriverTree())
        self._write_elasticities(
            self.wb.create_sheet(ELASTICITY_SHEET), elasticities or ElasticityTable()
        )

        for ws in self.wb.worksheets:
            self._autofit(ws)

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.wb.save(str(self.output_path))
        logger.info("Scenario workbook saved to %s", self.output_path)
        return str(self.output_path)

    @staticmethod
    def _header(ws, row: int, headers: List[str]) -> None:
        for col, header in enumerate(headers, 1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT

    @staticmethod
    def _number(ws, row: int, col: int, value: Any):
        cell = ws.cell(row=row, column=col, value=round(value, 4) if value is not None else None)
        cell.number_format = NUMBER_FORMAT
        return cell

    def _write_pnl(self, ws, result: ScenarioResult, line_items: Sequence[PnLLineItem]) -> None:
        ws.title = PNL_SHEET
        ws["A1"] = "Scenario P&L"
        ws["A1"].font = Font(size=14, bold=True)
        levers = ", ".join(f"{k} {v:+g}%" for k, v in result.lever_values.items()) or "none"
        ws["A2"] = f"Active levers: {levers}"

        headers = ["Line Item", "Field"]
        for period in result.periods:
            headers += [f"{period} Base", f"{period} Scenario", f"{period} Delta"]
        self._header(ws, 4, headers)

        rows = [(item.label, item.field_key, item.indent, item.is_total) for item in line_items]
        rows.append(("Margin", MARGIN_KEY, 0, True))
        rows.append(("Margin %", MARGIN_PCT_KEY, 0, False))

        for row_idx, (label, field_key, indent, is_total) in enumerate(rows, 5):
            label_cell = ws.cell(row=row_idx, column=1, value=label)
            label_cell.alignment = Alignment(indent=indent)
            ws.cell(row=row_idx, column=2, value=report_field_name(field_key))
            col = 3
            for period in result.periods:
                base = result.baseline_pnl.get(period, {}).get(field_key)
                scenario = result.pnl.get(period, {}).get(field_key)
                delta = None if base is None or scenario is None else scenario - base
                for value in (base, scenario, delta):
                    self._number(ws, row_idx, col, value)
                    col += 1
            if is_total:
                for c in range(1, col):
                    ws.cell(row=row_idx, column=c).fill = TOTAL_FILL
                    ws.cell(row=row_idx, column=c).font = Font(bold=True)

        if result.warnings:
            warn_start = len(rows) + 7
            ws.cell(row=warn_start, column=1, value="Warnings").font = Font(
                size=12, bold=True, color="FFFF0000"
            )
            for i, warning in enumerate(result.warnings):
                ws.cell(row=warn_start + 1 + i, column=1, value=warning)

    def _write_tree(self, ws, result: ScenarioResult, tree: DriverTree) -> None:
        headers = ["Node", "Level"]
        for period in result.periods:
            headers += [f"{period} Base", f"{period} Scenario"]
        self._header(ws, 1, headers)

        for row_idx, node in enumerate(tree.iter_nodes(), 2):
            depth = 0 if node.parent_id is None else max(node.level, 1)
            ws.cell(row=row_idx, column=1, value=node.name).alignment = Alignment(indent=depth)
            ws.cell(row=row_idx, column=2, value=node.level)
            col = 3
            for period in result.periods:
                self._number(ws, row_idx, col, result.baseline_tree.get(node.id, {}).get(period))
                self._number(ws, row_idx, col + 1, result.tree.get(node.id, {}).get(period))
                col += 2
            if not node.is_leaf:
                ws.cell(row=row_idx, column=1).font = Font(bold=True)

    def _write_elasticities(self, ws, elasticities: ElasticityTable) -> None:
        self._header(ws, 1, ["Lever", "Field", "Elasticity", "Samples", "Method"])
        for row_idx, entry in enumerate(elasticities.entries, 2):
            ws.cell(row=row_idx, column=1, value=entry.lever_id)
            ws.cell(row=row_idx, column=2, value=entry.field_key)
            ws.cell(row=row_idx, column=3, value=round(entry.coefficient, 4))
            ws.cell(row=row_idx, column=4, value=entry.sample_size)
            ws.cell(row=row_idx, column=5, value=entry.method)

    @staticmethod
    def _autofit(ws) -> None:
        for idx, col in enumerate(ws.columns, 1):
            max_length = max(len(str(cell.value or "")) for cell in col)
            ws.column_dimensions[get_column_letter(idx)].width = min(max_length + 2, 40)


def export_scenario_workbook(
    result: ScenarioResult,
    line_items: Sequence[PnLLineItem],
    output_path: str,
    tree: Optional[DriverTree] = None,
    elasticities: Optional[ElasticityTable] = None,
) -> str:
    """Export a scenario to Excel and return the output path."""
    return ScenarioWorkbookWriter(output_path).generate(result, line_items, tree, elasticities)
