"""Excel export of classified rows."""

from __future__ import annotations

from collections import Counter
from io import BytesIO
from typing import Any, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from payeebatch.application.ports import ReportGenerator
from payeebatch.domain.payees.row_mapping import OUTPUT_COLUMNS, ExpandedRow


class ExcelStyles:
    """Style definitions for the results workbook."""

    HEADER_BG = "1E3A5F"
    OUTPUT_HEADER_BG = "0D9488"
    ALT_ROW_BG = "F9FAFB"
    REVIEW_BG = "FEF3C7"

    HEADER_FONT = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
    BODY_FONT = Font(name="Calibri", size=10)
    LABEL_FONT = Font(name="Calibri", size=10, color="6B7280")
    VALUE_FONT = Font(name="Calibri", size=12, bold=True, color=HEADER_BG)

    HEADER_FILL = PatternFill(start_color=HEADER_BG, end_color=HEADER_BG, fill_type="solid")
    OUTPUT_HEADER_FILL = PatternFill(
        start_color=OUTPUT_HEADER_BG,
        end_color=OUTPUT_HEADER_BG,
        fill_type="solid",
    )
    ALT_ROW_FILL = PatternFill(start_color=ALT_ROW_BG, end_color=ALT_ROW_BG, fill_type="solid")
    REVIEW_FILL = PatternFill(start_color=REVIEW_BG, end_color=REVIEW_BG, fill_type="solid")

    CENTER = Alignment(horizontal="center", vertical="center")


class ExcelReportGenerator(ReportGenerator):
    """Workbook with a ``Results`` sheet and a ``Summary`` sheet.

    Rows that need review are highlighted.
    """

    file_format = "xlsx"
    content_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    MAX_COLUMN_WIDTH = 50

    def __init__(self):
        self._styles = ExcelStyles()

    def generate(self, headers: Sequence[str], rows: Sequence[ExpandedRow]) -> bytes:
        wb = Workbook()
        default_sheet = wb.active
        if default_sheet is not None:
            wb.remove(default_sheet)

        self._create_results_sheet(wb, headers, rows)
        self._create_summary_sheet(wb, rows)

        output = BytesIO()
        wb.save(output)
        output.seek(0)
        return output.getvalue()

    def _create_results_sheet(
        self,
        wb: Workbook,
        headers: Sequence[str],
        rows: Sequence[ExpandedRow],
    ) -> None:
        ws = wb.create_sheet(title="Results")

        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = self._styles.HEADER_FONT
            cell.fill = (
                self._styles.OUTPUT_HEADER_FILL
                if header in OUTPUT_COLUMNS
                else self._styles.HEADER_FILL
            )
            cell.alignment = self._styles.CENTER

        widths = [len(str(h)) for h in headers]
        for row_idx, row in enumerate(rows, start=2):
            flat = row.flat()
            needs_review = row.record.requires_review
            for col, column in enumerate(headers, start=1):
                value = _excel_value(flat.get(column))
                cell = ws.cell(row=row_idx, column=col, value=value)
                cell.font = self._styles.BODY_FONT
                if needs_review:
                    cell.fill = self._styles.REVIEW_FILL
                elif row_idx % 2 == 0:
                    cell.fill = self._styles.ALT_ROW_FILL
                widths[col - 1] = max(widths[col - 1], len(str(value or "")))

        ws.freeze_panes = "A2"
        self._set_column_widths(ws, widths)

    def _create_summary_sheet(self, wb: Workbook, rows: Sequence[ExpandedRow]) -> None:
        ws = wb.create_sheet(title="Summary")
        classifications = Counter(r.record.classification.value for r in rows)
        tiers = Counter(r.record.processing_tier.value for r in rows)

        entries: list[tuple[str, Any]] = [
            ("Total rows", len(rows)),
            ("Unique payees", len({r.mapping.unique_payee_index for r in rows})),
            ("Requires review", sum(1 for r in rows if r.record.requires_review)),
            ("Placeholder rows", sum(1 for r in rows if r.is_placeholder)),
        ]
        entries += [(f"Classification: {k}", v) for k, v in sorted(classifications.items())]
        entries += [(f"Tier: {k}", v) for k, v in sorted(tiers.items())]

        for row_idx, (label, value) in enumerate(entries, start=1):
            ws.cell(row=row_idx, column=1, value=label).font = self._styles.LABEL_FONT
            ws.cell(row=row_idx, column=2, value=value).font = self._styles.VALUE_FONT
        ws.column_dimensions["A"].width = 32
        ws.column_dimensions["B"].width = 14

    def _set_column_widths(self, ws: Worksheet, widths: Sequence[int]) -> None:
        for col, width in enumerate(widths, start=1):
            ws.column_dimensions[get_column_letter(col)].width = min(width + 2, self.MAX_COLUMN_WIDTH)


def _excel_value(value: Any) -> Any:
    if value is None or isinstance(value, (int, float, bool)):
        return value
    return str(value)
