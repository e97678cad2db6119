"""CSV export of classified rows."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Sequence

from payeebatch.application.ports import ReportGenerator
from payeebatch.domain.payees.row_mapping import ExpandedRow


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class CsvReportGenerator(ReportGenerator):
    """Every field quoted, embedded quotes doubled, UTF-8 with BOM for Excel."""

    file_format = "csv"
    content_type = "text/csv; charset=utf-8"

    def generate(self, headers: Sequence[str], rows: Sequence[ExpandedRow]) -> bytes:
        buffer = io.StringIO(newline="")
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, doublequote=True, lineterminator="\r\n")
        writer.writerow(headers)
        for row in rows:
            flat = row.flat()
            writer.writerow([_csv_value(flat.get(column)) for column in headers])
        return ("\ufeff" + buffer.getvalue()).encode("utf-8")
