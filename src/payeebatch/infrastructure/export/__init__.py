"""Download file generators."""

from payeebatch.infrastructure.export.csv_report_generator import CsvReportGenerator
from payeebatch.infrastructure.export.excel_report_generator import ExcelReportGenerator

__all__ = ["CsvReportGenerator", "ExcelReportGenerator"]
