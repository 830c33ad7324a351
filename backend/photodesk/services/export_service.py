"""
PhotoDesk Backend: CSV Export
===============================

What:  Renders the photographer and photo-record collections as CSV
       downloads for spreadsheet users.
How:   csv.writer with every data cell quoted, "\\n" line endings and missing
       values written as empty strings. Column headers are the ones the
       office's spreadsheets expect (Turkish).
"""

import csv
import io
from datetime import date
from typing import Any, Dict, Iterable, List, NamedTuple, Sequence, Tuple


class CsvExport(NamedTuple):
    filename: str
    content: str


# (header, source key) pairs per export
PHOTOGRAPHER_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("Fotografci Ad soyad", "name"),
    ("TC Kimlik", "tcNo"),
    ("Adres", "address"),
    ("Eklenme Tarihi", "addedDate"),
)
PHOTOGRAPHER_INFO_COLUMNS = PHOTOGRAPHER_COLUMNS[:3]
PHOTO_RECORD_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("Sahibi", "photographerName"),
    ("Kelebek Türü", "butterflyType"),
    ("Görsel Link", "imageUrl"),
)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def render_csv(rows: Iterable[Dict[str, Any]], columns: Sequence[Tuple[str, str]]) -> str:
    buffer = io.StringIO()
    # Header row is written bare, data cells are always quoted
    buffer.write(",".join(header for header, _ in columns) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        if not isinstance(row, dict):
            continue
        writer.writerow([_cell(row.get(key)) for _, key in columns])
    # No trailing newline after the last row
    return buffer.getvalue().rstrip("\n")


def _dated(prefix: str, today: date = None) -> str:
    return f"{prefix}_{(today or date.today()).isoformat()}.csv"


def photographers_csv(rows: List[Dict[str, Any]], today: date = None) -> CsvExport:
    return CsvExport(_dated("fotografcilar", today), render_csv(rows, PHOTOGRAPHER_COLUMNS))


def photographer_info_csv(rows: List[Dict[str, Any]], today: date = None) -> CsvExport:
    return CsvExport(
        _dated("fotografci_bilgileri", today), render_csv(rows, PHOTOGRAPHER_INFO_COLUMNS)
    )


def photo_records_csv(rows: List[Dict[str, Any]], today: date = None) -> CsvExport:
    return CsvExport(_dated("fotograf_kayitlari", today), render_csv(rows, PHOTO_RECORD_COLUMNS))
