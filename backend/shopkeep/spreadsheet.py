# Overview: Spreadsheet reader/writer for product import and the downloadable template.

"""
Spreadsheet codec

Reads .xlsx (first sheet, first row = headers) and .csv uploads into plain
row mappings, and writes the product import template. Callers deal only in
row dicts; header normalization happens in products_service.bulk_import.
"""

import csv
import io

from openpyxl import Workbook, load_workbook

from .errors import ValidationError

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
TEMPLATE_FILENAME = "products-template.xlsx"

TEMPLATE_HEADERS = [
    "name", "sku", "barcode", "price", "costPrice", "quantity", "minStock",
    "wholesalePrice", "wholesaleMin", "category", "unit", "piecesPerUnit",
]
TEMPLATE_SAMPLE_ROW = [
    "Sample Product", "SKU001", "1234567890", 100, 70, 50, 10, 85, 20, "Drinks", "pcs", 1,
]


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _extension(filename: str | None) -> str:
    filename = filename or ""
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def _read_xlsx(stream) -> list[dict]:
    try:
        wb = load_workbook(stream, read_only=True, data_only=True)
    except Exception as exc:
        raise ValidationError(f"Could not read spreadsheet: {exc}") from exc

    try:
        sheet = wb.worksheets[0]
        data = list(sheet.values)
    finally:
        wb.close()

    if not data:
        return []

    headers = [str(h).strip() if h is not None else "" for h in data[0]]
    rows = []
    for values in data[1:]:
        if all(_is_blank(v) for v in values):
            continue
        rows.append({
            headers[i]: values[i]
            for i in range(min(len(headers), len(values)))
            if headers[i]
        })
    return rows


def _read_csv(stream) -> list[dict]:
    raw = stream.read()
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV file must be UTF-8 encoded") from exc

    reader = csv.DictReader(io.StringIO(raw))
    return [
        {k.strip(): v for k, v in row.items() if k}
        for row in reader
        if not all(_is_blank(v) for v in row.values())
    ]


def read_rows(stream, filename: str | None) -> list[dict]:
    """
    Parse an uploaded spreadsheet into row dicts keyed by header.

    Raises ValidationError for unsupported extensions or unreadable files.
    """
    ext = _extension(filename)
    if ext in XLSX_EXTENSIONS:
        return _read_xlsx(stream)
    if ext == "csv":
        return _read_csv(stream)
    raise ValidationError("Unsupported file format (use .xlsx or .csv)")


def build_template() -> bytes:
    """The import template as xlsx bytes: a Products sheet with one sample row."""
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Products"
    sheet.append(TEMPLATE_HEADERS)
    sheet.append(TEMPLATE_SAMPLE_ROW)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
