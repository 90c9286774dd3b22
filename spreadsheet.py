# spreadsheet.py
import csv, io, os, re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from errors import InvalidInputError

SUPPORTED = ("xlsx", "csv")
_EXT_RE = re.compile(r"\.(xlsx|xls|csv)$", re.IGNORECASE)


@dataclass
class Sheet:
    name: str
    columns: List[str]
    rows: List[Dict[str, Any]]


def extension(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lstrip(".").lower()
    if ext not in SUPPORTED:
        raise InvalidInputError(f"Unsupported file type: {filename!r} (xlsx or csv)")
    return ext


def output_filename(filename: Optional[str]) -> str:
    """report.xlsx -> report_with_CA.xlsx"""
    name = os.path.basename(filename or "") or "siren.xlsx"
    ext = extension(name)
    return f"{_EXT_RE.sub('', name)}_with_CA.{ext}"


def detect_id_column(columns: List[str]) -> Optional[str]:
    # a column named exactly "siren" (as a word), then any containing it, then the first
    for pattern in (r"(^|\s)siren(\s|$)", r"siren"):
        for c in columns:
            if re.search(pattern, str(c), re.IGNORECASE):
                return c
    return columns[0] if columns else None


def _unique(names: List[str]) -> List[str]:
    """Nom, Nom, Nom -> Nom, Nom_1, Nom_2 (empty headers become ColumnN)."""
    out: List[str] = []
    taken = set()
    for i, name in enumerate(names):
        base = name if name else f"Column{i + 1}"
        candidate, n = base, 0
        while candidate in taken:
            n += 1
            candidate = f"{base}_{n}"
        taken.add(candidate)
        out.append(candidate)
    return out


def _filled(cells: List[Any]) -> int:
    """Length up to the last non-empty cell."""
    for i in range(len(cells), 0, -1):
        if cells[i - 1] not in (None, ""):
            return i
    return 0


def _to_sheet(name: str, header: List[Any], raw_rows: List[List[Any]]) -> Sheet:
    # cells past the header still need a column to survive the round-trip
    width = max([_filled(header)] + [_filled(r) for r in raw_rows])
    header = header[:width]
    names = ["" if h is None else str(h) for h in header] + [""] * (width - len(header))
    columns = _unique(names)
    rows = []
    for raw in raw_rows:
        if all(v is None or v == "" for v in raw):
            continue
        cells = list(raw) + [None] * (width - len(raw))
        rows.append({c: ("" if v is None else v) for c, v in zip(columns, cells)})
    return Sheet(name=name, columns=columns, rows=rows)


def _read_xlsx(data: bytes) -> Sheet:
    wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        values = ws.iter_rows(values_only=True)
        header = list(next(values, None) or ())
        return _to_sheet(ws.title, header, [list(r) for r in values if r is not None])
    finally:
        wb.close()


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        # French Excel "CSV (séparateur: point-virgule)" exports
        return data.decode("cp1252", errors="replace")


def _read_csv(data: bytes) -> Sheet:
    text = _decode(data)
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t")
    except csv.Error:
        dialect = csv.excel
    records = list(csv.reader(io.StringIO(text), dialect=dialect))
    if not records:
        return Sheet(name="Sheet1", columns=[], rows=[])
    return _to_sheet("Sheet1", records[0], records[1:])


def read_rows(filename: str, data: bytes) -> Sheet:
    ext = extension(filename)
    try:
        sheet = _read_xlsx(data) if ext == "xlsx" else _read_csv(data)
    except InvalidInputError:
        raise
    except Exception as e:
        raise InvalidInputError(f"Could not read {filename!r}: {e}") from e
    if not sheet.columns:
        raise InvalidInputError(f"{filename!r} has no header row")
    return sheet


def _columns(rows: List[Dict[str, Any]], first: List[str]) -> List[str]:
    cols = list(first)
    for row in rows:
        for k in row:
            if k not in cols:
                cols.append(k)
    return cols


def write_rows(sheet: Sheet, rows: List[Dict[str, Any]], ext: str) -> bytes:
    columns = _columns(rows, sheet.columns)
    if ext == "csv":
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)
        # BOM so Excel opens accented headers correctly
        return buf.getvalue().encode("utf-8-sig")

    wb = Workbook()
    ws = wb.active
    ws.title = (sheet.name or "Résultats")[:31]
    ws.append(columns)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append([row.get(c, "") for c in columns])
    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()
