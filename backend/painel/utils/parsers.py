"""Spreadsheet parsing for pedido imports.

Supported input types: XLSX, CSV and JSON. Parsers return a list of
dictionaries with keys `numero_pedido`, `nome_cliente`, `codigo_produto`,
`telefone`, `data_pedido` and `observacao`, resolved from the header
aliases used by the spreadsheets exported by the store.
"""

import csv
import io
import json
import zipfile
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

HEADER_ALIASES = {
    "numero_pedido": ("Número", "Numero", "numero_pedido"),
    "nome_cliente": ("Cliente", "Nome Cliente", "nome_cliente"),
    "codigo_produto": ("Código Produto", "Codigo Produto", "codigo_produto", "Produto"),
    "telefone": ("Telefone", "telefone"),
    "data_pedido": ("Data", "Data Pedido", "data_pedido"),
    "observacao": ("Observação", "Observacao", "observacao"),
}
REQUIRED = ("numero_pedido", "nome_cliente", "codigo_produto")
BRASILIA = ZoneInfo("America/Sao_Paulo")
_EXCEL_EPOCH = date(1899, 12, 30)


def today_brasilia() -> date:
    return datetime.now(BRASILIA).date()


def parse_file_to_rows(file_bytes: bytes, filename: str) -> List[Dict]:
    """Dispatch to the appropriate parser based on file extension."""
    name = filename.lower()
    if name.endswith(".xlsx"):
        return parse_xlsx(file_bytes)
    if name.endswith(".csv"):
        return parse_csv(file_bytes)
    if name.endswith(".json"):
        return parse_json(file_bytes)
    raise ValueError("Unsupported file type")


def parse_xlsx(b: bytes) -> List[Dict]:
    """Read the first worksheet; the first row holds the headers."""
    try:
        wb = load_workbook(io.BytesIO(b), data_only=True, read_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError, OSError) as e:
        raise ValueError("invalid XLSX file") from e
    try:
        rows = wb.worksheets[0].iter_rows(values_only=True)
        try:
            headers = [str(h).strip() if h is not None else "" for h in next(rows)]
        except StopIteration:
            return []
        out = []
        for values in rows:
            if not values or all(v is None or str(v).strip() == "" for v in values):
                continue
            out.append(normalize_row(dict(zip(headers, values))))
        return out
    finally:
        wb.close()


def parse_csv(b: bytes) -> List[Dict]:
    """Parse a CSV with a header row; `;` separated files are detected."""
    text = b.decode("utf-8-sig")
    sample = text.split("\n", 1)[0]
    delimiter = ";" if sample.count(";") > sample.count(",") else ","
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)
    return [normalize_row(row) for row in reader]


def parse_json(b: bytes) -> List[Dict]:
    data = json.loads(b.decode("utf-8"))
    if isinstance(data, dict):
        data = data.get("pedidos") or []
    if not isinstance(data, list):
        raise ValueError("JSON import must be a list of pedidos")
    return [normalize_row(item) for item in data if isinstance(item, dict)]


def _first(row: dict, aliases) -> Optional[object]:
    for alias in aliases:
        value = row.get(alias)
        if value is not None and str(value).strip() != "":
            return value
    return None


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def coerce_date(value) -> Optional[date]:
    """Accept date objects, Excel serials, `dd/mm/yyyy` and ISO strings."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return _EXCEL_EPOCH + timedelta(days=int(value))
    s = str(value).strip()
    for fmt in ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%y"):
        try:
            return datetime.strptime(s[:10], fmt).date()
        except ValueError:
            continue
    return None


def normalize_row(row: dict) -> Dict:
    return {
        "numero_pedido": _text(_first(row, HEADER_ALIASES["numero_pedido"])),
        "nome_cliente": _text(_first(row, HEADER_ALIASES["nome_cliente"])),
        "codigo_produto": _text(_first(row, HEADER_ALIASES["codigo_produto"])),
        "telefone": _text(_first(row, HEADER_ALIASES["telefone"])) or None,
        "data_pedido": coerce_date(_first(row, HEADER_ALIASES["data_pedido"])),
        "observacao": _text(_first(row, HEADER_ALIASES["observacao"])) or None,
    }


def is_complete(row: Dict) -> bool:
    return all(row.get(k) for k in REQUIRED)
