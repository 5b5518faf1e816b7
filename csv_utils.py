import csv
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from io import BytesIO, StringIO
from typing import Any, Iterable, Optional

import pandas as pd

from models import Category, Frequency
from schemas import TransactionIn


TEMPLATE_COLUMNS = ["Date", "Time", "Vendor", "Category", "Description", "Amount", "Notes"]
TEMPLATE_EXAMPLE = [
    "2024-05-01",
    "14:30",
    "Whole Foods",
    Category.groceries.value,
    "Weekly Groceries",
    "156.42",
    "Optional notes",
]
DEFAULT_DESCRIPTION = "Imported"
TEMPLATE_SHEET = "Template"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
_ZIP_MAGIC = b"PK\x03\x04"

_COLUMN_ALIASES = {
    "date": ("date",),
    "time": ("time",),
    "vendor": ("vendor",),
    "category": ("category",),
    "description": ("description", "desc"),
    "amount": ("amount", "cost"),
    "notes": ("notes", "note"),
}


def parse_date(value: Any) -> tuple[date, Optional[str]]:
    """Parse a date cell, returning the day and a non-midnight time-of-day if any.

    Spreadsheet cells arrive as ``datetime``/``date`` objects, CSV cells as text.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return value, None
    else:
        value = str(value).strip()
        for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%m/%d/%Y"):
            try:
                return datetime.strptime(value, fmt).date(), None
            except ValueError:
                continue
        moment = datetime.fromisoformat(value)
    clock = moment.time()
    if clock.hour == 0 and clock.minute == 0:
        return moment.date(), None
    return moment.date(), clock.strftime("%H:%M")


def parse_time(value: Any) -> str:
    if isinstance(value, (time, datetime)):
        return value.strftime("%H:%M")
    return str(value).strip()


def parse_amount(value: Any) -> Decimal:
    clean = str(value).strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    return abs(amount)


def match_category(value: Any) -> Category:
    wanted = str(value or "").strip().upper()
    for category in Category:
        if category.value.upper() == wanted:
            return category
    return Category.other


def _is_blank(cell: Any) -> bool:
    if isinstance(cell, str):
        return not cell.strip()
    return cell is None or bool(pd.isna(cell))


def _text(cell: Any) -> Optional[str]:
    return None if cell is None else str(cell).strip()


def _normalize_row(raw: dict[Any, Any]) -> dict[str, Any]:
    lowered: dict[str, Any] = {}
    for key, cell in raw.items():
        # csv.DictReader collects overflow cells under a None key
        if key is None or _is_blank(cell):
            continue
        lowered[str(key).strip().lower()] = cell.strip() if isinstance(cell, str) else cell
    row: dict[str, Any] = {}
    for field, aliases in _COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in lowered:
                row[field] = lowered[alias]
                break
    return row


def _build_transactions(
    records: Iterable[dict[Any, Any]],
) -> tuple[list[TransactionIn], list[str]]:
    rows: list[TransactionIn] = []
    errors: list[str] = []
    for idx, raw in enumerate(records, start=1):
        row = _normalize_row(raw)
        if "date" not in row or "amount" not in row:
            errors.append(f"Row {idx}: date and amount are required")
            continue
        try:
            txn_date, cell_time = parse_date(row["date"])
            rows.append(
                TransactionIn(
                    date=txn_date,
                    time=parse_time(row["time"]) if "time" in row else cell_time,
                    description=_text(row.get("description")) or DEFAULT_DESCRIPTION,
                    vendor=_text(row.get("vendor")) or None,
                    amount=parse_amount(row["amount"]),
                    category=match_category(row.get("category")),
                    frequency=Frequency.one_time,
                    notes=_text(row.get("notes")) or None,
                )
            )
        except Exception as exc:
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def parse_transactions_csv(content: str) -> tuple[list[TransactionIn], list[str]]:
    return _build_transactions(csv.DictReader(StringIO(content)))


def parse_transactions_xlsx(content: bytes) -> tuple[list[TransactionIn], list[str]]:
    """Read the first sheet of a workbook, keeping date cells as datetimes."""
    try:
        frame = pd.read_excel(BytesIO(content), sheet_name=0, dtype=object, engine="openpyxl")
    except Exception as exc:
        return [], [f"Workbook could not be read: {exc}"]
    return _build_transactions(frame.to_dict(orient="records"))


def is_workbook(
    content: bytes, filename: Optional[str] = None, content_type: Optional[str] = None
) -> bool:
    if filename and filename.lower().endswith(".xlsx"):
        return True
    if content_type == XLSX_CONTENT_TYPE:
        return True
    return content.startswith(_ZIP_MAGIC)


def parse_transactions_file(
    content: bytes, filename: Optional[str] = None, content_type: Optional[str] = None
) -> tuple[list[TransactionIn], list[str]]:
    if is_workbook(content, filename, content_type):
        return parse_transactions_xlsx(content)
    return parse_transactions_csv(content.decode("utf-8-sig", errors="replace"))


def transaction_template_csv() -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(TEMPLATE_COLUMNS)
    writer.writerow(TEMPLATE_EXAMPLE)
    return output.getvalue()


def transaction_template_xlsx() -> bytes:
    output = BytesIO()
    frame = pd.DataFrame([TEMPLATE_EXAMPLE], columns=TEMPLATE_COLUMNS)
    frame.to_excel(output, sheet_name=TEMPLATE_SHEET, index=False, engine="openpyxl")
    return output.getvalue()
