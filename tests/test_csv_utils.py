import csv
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO, StringIO

import pandas as pd
import pytest

from csv_utils import (
    TEMPLATE_COLUMNS,
    match_category,
    parse_amount,
    parse_date,
    parse_transactions_csv,
    parse_transactions_file,
    parse_transactions_xlsx,
    transaction_template_csv,
    transaction_template_xlsx,
)
from models import Category, Frequency


def test_parse_transactions_normalizes_headers_and_fields() -> None:
    content = (
        " DATE ,Desc,Cost,Category,Vendor,Notes\n"
        "2025-02-01,Dinner out,-32.50,food & dining,Bistro,anniversary\n"
        "01.02.2025,,\"1.234,56\",SHOPPING,,\n"
    )

    rows, errors = parse_transactions_csv(content)

    assert errors == []
    assert len(rows) == 2
    dinner, second = rows
    assert dinner.date == date(2025, 2, 1)
    assert dinner.description == "Dinner out"
    assert dinner.amount == Decimal("32.50")
    assert dinner.category == Category.food
    assert dinner.vendor == "Bistro"
    assert dinner.notes == "anniversary"
    assert dinner.frequency == Frequency.one_time
    assert second.date == date(2025, 2, 1)
    assert second.amount == Decimal("1234.56")
    assert second.description == "Imported"
    assert second.category == Category.shopping


def test_rows_without_date_or_amount_are_skipped() -> None:
    content = "Date,Amount,Description\n,5,No date\n2025-01-01,,No amount\nbad,3,Bad\n"

    rows, errors = parse_transactions_csv(content)

    assert rows == []
    assert len(errors) == 3
    assert errors[0].startswith("Row 1:")


def test_date_cell_with_time_yields_time_of_day() -> None:
    assert parse_date("2025-03-04T07:05:00") == (date(2025, 3, 4), "07:05")
    assert parse_date("2025-03-04 00:00:00") == (date(2025, 3, 4), None)
    assert parse_date("03/04/2025") == (date(2025, 3, 4), None)

    rows, _ = parse_transactions_csv("Date,Amount\n2025-03-04 19:45,8\n")
    assert rows[0].time == "19:45"


def test_parse_amount_coerces_to_absolute_value() -> None:
    assert parse_amount("-12,50") == Decimal("12.50")
    assert parse_amount("$ 1,200.00") == Decimal("1200.00")
    with pytest.raises(ValueError):
        parse_amount("twelve")
    with pytest.raises(ValueError):
        parse_amount("NaN")


def test_category_matching_defaults_to_other() -> None:
    assert match_category("  health & FITNESS ") == Category.health
    assert match_category("Gadgets") == Category.other
    assert match_category(None) == Category.other


def test_template_has_fixed_header_and_example_row() -> None:
    lines = list(csv.reader(StringIO(transaction_template_csv())))

    assert lines[0] == ["Date", "Time", "Vendor", "Category", "Description", "Amount", "Notes"]
    assert lines[0] == TEMPLATE_COLUMNS
    assert len(lines) == 2

    rows, errors = parse_transactions_csv(transaction_template_csv())
    assert errors == []
    assert rows[0].category == Category.groceries
    assert rows[0].time == "14:30"


def _workbook(frame: pd.DataFrame) -> bytes:
    output = BytesIO()
    frame.to_excel(output, index=False, engine="openpyxl")
    return output.getvalue()


def test_workbook_rows_keep_date_cells_and_their_time_of_day() -> None:
    content = _workbook(
        pd.DataFrame(
            {
                "Date": [datetime(2025, 3, 4, 12, 0), datetime(2025, 3, 5)],
                " DESC ": ["Cinema", None],
                "Cost": [12.5, -8],
                "Category": ["entertainment", "nope"],
            }
        )
    )

    rows, errors = parse_transactions_xlsx(content)

    assert errors == []
    cinema, second = rows
    assert cinema.date == date(2025, 3, 4)
    assert cinema.time == "12:00"
    assert cinema.description == "Cinema"
    assert cinema.amount == Decimal("12.5")
    assert cinema.category == Category.entertainment
    assert second.date == date(2025, 3, 5)
    assert second.time is None
    assert second.description == "Imported"
    assert second.amount == Decimal("8")
    assert second.category == Category.other


def test_workbook_rows_without_date_or_amount_are_skipped() -> None:
    content = _workbook(
        pd.DataFrame({"Date": ["2025-01-01", None], "Amount": [None, 3], "Notes": ["a", "b"]})
    )

    rows, errors = parse_transactions_xlsx(content)

    assert rows == []
    assert len(errors) == 2


def test_unreadable_workbook_yields_no_rows() -> None:
    rows, errors = parse_transactions_file(b"PK\x03\x04not really a workbook", "bank.xlsx")

    assert rows == []
    assert errors[0].startswith("Workbook could not be read")


def test_file_dispatch_decodes_csv_uploads() -> None:
    content = "\ufeffDate,Amount\n2025-01-02,4\n".encode("utf-8")

    rows, errors = parse_transactions_file(content, "bank.csv", "text/csv")

    assert errors == []
    assert rows[0].date == date(2025, 1, 2)


def test_xlsx_template_matches_csv_template() -> None:
    frame = pd.read_excel(BytesIO(transaction_template_xlsx()), sheet_name="Template", dtype=object)

    assert list(frame.columns) == TEMPLATE_COLUMNS
    assert len(frame) == 1

    rows, errors = parse_transactions_xlsx(transaction_template_xlsx())
    assert errors == []
    assert rows[0].category == Category.groceries
    assert rows[0].time == "14:30"
    assert rows[0].amount == Decimal("156.42")
