import asyncio
import io

import pandas as pd
import pytest

from tests.fakes import make_workbook
from tradebook.decoder import decode_workbook, decode_workbook_async, engine_for
from tradebook.exceptions import DecodeError


def test_rows_are_keyed_by_header_in_sheet_order():
    content = make_workbook(
        ["WS client id", "Quantity", "Security Name"],
        [["123", 10, "Acme"], ["456", 5, "Globex"]],
    )
    rows = decode_workbook(content)
    assert rows == [
        {"WS client id": "123", "Quantity": 10, "Security Name": "Acme"},
        {"WS client id": "456", "Quantity": 5, "Security Name": "Globex"},
    ]
    assert list(rows[0]) == ["WS client id", "Quantity", "Security Name"]


def test_missing_cells_are_present_as_none():
    rows = decode_workbook(make_workbook(["Quantity", "Rate"], [[10, None], [None, 4.5]]))
    assert rows == [{"Quantity": 10, "Rate": None}, {"Quantity": None, "Rate": 4.5}]


def test_only_the_first_sheet_is_read():
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame({"Quantity": [1]}).to_excel(writer, sheet_name="Trades", index=False)
        pd.DataFrame({"Quantity": [2, 3]}).to_excel(writer, sheet_name="Other", index=False)
    assert decode_workbook(buffer.getvalue()) == [{"Quantity": 1}]


def test_header_only_sheet_decodes_to_no_rows():
    assert decode_workbook(make_workbook(["Quantity", "Rate"], [])) == []


def test_garbage_buffer_raises_decode_error():
    with pytest.raises(DecodeError, match="Failed to parse Excel file"):
        decode_workbook(b"definitely not a workbook", "trades.xlsx")


def test_async_decode_matches_sync_decode():
    content = make_workbook(["Rate"], [[50]])
    assert asyncio.run(decode_workbook_async(content, "trades.xlsx")) == [{"Rate": 50}]


def test_engine_is_picked_from_extension():
    assert engine_for("TRADES.XLSB") == "pyxlsb"
    assert engine_for("book.xls") == "xlrd"
    assert engine_for("book.xlsx") == "openpyxl"
    assert engine_for("book.csv") is None
    assert engine_for(None) is None


def test_null_like_text_is_kept_as_text():
    content = make_workbook(
        ["Security Name", "Tran Desc", "ISIN", "Quantity"],
        [["NA", "N/A", "NULL", 1], ["None", "nan", None, 2]],
    )
    rows = decode_workbook(content)
    assert rows[0] == {"Security Name": "NA", "Tran Desc": "N/A", "ISIN": "NULL", "Quantity": 1}
    assert rows[1] == {"Security Name": "None", "Tran Desc": "nan", "ISIN": None, "Quantity": 2}
