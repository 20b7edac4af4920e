"""
Spreadsheet decoding.

Reads the first sheet of an uploaded workbook into plain row dicts keyed by
header text. This is the only place where untyped cell values enter the
system; everything downstream goes through ``tradebook.mapper``.
"""

import asyncio
import io
import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from tradebook.exceptions import DecodeError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".xlsb")

# pandas picks openpyxl/xlrd by sniffing the buffer, but xlsb has to be asked for
_ENGINES = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
    ".xlsb": "pyxlsb",
}


def engine_for(filename: Optional[str]) -> Optional[str]:
    if not filename:
        return None
    lowered = filename.lower()
    for extension, engine in _ENGINES.items():
        if lowered.endswith(extension):
            return engine
    return None


def decode_workbook(content: bytes, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    """Decode the first sheet of a workbook into row dicts.

    Missing cells are present with a ``None`` value. A sheet without data rows
    decodes to an empty list; a buffer that is not a workbook raises
    DecodeError.
    """
    try:
        df = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            dtype=object,
            engine=engine_for(filename),
            # only truly empty cells are missing; "NA" or "NULL" text is data
            keep_default_na=False,
            na_values=[""],
        )
    except Exception as e:
        raise DecodeError(f"Failed to parse Excel file: {e}") from e

    if df.empty:
        return []

    df.columns = [str(col) for col in df.columns]
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


async def decode_workbook_async(content: bytes, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    return await asyncio.to_thread(decode_workbook, content, filename)
