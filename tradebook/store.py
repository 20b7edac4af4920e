"""
Record store access.

The import pipeline and the read endpoints only see ``RecordStore``: a table
write surface (bulk or single row inserts) and a SQL read surface taking a
query string with ``?`` positional parameters. ``SQLAlchemyRecordStore`` is
the implementation backed by the application database.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import insert, text
from sqlalchemy.exc import InterfaceError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from tradebook.columns import CANONICAL_COLUMNS
from tradebook.exceptions import StoreReadError, StoreUnavailableError, StoreWriteError

logger = logging.getLogger(__name__)

# Hard ceiling of rows per read request; pages stay below it
MAX_ROWS_PER_QUERY = 300
DEFAULT_PAGE_SIZE = 250

Row = Dict[str, Any]


class RecordStore(ABC):
    @abstractmethod
    async def insert_rows(self, rows: List[Row]) -> None:
        """Write all rows in one request."""

    @abstractmethod
    async def insert_row(self, row: Row) -> None:
        """Write a single row."""

    @abstractmethod
    async def execute_query(self, query: str, params: Sequence[Any] = ()) -> List[Row]:
        """Run a read query with ``?`` placeholders bound positionally."""


def bind_positional(query: str, params: Sequence[Any]) -> Tuple[str, Dict[str, Any]]:
    """Rewrite ``?`` placeholders as named binds for ``sqlalchemy.text``.

    Placeholders inside quoted literals or identifiers are left alone, and
    colons inside them are escaped so text() does not read them as binds.
    """
    out = []
    named: Dict[str, Any] = {}
    quote: Optional[str] = None
    for ch in query:
        if quote:
            out.append("\\:" if ch == ":" else ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "?":
            if len(named) >= len(params):
                raise StoreReadError("Query has more placeholders than parameters")
            index = len(named)
            named[f"p{index}"] = params[index]
            out.append(f":p{index}")
            continue
        out.append(ch)
    if len(named) != len(params):
        raise StoreReadError("Query has fewer placeholders than parameters")
    return "".join(out), named


def _is_unavailable(error: Exception) -> bool:
    return isinstance(error, (InterfaceError, OSError)) or getattr(error, "connection_invalidated", False)


class SQLAlchemyRecordStore(RecordStore):
    def __init__(self, session_factory: async_sessionmaker, table):
        self.session_factory = session_factory
        self.table = table

    @staticmethod
    def _complete(row: Row) -> Row:
        # executemany needs the same keys in every parameter set
        return {column: row.get(column) for column in CANONICAL_COLUMNS}

    async def _write(self, rows: List[Row]) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(insert(self.table), [self._complete(r) for r in rows])
        except (SQLAlchemyError, OSError) as e:
            if _is_unavailable(e):
                raise StoreUnavailableError(f"Record store unavailable: {e}") from e
            raise StoreWriteError(str(e)) from e

    async def insert_rows(self, rows: List[Row]) -> None:
        if rows:
            await self._write(rows)

    async def insert_row(self, row: Row) -> None:
        await self._write([row])

    async def execute_query(self, query: str, params: Sequence[Any] = ()) -> List[Row]:
        statement, binds = bind_positional(query, params)
        try:
            async with self.session_factory() as session:
                result = await session.execute(text(statement), binds)
                return [dict(row) for row in result.mappings().all()]
        except (SQLAlchemyError, OSError) as e:
            raise StoreReadError(str(e)) from e


async def fetch_page(store: RecordStore, query: str, params: Sequence[Any], limit: int, offset: int) -> List[Row]:
    """Read one page, falling back to an OFFSET-free query if OFFSET is rejected."""
    try:
        return await store.execute_query(f"{query} LIMIT {limit} OFFSET {offset}", params)
    except StoreReadError as e:
        if offset + limit > MAX_ROWS_PER_QUERY:
            raise
        logger.warning(f"Paginated query failed ({e}), retrying without OFFSET")
        rows = await store.execute_query(f"{query} LIMIT {offset + limit}", params)
        return rows[offset:]


async def fetch_all(store: RecordStore, query: str, params: Sequence[Any] = (), page_size: int = DEFAULT_PAGE_SIZE) -> List[Row]:
    """Read every row matching ``query`` page by page.

    If the very first OFFSET query fails the query is retried once without
    OFFSET, which caps the result at MAX_ROWS_PER_QUERY rows. A failure on a
    later page ends paging with the rows read so far.
    """
    page_size = max(1, min(page_size, MAX_ROWS_PER_QUERY))
    rows: List[Row] = []
    offset = 0
    while True:
        try:
            page = await store.execute_query(f"{query} LIMIT {page_size} OFFSET {offset}", params)
        except StoreReadError as e:
            if offset:
                logger.warning(f"Paging stopped at offset {offset}: {e}")
                break
            logger.warning(f"Paginated query failed ({e}), retrying without OFFSET")
            return await store.execute_query(f"{query} LIMIT {MAX_ROWS_PER_QUERY}", params)
        rows.extend(page)
        if len(page) < page_size:
            break
        offset += page_size
    return rows
