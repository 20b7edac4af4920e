"""
Read side: listing, statistics, distinct values and holdings.

The main listing and totals queries propagate store failures. Auxiliary
queries (counts, breakdowns, distinct values) degrade to null/zero/empty so
the dashboard still gets a partial answer.
"""

import logging
from typing import Any, List, Optional

from tradebook.exceptions import NotFoundError, StoreReadError, ValidationError
from tradebook.filters import (
    RecordFilters,
    WhereClause,
    build_where_clause,
    id_condition,
    not_null_condition,
    quote_identifier,
    tran_type_prefix_condition,
)
from tradebook.holdings import aggregate_holdings
from tradebook.schemas import (
    DailyVolume,
    ExchangeStat,
    HoldingsResponse,
    OverallStats,
    RecordListResponse,
    SecurityTransactionsResponse,
    StatsResponse,
    TopStock,
    TransactionRecord,
)
from tradebook.store import DEFAULT_PAGE_SIZE, RecordStore, fetch_all, fetch_page

logger = logging.getLogger(__name__)

MAX_PAGE_LIMIT = 200
DEFAULT_PAGE_LIMIT = 50


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _first(rows: List[dict], key: str) -> Any:
    return rows[0].get(key) if rows else None


class RecordsService:
    def __init__(self, store: RecordStore, default_table: str = "transactions", page_size: int = DEFAULT_PAGE_SIZE):
        self.store = store
        self.default_table = default_table
        self.page_size = page_size

    def _table(self, table: Optional[str]) -> str:
        return quote_identifier(table or self.default_table)

    async def _count(self, table: str, where: WhereClause, label: str) -> int:
        try:
            rows = await self.store.execute_query(f"SELECT COUNT(*) AS c FROM {table}{where.sql}", where.params)
            return int(_number(_first(rows, "c")))
        except StoreReadError as e:
            logger.error(f"{label} query error: {e}")
            return 0

    async def list_records(self, filters: RecordFilters, page: int = 1, limit: int = DEFAULT_PAGE_LIMIT,
                           table: Optional[str] = None) -> RecordListResponse:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_LIMIT)
        offset = (page - 1) * limit
        table_sql = self._table(table)
        where = build_where_clause(filters)

        query = f'SELECT * FROM {table_sql}{where.sql} ORDER BY {quote_identifier("TRANDATE")} DESC'
        rows = await fetch_page(self.store, query, where.params, limit, offset)

        # Counting can be slow on big tables; the listing is returned without it
        total = None
        try:
            count_rows = await self.store.execute_query(
                f"SELECT COUNT(*) AS total_count FROM {table_sql}{where.sql}", where.params
            )
            total = int(_number(_first(count_rows, "total_count")))
        except StoreReadError as e:
            logger.warning(f"Count query failed: {e}")

        return RecordListResponse(
            page=page,
            limit=limit,
            total=total,
            data=[TransactionRecord.model_validate(row) for row in rows],
        )

    async def get_record(self, record_id: Any, table: Optional[str] = None) -> TransactionRecord:
        condition = id_condition(record_id)
        rows = await self.store.execute_query(f"SELECT * FROM {self._table(table)} WHERE {condition}")
        if not rows:
            raise NotFoundError(f"Record {record_id} not found")
        return TransactionRecord.model_validate(rows[0])

    async def stats(self, filters: RecordFilters, table: Optional[str] = None) -> StatsResponse:
        table_sql = self._table(table)
        where = build_where_clause(filters)
        net_amount = quote_identifier("Net_Amount")

        try:
            totals_rows = await self.store.execute_query(
                f"SELECT COUNT(*) AS total_trades, SUM({net_amount}) AS total_net_amount FROM {table_sql}{where.sql}",
                where.params,
            )
        except StoreReadError as e:
            logger.error(f"Totals query error: {e}")
            raise StoreReadError(f"Totals query failed: {e}") from e
        total_trades = int(_number(_first(totals_rows, "total_trades")))
        total_net_amount = _number(_first(totals_rows, "total_net_amount"))

        buy_trades = await self._count(table_sql, where.extended(tran_type_prefix_condition("B")), "Buy")
        sell_trades = await self._count(table_sql, where.extended(tran_type_prefix_condition("S")), "Sell")
        completed_trades = await self._count(
            table_sql, where.extended(not_null_condition("PAYMENTDATE")), "Completed"
        )

        return StatsResponse(
            overall=OverallStats(
                total_trades=total_trades,
                total_net_amount=total_net_amount,
                avg_trade_value=round(total_net_amount / total_trades) if total_trades else 0,
                buy_trades=buy_trades,
                sell_trades=sell_trades,
                completed_trades=completed_trades,
            ),
            top_stocks=await self._top_stocks(table_sql, where),
            exchange_stats=await self._exchange_stats(table_sql, where),
            daily_volume=await self._daily_volume(table_sql, where),
        )

    async def _top_stocks(self, table_sql: str, where: WhereClause) -> List[TopStock]:
        name, amount, qty = (quote_identifier(c) for c in ("Security_Name", "Net_Amount", "QTY"))
        query = (
            f"SELECT {name} AS name, COUNT(*) AS trade_count, SUM({amount}) AS total_value, "
            f"SUM({qty}) AS total_quantity FROM {table_sql}{where.sql} "
            f"GROUP BY {name} ORDER BY SUM({amount}) DESC LIMIT 10"
        )
        try:
            rows = await self.store.execute_query(query, where.params)
        except StoreReadError as e:
            logger.error(f"Top stocks query error: {e}")
            return []
        return [
            TopStock(
                name=row.get("name"),
                trade_count=int(_number(row.get("trade_count"))),
                total_value=_number(row.get("total_value")),
                total_quantity=_number(row.get("total_quantity")),
            )
            for row in rows
        ]

    async def _exchange_stats(self, table_sql: str, where: WhereClause) -> List[ExchangeStat]:
        exchange, amount = quote_identifier("EXCHG"), quote_identifier("Net_Amount")
        query = (
            f"SELECT {exchange} AS exchange, COUNT(*) AS count, SUM({amount}) AS total_value "
            f"FROM {table_sql}{where.sql} GROUP BY {exchange}"
        )
        try:
            rows = await self.store.execute_query(query, where.params)
        except StoreReadError as e:
            logger.error(f"Exchange stats query error: {e}")
            return []
        return [
            ExchangeStat(
                exchange=row.get("exchange"),
                count=int(_number(row.get("count"))),
                total_value=_number(row.get("total_value")),
            )
            for row in rows
        ]

    async def _daily_volume(self, table_sql: str, where: WhereClause) -> List[DailyVolume]:
        trandate, amount = quote_identifier("TRANDATE"), quote_identifier("Net_Amount")
        query = (
            f"SELECT {trandate} AS day, COUNT(*) AS count, SUM({amount}) AS total_value "
            f"FROM {table_sql}{where.sql} GROUP BY {trandate} ORDER BY {trandate} DESC LIMIT 30"
        )
        try:
            rows = await self.store.execute_query(query, where.params)
        except StoreReadError as e:
            logger.error(f"Daily volume query error: {e}")
            return []
        # oldest first for charting
        return [
            DailyVolume(
                date=row.get("day"),
                count=int(_number(row.get("count"))),
                total_value=_number(row.get("total_value")),
            )
            for row in reversed(rows)
        ]

    async def distinct_values(self, column: str, filters: Optional[RecordFilters] = None,
                              table: Optional[str] = None) -> List[str]:
        column_sql = quote_identifier(column)
        where = build_where_clause(filters or RecordFilters()).extended(not_null_condition(column))
        query = f"SELECT DISTINCT {column_sql} AS value FROM {self._table(table)}{where.sql} ORDER BY {column_sql}"
        try:
            rows = await fetch_all(self.store, query, where.params, self.page_size)
        except StoreReadError as e:
            logger.error(f"Distinct {column} query error: {e}")
            return []
        return [str(row["value"]) for row in rows if row.get("value")]

    async def client_transactions(self, client_id: Optional[str], end_date: Optional[str] = None,
                                  security_name: Optional[str] = None, security_code: Optional[str] = None,
                                  table: Optional[str] = None) -> List[TransactionRecord]:
        """Every transaction of one client up to ``end_date``, oldest first."""
        if not client_id or not str(client_id).strip():
            raise ValidationError("clientId is required")
        filters = RecordFilters.from_query({
            "ws_client_id": str(client_id).strip(),
            "trandate_to": end_date,
            "security_name": security_name,
            "security_code": security_code,
        })
        where = build_where_clause(filters)
        order = f'{quote_identifier("TRANDATE")} ASC, {quote_identifier("id")} ASC'
        query = f"SELECT * FROM {self._table(table)}{where.sql} ORDER BY {order}"
        rows = await fetch_all(self.store, query, where.params, self.page_size)
        logger.info(f"Fetched {len(rows)} transactions for client {client_id}")
        return [TransactionRecord.model_validate(row) for row in rows]

    async def holdings(self, client_id: Optional[str], end_date: Optional[str] = None,
                       table: Optional[str] = None) -> HoldingsResponse:
        transactions = await self.client_transactions(client_id, end_date, table=table)
        return HoldingsResponse(
            client_id=str(client_id).strip(),
            end_date=end_date,
            holdings=aggregate_holdings(transactions),
        )

    async def security_transactions(self, client_id: Optional[str], security_name: str,
                                    end_date: Optional[str] = None, security_code: Optional[str] = None,
                                    table: Optional[str] = None) -> SecurityTransactionsResponse:
        transactions = await self.client_transactions(
            client_id, end_date, security_name=security_name, security_code=security_code, table=table
        )
        return SecurityTransactionsResponse(
            client_id=str(client_id).strip(),
            security_name=security_name,
            security_code=security_code,
            end_date=end_date,
            transactions=transactions,
        )
