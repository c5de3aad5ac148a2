"""Analytical data store client for shipment data using PostgreSQL."""
import asyncio
import asyncpg
import re
from datetime import date
from typing import List, Dict, Any, Optional, Protocol, Sequence, Tuple
import structlog

from data_store.config import DataStoreConfig
from shared.exceptions import DataStoreError

logger = structlog.get_logger()

IDENTIFIER_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")


class AnalyticsStore(Protocol):
    """Aggregation primitives the tool executor relies on."""

    async def rpc(self, function_name: str, params: Dict[str, Any]) -> Any:
        ...

    async def select_rows(
        self,
        customer_id: str,
        columns: Sequence[str],
        since: Optional[date] = None,
        until: Optional[date] = None,
        not_null: Sequence[str] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        ...

    async def summarize(
        self,
        customer_id: str,
        sum_columns: Sequence[str],
        distinct_columns: Sequence[str] = (),
        since: Optional[date] = None,
        until: Optional[date] = None
    ) -> Dict[str, Any]:
        ...

    async def fetch_setting(self, key: str) -> Optional[str]:
        ...


def quote_identifier(name: str) -> str:
    """Validate and double-quote a column/function identifier."""
    candidate = (name or "").strip()
    if not IDENTIFIER_PATTERN.match(candidate):
        raise DataStoreError(f"Invalid field name: {name!r}")
    return f'"{candidate}"'


def coerce_customer_id(customer_id: str) -> Any:
    """Customer ids are integers in the store but travel as strings."""
    text = str(customer_id).strip()
    return int(text) if text.isdigit() else text


class PostgresAnalyticsStore:
    """Shipment data store backed by PostgreSQL functions and the report view."""

    def __init__(self, config: Optional[DataStoreConfig] = None):
        self.config = config or DataStoreConfig()
        self.pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()
        logger.info("Initialized analytics store", view=self.config.report_view, host=self.config.db_host)

    async def initialize(self):
        """Initialize database connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                host=self.config.db_host,
                port=self.config.db_port,
                user=self.config.db_user,
                password=self.config.db_password,
                database=self.config.db_name,
                min_size=self.config.db_pool_min_size,
                max_size=self.config.db_pool_size,
                command_timeout=self.config.command_timeout
            )
            logger.info("Connected to PostgreSQL analytics store")
        except Exception as e:
            logger.error("Failed to connect to PostgreSQL", error=str(e))
            raise DataStoreError(f"Connection failed: {e}") from e

    async def close(self):
        """Close database connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Closed PostgreSQL connection pool")

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self.pool is not None:
            return self.pool
        async with self._pool_lock:
            # Concurrent first callers share one pool
            if self.pool is None:
                await self.initialize()
        return self.pool

    def _qualified(self, name: str) -> str:
        quoted = quote_identifier(name)
        if self.config.schema_name:
            return f"{quote_identifier(self.config.schema_name)}.{quoted}"
        return quoted

    async def rpc(self, function_name: str, params: Dict[str, Any]) -> Any:
        """Call a stored function with named arguments and return its (JSON) value."""
        pool = await self._ensure_pool()
        args = []
        placeholders = []
        for idx, (name, value) in enumerate(params.items(), 1):
            placeholders.append(f"{quote_identifier(name)} => ${idx}")
            if name == "p_customer_id":
                value = coerce_customer_id(value)
            args.append(value)
        sql = f"SELECT {self._qualified(function_name)}({', '.join(placeholders)})"

        try:
            async with pool.acquire() as conn:
                value = await conn.fetchval(sql, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Store function call failed", function=function_name, error=str(e))
            raise DataStoreError(str(e)) from e

        logger.debug("Store function call completed", function=function_name)
        return value

    async def select_rows(
        self,
        customer_id: str,
        columns: Sequence[str],
        since: Optional[date] = None,
        until: Optional[date] = None,
        not_null: Sequence[str] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Read customer-scoped rows from the report view."""
        pool = await self._ensure_pool()
        # Deduplicate while keeping order
        selected = list(dict.fromkeys(columns))
        select_list = ", ".join(quote_identifier(c) for c in selected)
        where, args = self._scope(customer_id, since, until, not_null)

        sql = f"SELECT {select_list} FROM {self._qualified(self.config.report_view)} WHERE {where}"
        if order_by:
            sql += f" ORDER BY {quote_identifier(order_by)} ASC"
        args.append(min(limit or self.config.row_limit, self.config.row_limit))
        sql += f" LIMIT ${len(args)}"

        try:
            async with pool.acquire() as conn:
                records = await conn.fetch(sql, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Store row query failed", columns=selected, error=str(e))
            raise DataStoreError(str(e)) from e

        rows = [dict(record) for record in records]
        logger.debug("Store row query completed", columns=selected, rows=len(rows))
        return rows

    async def summarize(
        self,
        customer_id: str,
        sum_columns: Sequence[str],
        distinct_columns: Sequence[str] = (),
        since: Optional[date] = None,
        until: Optional[date] = None
    ) -> Dict[str, Any]:
        """Row count, column sums, distinct counts and date range computed in the database.

        Sums are None when a column has no non-null values.
        """
        pool = await self._ensure_pool()
        date_column = quote_identifier(self.config.date_column)
        sum_columns = list(dict.fromkeys(sum_columns))
        distinct_columns = list(dict.fromkeys(distinct_columns))

        select_list = ["COUNT(*) AS row_count"]
        select_list += [f"SUM({quote_identifier(c)}) AS {quote_identifier('sum_' + c)}" for c in sum_columns]
        select_list += [
            f"COUNT(DISTINCT {quote_identifier(c)}) AS {quote_identifier('distinct_' + c)}"
            for c in distinct_columns
        ]
        select_list += [f"MIN({date_column}) AS earliest", f"MAX({date_column}) AS latest"]
        where, args = self._scope(customer_id, since, until)
        sql = f"SELECT {', '.join(select_list)} FROM {self._qualified(self.config.report_view)} WHERE {where}"

        try:
            async with pool.acquire() as conn:
                record = await conn.fetchrow(sql, *args)
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Store summary query failed", columns=sum_columns, error=str(e))
            raise DataStoreError(str(e)) from e

        row = dict(record) if record is not None else {}
        return {
            "row_count": int(row.get("row_count") or 0),
            "sums": {c: row.get(f"sum_{c}") for c in sum_columns},
            "distinct": {c: int(row.get(f"distinct_{c}") or 0) for c in distinct_columns},
            "earliest": row.get("earliest"),
            "latest": row.get("latest"),
        }

    def _scope(
        self,
        customer_id: str,
        since: Optional[date] = None,
        until: Optional[date] = None,
        not_null: Sequence[str] = ()
    ) -> Tuple[str, List[Any]]:
        """WHERE clause and arguments restricting the view to one customer and date window."""
        date_column = quote_identifier(self.config.date_column)
        clauses = ["customer_id = $1"]
        args: List[Any] = [coerce_customer_id(customer_id)]
        if since is not None:
            args.append(since)
            clauses.append(f"{date_column} >= ${len(args)}")
        if until is not None:
            args.append(until)
            clauses.append(f"{date_column} < ${len(args)}")
        for column in not_null:
            clauses.append(f"{quote_identifier(column)} IS NOT NULL")
        return " AND ".join(clauses), args

    async def fetch_setting(self, key: str) -> Optional[str]:
        """Read a single value from the settings table."""
        pool = await self._ensure_pool()
        sql = (
            f"SELECT setting_value FROM {self._qualified(self.config.settings_table)} "
            f"WHERE setting_key = $1 LIMIT 1"
        )
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(sql, key)
        except (asyncpg.PostgresError, OSError) as e:
            raise DataStoreError(str(e)) from e
