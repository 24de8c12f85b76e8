"""Primary relational store fetcher.

Source: any SQLAlchemy database URL (PRIMARY_DB_URL), default sqlite:///data/primary.db
Query: SELECT code, name, buy, sell FROM <table>  (table from PRIMARY_DB_TABLE, default "rates")
The blocking query runs in a worker thread so it never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import re

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConfigError, FetchError
from ..RateRecord import IncomingQuote
from .base import BaseFetcher, register_fetcher

logger = logging.getLogger(__name__)

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


@register_fetcher
class PrimaryStoreFetcher(BaseFetcher):
    """Reads the operator-maintained quote table.

    :ivar table: Table (optionally schema-qualified) holding the quotes.
    """

    name = "primary"

    def __init__(self, url: str, timeout: float | None = None, table: str = "rates"):
        """Initialize with the database URL and table name.

        :raises ConfigError: If the table name is not a plain identifier.
        """
        super().__init__(url=url, timeout=timeout)
        if not _TABLE_NAME.match(table):
            raise ConfigError(f"Invalid table name '{table}'")
        self.table = table
        self._engine_instance: Engine | None = None

    def _get_engine(self) -> Engine:
        if self._engine_instance is None:
            self._engine_instance = create_engine(self.url, pool_pre_ping=True)
        return self._engine_instance

    def _query(self) -> list[IncomingQuote]:
        engine = self._get_engine()
        query = text(f"SELECT code, name, buy, sell FROM {self.table}")
        quotes: list[IncomingQuote] = []
        with engine.connect() as connection:
            for row in connection.execute(query):
                mapping = row._mapping
                code = mapping["code"]
                if code is None:
                    continue
                quotes.append(
                    IncomingQuote(
                        code=str(code).strip(),
                        name=str(mapping["name"] or "").strip(),
                        buy=mapping["buy"],
                        sell=mapping["sell"],
                    )
                )
        return quotes

    async def fetch_quotes(self) -> list[IncomingQuote]:
        """Query the quote table.

        :raises FetchError: If the database cannot be queried.
        """
        try:
            quotes = await asyncio.to_thread(self._query)
        except SQLAlchemyError as e:
            raise FetchError(f"[primary] Query failed: {e}") from e
        logger.debug(f"[primary] Read {len(quotes)} rows from {self.table}")
        return quotes

    async def close(self) -> None:
        """Dispose of the connection pool."""
        if self._engine_instance is not None:
            self._engine_instance.dispose()
            self._engine_instance = None
