"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that ``DBMapper`` talks to.
All I/O methods are ``async def``.

Usage:
    from entity_mapper.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.select("topics", "topic_id, subject", limit=10)
        row = await client.insert("topics", {"subject": "hi"}, returning=["topic_id"])
        await client.close()
"""

from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Relational backend interface used by ``DBMapper``.

    Table and column names are passed unquoted; implementations quote them
    with ``quote_identifier``.  Values are bound as parameters, never
    interpolated.
    """

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Select rows from table.

        Args:
            table: Table name.
            columns: Comma-separated column names, or ``"*"``.
            filters: Optional dict of field=value filters (all must match via AND).
            order_by: Optional ``"column [ASC|DESC]"`` list, comma-separated.
            limit: Optional maximum number of rows.

        Returns:
            List of dicts, one per row.  Empty list if no matches.
        """
        ...

    async def insert(self, table: str, data: dict, returning: list[str] | None = None) -> dict:
        """Insert a row.

        Args:
            table: Table name.
            data: Dict of field=value pairs to insert.
            returning: Columns to read back from the created row.

        Returns:
            The ``returning`` columns of the created row (or the generated
            ``lastrowid`` keyed by the single returning column when the
            backend has no ``RETURNING``).  Empty dict if nothing was asked.
        """
        ...

    async def update(
        self,
        table: str,
        data: dict,
        filters: dict[str, Any],
        returning: list[str] | None = None,
    ) -> int | dict:
        """Update matching rows.

        Args:
            table: Table name.
            data: Dict of field=value pairs to set.
            filters: Dict of field=value filters (required, AND-ed).
            returning: Columns to read back from the updated row.

        Returns:
            The number of rows affected, or with ``returning`` the requested
            columns of the first updated row (empty dict if nothing matched
            or the backend has no ``RETURNING``).
        """
        ...

    async def delete(self, table: str, filters: dict[str, Any]) -> int:
        """Delete matching rows and return the number of rows affected."""
        ...

    async def execute(self, sql: str, params: dict | None = None) -> list[dict] | int:
        """Execute a raw SQL statement.

        Returns:
            Rows as dicts for statements that return rows, otherwise the
            affected row count.
        """
        ...

    def quote_identifier(self, name: str) -> str:
        """Quote a (possibly dotted) identifier for this backend's dialect."""
        ...

    async def close(self) -> None:
        """Close connections and release resources."""
        ...
