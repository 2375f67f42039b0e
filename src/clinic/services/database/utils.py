"""Generic database utility functions for Supabase interactions."""

import logging
from typing import Any

from supabase import Client

logger = logging.getLogger(__name__)


class SupabaseQueryBuilder:
    """Helper class for building and executing Supabase queries."""

    def __init__(self, client: Client) -> None:
        """
        Initialize query builder.

        Args:
            client: Supabase client instance
        """
        self.client = client

    def get_by_field(
        self, table: str, field: str, value: Any, columns: str = "*"
    ) -> dict[str, Any] | None:
        """
        Fetch a single record by field value.

        Args:
            table: Table name
            field: Field name to filter by
            value: Field value
            columns: Columns to select (default: "*")

        Returns:
            First matching record or None

        Example:
            >>> builder = SupabaseQueryBuilder(client)
            >>> user = builder.get_by_field("users", "auth_id", "user_2abc")
        """
        response = self.client.table(table).select(columns).eq(field, value).limit(1).execute()
        return response.data[0] if response.data else None

    def insert_record(self, table: str, data: dict[str, Any]) -> dict[str, Any] | None:
        """
        Insert a single record.

        Args:
            table: Table name
            data: Record data dictionary

        Returns:
            Inserted record dictionary or None if failed

        Raises:
            postgrest.exceptions.APIError: If the insert violates a constraint

        Example:
            >>> builder = SupabaseQueryBuilder(client)
            >>> user = builder.insert_record(
            ...     "users",
            ...     {"auth_id": "user_2abc", "email": "a@example.com", "role": "PATIENT"}
            ... )
        """
        response = self.client.table(table).insert(data).execute()
        return response.data[0] if response.data else None

    def update_by_filter(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """
        Update records matching filters.

        Args:
            table: Table name
            filters: Dictionary of field:value pairs for filtering
            data: Fields to update

        Returns:
            List of updated record dictionaries

        Example:
            >>> builder = SupabaseQueryBuilder(client)
            >>> updated = builder.update_by_filter(
            ...     "users",
            ...     {"auth_id": "user_2abc"},
            ...     {"is_active": False}
            ... )
        """
        query = self.client.table(table).update(data)

        for field, value in filters.items():
            query = query.eq(field, value)

        response = query.execute()
        return response.data
