"""Database connection and query helpers."""

from src.clinic.services.database.connection import create_supabase_admin_client
from src.clinic.services.database.utils import SupabaseQueryBuilder

__all__ = [
    "create_supabase_admin_client",
    "SupabaseQueryBuilder",
]
