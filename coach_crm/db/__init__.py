from .supabase import (
    QueryResult,
    SupabaseAuth,
    SupabaseAuthError,
    SupabaseClient,
    SupabaseError,
    get_supabase_client,
)

__all__ = [
    "QueryResult",
    "SupabaseAuth",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseError",
    "get_supabase_client",
]
