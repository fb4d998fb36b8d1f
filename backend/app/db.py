"""
Database client configuration.
Uses Supabase (PostgREST) as the key-value store for event records.
"""

import os
from functools import lru_cache

from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()


@lru_cache(maxsize=1)
def get_supabase_admin() -> Client:
    """
    Service-level Supabase client (bypasses RLS), created on first use.

    Raises ValueError when SUPABASE_URL / SUPABASE_SERVICE_KEY are missing.
    """
    url = os.getenv("SUPABASE_URL")
    service_key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not service_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment variables")
    return create_client(url, service_key)
