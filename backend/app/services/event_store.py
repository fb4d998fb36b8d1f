"""
Key-value store for event records.

Records live in a Supabase table used as a plain key-value store:

    create table event_records (
        key        text primary key,      -- "event:<id>"
        value      jsonb not null,
        updated_at timestamptz not null default now()
    );

Consistency model: each record has a single writer (the processor handling
that email). patch() is read-merge-write with last-writer-wins semantics and
no locking.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional, Protocol

from supabase import Client

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "event_records"


class EventStore(Protocol):
    def set(self, key: str, value: dict) -> None:
        ...

    def get(self, key: str) -> Optional[dict]:
        ...

    def patch(self, key: str, partial: dict) -> Optional[dict]:
        """Merge partial into the stored value. Returns the merged value, or None if absent."""
        ...

    def scan(self, prefix: str) -> list[dict]:
        ...


class SupabaseEventStore:
    """EventStore backed by a Supabase table of (key, value jsonb) rows."""

    def __init__(self, client: Client, table: str | None = None):
        self._client = client
        self._table = table or os.getenv("EVENT_RECORDS_TABLE", DEFAULT_TABLE)

    def set(self, key: str, value: dict) -> None:
        try:
            self._client.table(self._table).upsert(
                {
                    "key": key,
                    "value": value,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                }
            ).execute()
        except Exception as e:
            raise Exception(f"Failed to write {key} to store: {str(e)}")

    def get(self, key: str) -> Optional[dict]:
        try:
            result = (
                self._client.table(self._table)
                .select("value")
                .eq("key", key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise Exception(f"Failed to read {key} from store: {str(e)}")
        if not result.data:
            return None
        return result.data[0]["value"]

    def patch(self, key: str, partial: dict) -> Optional[dict]:
        current = self.get(key)
        if current is None:
            return None
        merged = {**current, **partial}
        self.set(key, merged)
        return merged

    def scan(self, prefix: str) -> list[dict]:
        try:
            result = (
                self._client.table(self._table)
                .select("value")
                .like("key", f"{prefix}%")
                .execute()
            )
        except Exception as e:
            raise Exception(f"Failed to scan store for {prefix!r}: {str(e)}")
        return [row["value"] for row in result.data or []]

    def ping(self) -> None:
        """Cheap reachability check used by /health/db."""
        self._client.table(self._table).select("key").limit(1).execute()
