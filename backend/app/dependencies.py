"""
Process-scoped collaborators, built once on first use.

Each factory is a FastAPI dependency; tests replace them through
``app.dependency_overrides``.
"""

from functools import lru_cache

from app.db import get_supabase_admin
from app.services.email_processor import EmailProcessor
from app.services.event_store import SupabaseEventStore
from app.services.extractor import EventExtractor
from app.services.model_client import build_model_client
from app.services.notifier import PostmarkNotifier


@lru_cache(maxsize=1)
def get_event_store() -> SupabaseEventStore:
    return SupabaseEventStore(get_supabase_admin())


@lru_cache(maxsize=1)
def get_event_extractor() -> EventExtractor:
    return EventExtractor.from_env(build_model_client())


@lru_cache(maxsize=1)
def get_email_processor() -> EmailProcessor:
    return EmailProcessor(
        store=get_event_store(),
        extractor=get_event_extractor(),
        notifier=PostmarkNotifier.from_env(),
    )
