"""
Shared FastAPI dependencies. Tests replace these through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Optional
from fastapi import Depends

from ..config import settings
from ..llm.base import LLMProvider
from ..llm.factory import create_llm_provider
from ..storage import StorageInterface, LocalStorage, ConversationStore, UserStorage


@lru_cache
def get_storage() -> StorageInterface:
    """Process-wide storage backend."""
    return LocalStorage(settings.local_storage_path)


def get_conversation_store(storage: StorageInterface = Depends(get_storage)) -> ConversationStore:
    return ConversationStore(storage)


def get_user_storage(storage: StorageInterface = Depends(get_storage)) -> UserStorage:
    return UserStorage(storage)


def get_llm_provider() -> Optional[LLMProvider]:
    """Get configured LLM provider or None."""
    api_key = settings.llm_api_key or settings.openrouter_api_key or settings.openai_api_key
    if not api_key:
        return None
    extra = {"app_title": settings.app_name} if settings.llm_provider == "openrouter" else {}
    return create_llm_provider(
        provider=settings.llm_provider,
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout,
        **extra,
    )
