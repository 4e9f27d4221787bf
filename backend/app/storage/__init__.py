"""Storage module - provides interface and implementations for data persistence."""

from .interface import StorageInterface
from .local_storage import LocalStorage
from .conversation_store import ConversationStore
from .user_storage import UserStorage, UsernameTakenError

__all__ = ['StorageInterface', 'LocalStorage', 'ConversationStore', 'UserStorage', 'UsernameTakenError']
