"""
Conversation Store - Durable record of conversations keyed by owning user.

Each conversation is one JSON document at
``conversations/<user_id>/<conversation_id>.json``. Because the owner is part
of the path, a conversation owned by someone else is simply not found, which
keeps "absent" and "not yours" indistinguishable.
"""

import asyncio
import logging
import uuid
import weakref
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ..core.exceptions import ConversationNotFoundError, PersistenceError
from ..models.chat import (
    Conversation,
    ConversationSummary,
    Message,
    DEFAULT_CONVERSATION_TITLE,
    is_valid_conversation_id,
    utcnow,
)
from .interface import StorageInterface

logger = logging.getLogger(__name__)

# Writes to one document are serialized process-wide, whichever store instance issues them.
# A lock lives only while some writer holds or waits on it.
_document_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(path: str) -> asyncio.Lock:
    lock = _document_locks.get(path)
    if lock is None:
        lock = _document_locks[path] = asyncio.Lock()
    return lock


class ConversationStore:
    """
    Manages persistent storage of conversations.
    All reads and writes are ownership-checked against ``user_id``.
    """

    def __init__(self, storage: StorageInterface):
        """
        Initialize conversation store.

        Args:
            storage: StorageInterface implementation (typically LocalStorage)
        """
        self.storage = storage
        self.conversations_dir = "conversations"

    def _user_dir(self, user_id: str) -> str:
        return f"{self.conversations_dir}/{user_id}"

    def _conversation_path(self, user_id: str, conversation_id: str) -> str:
        # Ids become file names, reject anything that is not a plain hex id
        if not is_valid_conversation_id(conversation_id):
            raise ConversationNotFoundError()
        return f"{self._user_dir(user_id)}/{conversation_id}.json"

    async def _load(self, path: str, user_id: str) -> Optional[Conversation]:
        content = await self.storage.load(path)
        if content is None:
            return None
        try:
            conversation = Conversation.model_validate_json(content)
        except ValidationError as e:
            logger.error(f"Corrupted conversation document {path}: {e}")
            return None
        if conversation.user_id != user_id:
            return None
        return conversation

    async def _save(self, path: str, conversation: Conversation) -> None:
        content = conversation.model_dump_json(by_alias=True, indent=2)
        if not await self.storage.save(path, content):
            raise PersistenceError(f"Failed to save conversation {conversation.id}")

    async def list_summaries(self, user_id: str) -> List[ConversationSummary]:
        """
        List conversations owned by a user, most recently active first.

        Args:
            user_id: Owning user ID

        Returns:
            List[ConversationSummary]: Sorted by lastMessageAt descending
        """
        files = await self.storage.list(self._user_dir(user_id), pattern="*.json")
        summaries = []
        for file_path in files:
            conversation = await self._load(file_path, user_id)
            if conversation is not None:
                summaries.append(conversation.summary())

        summaries.sort(key=lambda s: (s.last_message_at, s.created_at), reverse=True)
        return summaries

    async def get(self, user_id: str, conversation_id: str) -> Conversation:
        """
        Get a full conversation including messages.

        Raises:
            ConversationNotFoundError: If absent or owned by another user
        """
        conversation = await self._load(self._conversation_path(user_id, conversation_id), user_id)
        if conversation is None:
            raise ConversationNotFoundError()
        return conversation

    async def create(self, user_id: str, title: Optional[str] = None) -> Conversation:
        """
        Create an empty conversation.

        Args:
            user_id: Owning user ID
            title: Conversation title, defaults to "New Conversation" when blank

        Returns:
            Conversation: The created conversation
        """
        now = utcnow()
        conversation = Conversation(
            id=uuid.uuid4().hex,
            user_id=user_id,
            title=title or DEFAULT_CONVERSATION_TITLE,
            messages=[],
            last_message_at=now,
            created_at=now,
            updated_at=now,
        )
        path = self._conversation_path(user_id, conversation.id)
        async with _lock_for(path):
            await self._save(path, conversation)

        logger.info(
            "Conversation created",
            extra={"extra_fields": {"user_id": user_id, "conversation_id": conversation.id}}
        )
        return conversation

    async def append_and_persist(
        self,
        user_id: str,
        conversation_id: str,
        messages: Sequence[Message],
        last_message_at: datetime,
    ) -> Conversation:
        """
        Atomically append turns and update lastMessageAt.

        The document is re-read under the write lock so turns appended by an
        earlier writer are never lost.

        Args:
            user_id: Owning user ID
            conversation_id: Conversation ID
            messages: Turns to append, in order
            last_message_at: New lastMessageAt value

        Returns:
            Conversation: The updated conversation

        Raises:
            ConversationNotFoundError: If absent or owned by another user
            PersistenceError: If the document could not be written
        """
        path = self._conversation_path(user_id, conversation_id)
        async with _lock_for(path):
            conversation = await self._load(path, user_id)
            if conversation is None:
                raise ConversationNotFoundError()

            conversation.messages.extend(messages)
            conversation.last_message_at = last_message_at
            conversation.updated_at = utcnow()
            await self._save(path, conversation)

        logger.debug(
            f"Appended {len(messages)} message(s) to conversation {conversation_id}",
            extra={"extra_fields": {
                "user_id": user_id,
                "conversation_id": conversation_id,
                "message_count": len(conversation.messages),
            }}
        )
        return conversation

    async def rename(self, user_id: str, conversation_id: str, title: str) -> Conversation:
        """Rename a conversation."""
        path = self._conversation_path(user_id, conversation_id)
        async with _lock_for(path):
            conversation = await self._load(path, user_id)
            if conversation is None:
                raise ConversationNotFoundError()

            conversation.title = title
            conversation.updated_at = utcnow()
            await self._save(path, conversation)
        return conversation

    async def delete(self, user_id: str, conversation_id: str) -> None:
        """
        Delete a conversation in a single file removal.

        Raises:
            ConversationNotFoundError: If absent or owned by another user
        """
        path = self._conversation_path(user_id, conversation_id)
        async with _lock_for(path):
            if await self._load(path, user_id) is None:
                raise ConversationNotFoundError()
            if not await self.storage.delete(path):
                raise PersistenceError(f"Failed to delete conversation {conversation_id}")

        logger.info(
            "Conversation deleted",
            extra={"extra_fields": {"user_id": user_id, "conversation_id": conversation_id}}
        )
