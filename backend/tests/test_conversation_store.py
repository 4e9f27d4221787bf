"""
Unit tests for the conversation store.
"""

import asyncio
import pytest

from app.core.exceptions import ConversationNotFoundError
from app.models.chat import Message, MessageRole, utcnow
from app.storage import ConversationStore, LocalStorage, conversation_store


def _turns(text: str):
    return [
        Message(role=MessageRole.USER, content=text),
        Message(role=MessageRole.ASSISTANT, content=f"re: {text}"),
    ]


class TestCreateAndGet:
    """Tests for creating and reading conversations."""

    @pytest.mark.asyncio
    async def test_create_is_empty(self, store):
        conversation = await store.create("alice", "Campaign ideas")
        assert conversation.title == "Campaign ideas"
        assert conversation.messages == []
        assert conversation.user_id == "alice"
        assert conversation.last_message_at == conversation.created_at

    @pytest.mark.asyncio
    async def test_blank_title_gets_default(self, store):
        conversation = await store.create("alice", "")
        assert conversation.title == "New Conversation"

    @pytest.mark.asyncio
    async def test_get_round_trips_from_disk(self, storage, store):
        created = await store.create("alice", "Persisted")
        fresh_store = ConversationStore(storage)
        loaded = await fresh_store.get("alice", created.id)
        assert loaded.id == created.id
        assert loaded.title == "Persisted"

    @pytest.mark.asyncio
    async def test_other_user_gets_not_found(self, store):
        conversation = await store.create("alice", "Private")
        with pytest.raises(ConversationNotFoundError):
            await store.get("bob", conversation.id)

    @pytest.mark.asyncio
    async def test_missing_and_malformed_ids_not_found(self, store):
        with pytest.raises(ConversationNotFoundError):
            await store.get("alice", "0" * 32)
        with pytest.raises(ConversationNotFoundError):
            await store.get("alice", "../users/username_index")

    @pytest.mark.asyncio
    async def test_document_uses_wire_field_names(self, storage, store):
        conversation = await store.create("alice", "Keys")
        raw = await storage.load(f"conversations/alice/{conversation.id}.json")
        text = raw.decode("utf-8")
        assert '"_id"' in text
        assert '"lastMessageAt"' in text
        assert '"userId"' in text


class TestAppendAndPersist:
    """Tests for the single message write path."""

    @pytest.mark.asyncio
    async def test_appends_in_order_and_updates_timestamp(self, store):
        conversation = await store.create("alice", "Order")
        before = conversation.last_message_at

        stamp = utcnow()
        updated = await store.append_and_persist("alice", conversation.id, _turns("first"), stamp)
        updated = await store.append_and_persist("alice", conversation.id, _turns("second"), utcnow())

        assert [m.content for m in updated.messages] == ["first", "re: first", "second", "re: second"]
        assert [m.role for m in updated.messages] == [
            MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER, MessageRole.ASSISTANT,
        ]
        assert updated.last_message_at >= stamp >= before

        reloaded = await store.get("alice", conversation.id)
        assert len(reloaded.messages) == 4

    @pytest.mark.asyncio
    async def test_not_owned_is_not_found_and_unchanged(self, store):
        conversation = await store.create("alice", "Mine")
        with pytest.raises(ConversationNotFoundError):
            await store.append_and_persist("bob", conversation.id, _turns("intrusion"), utcnow())
        assert (await store.get("alice", conversation.id)).messages == []

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self, store):
        conversation = await store.create("alice", "Busy")
        await asyncio.gather(*[
            store.append_and_persist("alice", conversation.id, _turns(f"msg {i}"), utcnow())
            for i in range(5)
        ])
        reloaded = await store.get("alice", conversation.id)
        assert len(reloaded.messages) == 10

    @pytest.mark.asyncio
    async def test_failed_write_raises_persistence_error(self, store, monkeypatch):
        from app.core.exceptions import PersistenceError

        conversation = await store.create("alice", "Readonly")

        async def failing_save(path, content):
            return False

        monkeypatch.setattr(store.storage, "save", failing_save)
        with pytest.raises(PersistenceError):
            await store.append_and_persist("alice", conversation.id, _turns("lost"), utcnow())


class TestListing:
    """Tests for conversation summaries."""

    @pytest.mark.asyncio
    async def test_sorted_by_last_message_desc(self, store):
        first = await store.create("alice", "A")
        second = await store.create("alice", "B")

        summaries = await store.list_summaries("alice")
        assert [s.id for s in summaries] == [second.id, first.id]

        await store.append_and_persist("alice", first.id, _turns("bump"), utcnow())
        summaries = await store.list_summaries("alice")
        assert [s.id for s in summaries] == [first.id, second.id]
        assert summaries[0].last_message_at > summaries[1].last_message_at

    @pytest.mark.asyncio
    async def test_only_owned_conversations_listed(self, store):
        await store.create("alice", "Alice's")
        await store.create("bob", "Bob's")
        assert [s.title for s in await store.list_summaries("alice")] == ["Alice's"]
        assert await store.list_summaries("carol") == []


class TestRenameAndDelete:
    """Tests for rename and delete."""

    @pytest.mark.asyncio
    async def test_rename(self, store):
        conversation = await store.create("alice", "Old")
        renamed = await store.rename("alice", conversation.id, "New title")
        assert renamed.title == "New title"
        assert (await store.get("alice", conversation.id)).title == "New title"

    @pytest.mark.asyncio
    async def test_rename_other_user_not_found(self, store):
        conversation = await store.create("alice", "Old")
        with pytest.raises(ConversationNotFoundError):
            await store.rename("bob", conversation.id, "Hijacked")

    @pytest.mark.asyncio
    async def test_delete_then_delete_again(self, store):
        conversation = await store.create("alice", "Temp")
        await store.delete("alice", conversation.id)
        with pytest.raises(ConversationNotFoundError):
            await store.get("alice", conversation.id)
        with pytest.raises(ConversationNotFoundError):
            await store.delete("alice", conversation.id)

    @pytest.mark.asyncio
    async def test_delete_other_user_not_found(self, store):
        conversation = await store.create("alice", "Keep")
        with pytest.raises(ConversationNotFoundError):
            await store.delete("bob", conversation.id)
        assert (await store.get("alice", conversation.id)).title == "Keep"


class TestLocalStorage:
    """Tests for the filesystem backend."""

    @pytest.mark.asyncio
    async def test_save_replaces_and_leaves_no_temp_files(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        assert await storage.save("docs/a.json", "one")
        assert await storage.save("docs/a.json", "two")
        assert await storage.load("docs/a.json") == b"two"
        assert await storage.list("docs") == ["docs/a.json"]

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, tmp_path):
        storage = LocalStorage(str(tmp_path / "base"))
        assert await storage.save("../escape.txt", "x") is False
        assert await storage.exists("../escape.txt") is False

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, tmp_path):
        storage = LocalStorage(str(tmp_path))
        assert await storage.delete("nope.json") is False


class TestDocumentLocks:
    """Tests for per-document write locks."""

    @pytest.mark.asyncio
    async def test_lock_dropped_after_write(self, store):
        conversation = await store.create("alice", "Short lived")
        await store.append_and_persist("alice", conversation.id, _turns("hello"), utcnow())
        await store.rename("alice", conversation.id, "Renamed")

        path = store._conversation_path("alice", conversation.id)
        assert path not in conversation_store._document_locks

    @pytest.mark.asyncio
    async def test_lock_shared_while_writers_wait(self, store):
        conversation = await store.create("alice", "Contended")
        path = store._conversation_path("alice", conversation.id)

        lock = conversation_store._lock_for(path)
        async with lock:
            pending = asyncio.create_task(
                store.append_and_persist("alice", conversation.id, _turns("queued"), utcnow())
            )
            await asyncio.sleep(0)
            assert conversation_store._lock_for(path) is lock
            assert not pending.done()

        updated = await pending
        assert [m.content for m in updated.messages] == ["queued", "re: queued"]
