"""
Turn Accumulator - Orchestrates one send-message request from raw text to a
persisted assistant turn.

Generation runs in its own task and feeds fragments through a queue. The
HTTP response only drains that queue, so a client that goes away stops
receiving fragments but never stops generation or the final commit.
"""

import asyncio
import logging
import time
from typing import AsyncGenerator, List, Optional, Sequence, Set

from .exceptions import ConversationBusyError, LLMNotConfiguredError
from .prompts import SYSTEM_PROMPT
from ..llm.base import LLMProvider, LLMMessage
from ..models.chat import Conversation, Message, MessageRole, utcnow
from ..storage.conversation_store import ConversationStore

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Sorry, I encountered an error while processing your message."

_END = object()
_FAILED = object()

# Keeps running sessions referenced until they finish
_running_tasks: Set[asyncio.Task] = set()


def to_model_messages(messages: Sequence[Message]) -> List[LLMMessage]:
    """
    Project stored turns into the role/content pairs the model expects.

    Timestamps and any other stored attributes are dropped; order is kept.
    """
    return [LLMMessage.text(m.role.value, m.content) for m in messages]


class InFlightRegistry:
    """
    Tracks conversations with a send in progress.
    At most one send per conversation id may run at a time.
    """

    def __init__(self):
        self._active: Set[str] = set()

    def acquire(self, conversation_id: str) -> None:
        if conversation_id in self._active:
            raise ConversationBusyError()
        self._active.add(conversation_id)

    def release(self, conversation_id: str) -> None:
        self._active.discard(conversation_id)

    def is_active(self, conversation_id: str) -> bool:
        return conversation_id in self._active

    def clear(self) -> None:
        self._active.clear()


send_registry = InFlightRegistry()


class StreamingSession:
    """
    Transient state of one in-flight send: the accumulation buffer and the
    fragment queue read by the transport. Never shared across requests.
    """

    def __init__(
        self,
        store: ConversationStore,
        llm_provider: Optional[LLMProvider],
        conversation: Conversation,
        user_message: Message,
        system_prompt: str,
        registry: InFlightRegistry,
    ):
        self.store = store
        self.llm_provider = llm_provider
        self.conversation = conversation
        self.user_message = user_message
        self.system_prompt = system_prompt
        self.registry = registry

        self.failed = False
        self.closed = False
        self.result: Optional[Conversation] = None
        self.error: Optional[Exception] = None

        self._fragments: List[str] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def text(self) -> str:
        """Everything emitted so far, in order."""
        return "".join(self._fragments)

    def build_prompt(self) -> List[LLMMessage]:
        history = to_model_messages([*self.conversation.messages, self.user_message])
        return [LLMMessage.text("system", self.system_prompt), *history]

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())
        _running_tasks.add(self._task)
        self._task.add_done_callback(_running_tasks.discard)

    async def _emit(self, fragment: str) -> None:
        self._fragments.append(fragment)
        await self._queue.put(fragment)

    async def _generate(self) -> None:
        if self.llm_provider is None:
            raise LLMNotConfiguredError()
        async for fragment in self.llm_provider.chat_completion_stream(self.build_prompt()):
            if fragment:
                await self._emit(fragment)

    async def _run(self) -> None:
        conversation_id = self.conversation.id
        start_time = time.time()
        try:
            try:
                await self._generate()
            except Exception as e:
                self.failed = True
                logger.error(
                    f"Generation failed for conversation {conversation_id}: {e}",
                    exc_info=True,
                    extra={"extra_fields": {
                        "conversation_id": conversation_id,
                        "fragments_emitted": len(self._fragments),
                    }}
                )
                # The stored reply matches what the client was shown
                await self._emit(FALLBACK_MESSAGE)

            assistant_message = Message(role=MessageRole.ASSISTANT, content=self.text)
            try:
                self.result = await self.store.append_and_persist(
                    self.conversation.user_id,
                    conversation_id,
                    [self.user_message, assistant_message],
                    assistant_message.timestamp,
                )
            except Exception as e:
                self.error = e
                logger.error(
                    f"Failed to persist turns for conversation {conversation_id}: {e}",
                    exc_info=True,
                    extra={"extra_fields": {"conversation_id": conversation_id}}
                )
        finally:
            self.registry.release(conversation_id)

        logger.info(
            "Message send completed",
            extra={"extra_fields": {
                "conversation_id": conversation_id,
                "failed": self.failed,
                "persisted": self.error is None,
                "fragments": len(self._fragments),
                "content_length": len(self.text),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            }}
        )
        await self._queue.put(_FAILED if self.error is not None else _END)

    async def fragments(self) -> AsyncGenerator[str, None]:
        """
        Yield fragments in arrival order until the session closes.

        Raises the persistence error, if any, after the last fragment so the
        transport can only cut the byte stream short.
        """
        while True:
            item = await self._queue.get()
            if item is _END:
                self.closed = True
                return
            if item is _FAILED:
                self.closed = True
                raise self.error
            yield item

    async def wait(self) -> Conversation:
        """Wait for generation and persistence to finish."""
        if self._task is not None:
            await self._task
        if self.error is not None:
            raise self.error
        return self.result


class TurnAccumulator:
    """
    Appends the user's turn, invokes the model, accumulates fragments and
    commits both turns once.
    """

    def __init__(
        self,
        store: ConversationStore,
        llm_provider: Optional[LLMProvider],
        system_prompt: Optional[str] = None,
        registry: InFlightRegistry = send_registry,
    ):
        """
        Initialize the accumulator.

        Args:
            store: Conversation store used for loading and the final commit
            llm_provider: Model capability, None when not configured
            system_prompt: Persona override, defaults to SYSTEM_PROMPT
            registry: In-flight send registry
        """
        self.store = store
        self.llm_provider = llm_provider
        self.system_prompt = system_prompt or SYSTEM_PROMPT
        self.registry = registry

    async def handle_send(self, user_id: str, conversation_id: str, text: str) -> StreamingSession:
        """
        Start a send and return its streaming session.

        Nothing is written before generation completes; loading errors and a
        busy conversation abort here with no side effects.

        Raises:
            ConversationNotFoundError: If absent or owned by another user
            ConversationBusyError: If a send is already running for this conversation
        """
        # Claim the conversation before loading it, so the history read below
        # cannot be overtaken by another send's commit
        try:
            self.registry.acquire(conversation_id)
        except ConversationBusyError:
            # Foreign or absent conversations still report not found
            await self.store.get(user_id, conversation_id)
            raise

        try:
            conversation = await self.store.get(user_id, conversation_id)
            user_message = Message(role=MessageRole.USER, content=text, timestamp=utcnow())
            session = StreamingSession(
                store=self.store,
                llm_provider=self.llm_provider,
                conversation=conversation,
                user_message=user_message,
                system_prompt=self.system_prompt,
                registry=self.registry,
            )
            session.start()
        except Exception:
            self.registry.release(conversation_id)
            raise

        logger.info(
            f"Message send started for conversation {conversation_id}",
            extra={"extra_fields": {
                "user_id": user_id,
                "conversation_id": conversation_id,
                "history_length": len(conversation.messages),
            }}
        )
        return session
