"""
Chat API client and streaming reader.

``ChatClient`` wraps the HTTP API. ``ConversationReader`` drives one
conversation view: it sends a message, renders the partial reply as it
streams in and folds the final reply into the transcript when the stream
closes.
"""

import codecs
import logging
from typing import AsyncIterator, Callable, List, Optional

import httpx

from ..models.chat import Conversation, ConversationSummary, Message, MessageRole, utcnow

logger = logging.getLogger(__name__)


class ChatAPIError(Exception):
    """Non-success response from the chat API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class SessionExpiredError(ChatAPIError):
    """The token was rejected; the cached identity has been cleared."""


class StreamInProgressError(RuntimeError):
    """A send is already streaming for this view."""


class ChatClient:
    """
    Async client for the chat API.

    Usage:
        async with ChatClient("http://localhost:8000", token=token) as client:
            conversation = await client.create_conversation("New Conversation")
            async for text in client.stream_message(conversation.id, "Hi"):
                print(text, end="")
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 120.0,
    ):
        self.token = token
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Translate an error response; a 401 drops the cached token."""
        if response.is_success:
            return
        try:
            message = response.json().get("message")
        except (ValueError, AttributeError):
            message = None
        message = message or f"Request failed with status {response.status_code}"

        if response.status_code == 401:
            self.token = None
            raise SessionExpiredError(401, "Session expired")
        raise ChatAPIError(response.status_code, message)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = await self._http.request(method, url, headers=self._headers(), **kwargs)
        self._raise_for_status(response)
        return response

    async def get_conversations(self) -> List[ConversationSummary]:
        response = await self._request("GET", "/chat/conversations")
        return [ConversationSummary.model_validate(item) for item in response.json()]

    async def get_conversation(self, conversation_id: str) -> Conversation:
        response = await self._request("GET", f"/chat/conversations/{conversation_id}")
        return Conversation.model_validate(response.json())

    async def create_conversation(self, title: str) -> Conversation:
        response = await self._request("POST", "/chat/conversations", json={"title": title})
        return Conversation.model_validate(response.json())

    async def update_conversation(self, conversation_id: str, title: str) -> Conversation:
        response = await self._request("PUT", f"/chat/conversations/{conversation_id}", json={"title": title})
        return Conversation.model_validate(response.json())

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/chat/conversations/{conversation_id}")

    async def stream_message(self, conversation_id: str, message: str) -> AsyncIterator[str]:
        """
        Send a message and yield decoded text as chunks arrive.

        Bytes are decoded incrementally, so a multi-byte character split
        across chunks is yielded once, whole. Invalid bytes become U+FFFD.

        Raises:
            ChatAPIError: If the server rejects the request before streaming
            httpx.HTTPError: If the stream breaks mid-way
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        async with self._http.stream(
            "POST",
            f"/chat/conversations/{conversation_id}/messages",
            json={"message": message},
            headers=self._headers(),
        ) as response:
            if not response.is_success:
                await response.aread()
                self._raise_for_status(response)

            async for chunk in response.aiter_bytes():
                text = decoder.decode(chunk)
                if text:
                    yield text

        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail


class ConversationReader:
    """
    View state for one open conversation.

    ``streaming_message`` holds the partial reply while a send is in flight.
    ``send`` is its only writer; everything else only reads it.
    """

    def __init__(
        self,
        client: ChatClient,
        conversation: Conversation,
        on_update: Optional[Callable[[str], None]] = None,
    ):
        self.client = client
        self.conversation = conversation
        self.on_update = on_update
        self.streaming_message = ""
        self.is_streaming = False

    @property
    def messages(self) -> List[Message]:
        return self.conversation.messages

    async def send(self, text: str) -> Optional[Message]:
        """
        Send ``text`` and stream the reply into ``streaming_message``.

        Returns:
            Message: The assistant turn appended to the transcript, or None for blank input

        Raises:
            StreamInProgressError: If a send is already in flight
            ChatAPIError: If the request is rejected; the transcript is restored
            httpx.HTTPError: If the stream breaks; the partial reply is dropped
        """
        text = text.strip()
        if not text:
            return None
        if self.is_streaming:
            raise StreamInProgressError("A message is already being sent")

        self.is_streaming = True
        self.streaming_message = ""
        user_message = Message(role=MessageRole.USER, content=text)
        self.conversation.messages.append(user_message)

        buffer = ""
        try:
            async for decoded in self.client.stream_message(self.conversation.id, text):
                buffer += decoded
                self.streaming_message = buffer
                if self.on_update:
                    self.on_update(buffer)
        except ChatAPIError:
            # Rejected before anything was stored server side
            self.conversation.messages = [m for m in self.conversation.messages if m is not user_message]
            raise
        except httpx.HTTPError as e:
            logger.warning(f"Stream for conversation {self.conversation.id} broke: {e}")
            raise
        finally:
            self.streaming_message = ""
            self.is_streaming = False

        assistant_message = Message(role=MessageRole.ASSISTANT, content=buffer)
        self.conversation.messages.append(assistant_message)
        self.conversation.last_message_at = assistant_message.timestamp
        return assistant_message

    async def refresh(self) -> Conversation:
        """Reload the authoritative conversation from the server."""
        if self.is_streaming:
            raise StreamInProgressError("Cannot refresh while a message is streaming")
        self.conversation = await self.client.get_conversation(self.conversation.id)
        return self.conversation
