"""
Chat session controller.

Owns the in-memory message list of the active conversation and runs
chat turns against a completion transport:

- send: optimistic append of the user message, remote call, then either
  commit (append the reply and persist) or roll back to the exact
  pre-call list.
- regenerate: drop the latest assistant reply, resubmit the preceding
  context, and on failure restore the full list as it was before the
  reply was dropped.

Turns are not serialized. Callers must not start a turn while
``state.is_loading`` is true.
"""

from typing import Callable, List, Optional, Protocol

import structlog

from ..domain.models import ChatSettings, Message, SessionState
from ..repositories.conversations import ConversationRepository

logger = structlog.get_logger()


class ChatTransport(Protocol):
    async def complete(self, messages: List[Message], settings: ChatSettings) -> str:
        ...


class ChatSession:
    """State machine for one active chat session: idle, sending, error."""

    def __init__(
        self,
        repository: ConversationRepository,
        transport: ChatTransport,
        conversation_id: Optional[str] = None,
        settings: Optional[ChatSettings] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.repository = repository
        self.transport = transport
        self.settings = settings
        self.on_error = on_error
        self.state = SessionState()
        if conversation_id:
            self.load(conversation_id)

    @property
    def messages(self) -> List[Message]:
        return self.state.messages

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    @property
    def conversation_id(self) -> Optional[str]:
        return self.state.active_conversation_id

    def load(self, conversation_id: Optional[str]) -> None:
        """Rebind the session to a conversation, rebuilding messages from storage."""
        if conversation_id is None:
            self.state.messages = []
            self.state.active_conversation_id = None
            self.state.error = None
            return

        conversation = self.repository.get(conversation_id)
        if conversation is None:
            logger.warning("session_conversation_not_found", conversation_id=conversation_id)
            return

        self.state.messages = list(conversation.messages)
        self.state.active_conversation_id = conversation_id
        self.state.error = None

    def _current_settings(self) -> ChatSettings:
        return self.settings or self.repository.get_settings()

    def _persist(self, messages: List[Message]) -> None:
        if self.state.active_conversation_id:
            self.repository.update_messages(self.state.active_conversation_id, messages)

    def _fail(self, error: Exception, restore: List[Message], fallback: str) -> None:
        message = str(error) or fallback
        self.state.messages = restore
        self.state.is_loading = False
        self.state.error = message
        logger.error(
            "chat_turn_failed",
            conversation_id=self.state.active_conversation_id,
            error=message,
        )
        if self.on_error is not None:
            self.on_error(message)

    async def send_message(self, content: str) -> Optional[Message]:
        """Run one chat turn for content; returns the assistant reply."""
        content = content.strip()
        if not content:
            return None

        previous = list(self.state.messages)
        user_message = Message(role="user", content=content)
        self.state.messages = previous + [user_message]
        self.state.is_loading = True
        self.state.error = None

        try:
            reply = await self.transport.complete(list(self.state.messages), self._current_settings())
            assistant_message = Message(role="assistant", content=reply)
        except Exception as e:
            self._fail(e, previous, "Failed to send message")
            raise

        updated = previous + [user_message, assistant_message]
        self.state.messages = updated
        self.state.is_loading = False
        self.state.error = None
        self._persist(updated)

        logger.info(
            "chat_turn_completed",
            conversation_id=self.state.active_conversation_id,
            messages=len(updated),
        )
        return assistant_message

    async def regenerate_last_response(self) -> Optional[Message]:
        """Replace the latest assistant reply with a freshly generated one."""
        original = list(self.state.messages)

        last_assistant_index = None
        for index in range(len(original) - 1, -1, -1):
            if original[index].role == "assistant":
                last_assistant_index = index
                break
        # No reply, or no context before it to resubmit.
        if last_assistant_index is None or last_assistant_index == 0:
            return None

        truncated = original[:last_assistant_index]
        self.state.messages = truncated
        self.state.is_loading = True
        self.state.error = None

        try:
            reply = await self.transport.complete(list(truncated), self._current_settings())
            assistant_message = Message(role="assistant", content=reply)
        except Exception as e:
            self._fail(e, original, "Failed to regenerate response")
            raise

        updated = truncated + [assistant_message]
        self.state.messages = updated
        self.state.is_loading = False
        self.state.error = None
        self._persist(updated)

        logger.info(
            "chat_response_regenerated",
            conversation_id=self.state.active_conversation_id,
            messages=len(updated),
        )
        return assistant_message

    def delete_message(self, message_id: str) -> None:
        updated = [m for m in self.state.messages if m.id != message_id]
        self.state.messages = updated
        self._persist(updated)

    def clear_error(self) -> None:
        self.state.error = None

    def clear_messages(self) -> None:
        """Empty the in-memory list. The stored conversation is left as is."""
        self.state.messages = []
        self.state.error = None
