"""Conversation repository backed by local storage."""

from typing import List, Optional

import structlog

from ..domain.models import (
    NEW_CHAT_TITLE,
    ChatSettings,
    Conversation,
    Message,
    generate_id,
    generate_title,
    utcnow,
)
from .storage import LocalStorage, SettingsUpdate

logger = structlog.get_logger()


class ConversationRepository:
    """
    CRUD over the stored conversation list.

    Every operation is a read-modify-write of the whole list. New
    conversations go to the head of the list; updates replace entries
    in place, so the order is not re-sorted by recency after edits.
    """

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage

    def list(self) -> List[Conversation]:
        return self.storage.get_conversations()

    def get(self, conversation_id: str) -> Optional[Conversation]:
        for conversation in self.storage.get_conversations():
            if conversation.id == conversation_id:
                return conversation
        return None

    def save(self, conversation: Conversation) -> None:
        """Replace the conversation with the same id, or prepend it."""
        conversations = self.storage.get_conversations()
        for index, existing in enumerate(conversations):
            if existing.id == conversation.id:
                conversations[index] = conversation
                break
        else:
            conversations.insert(0, conversation)
        self.storage.save_conversations(conversations)

    def create(self, first_message: Optional[Message] = None) -> Conversation:
        now = utcnow()
        conversation = Conversation(
            id=generate_id("conv"),
            title=generate_title(first_message.content) if first_message else NEW_CHAT_TITLE,
            messages=[first_message] if first_message else [],
            created_at=now,
            updated_at=now,
        )
        self.save(conversation)
        logger.info("conversation_created", conversation_id=conversation.id)
        return conversation

    def delete(self, conversation_id: str) -> None:
        """Remove a conversation; clears the active pointer if it pointed here."""
        conversations = self.storage.get_conversations()
        self.storage.save_conversations(
            [c for c in conversations if c.id != conversation_id]
        )
        if self.storage.get_active_conversation_id() == conversation_id:
            self.storage.set_active_conversation_id(None)
        logger.info("conversation_deleted", conversation_id=conversation_id)

    def update_messages(self, conversation_id: str, messages: List[Message]) -> None:
        """Replace a conversation's messages; names it after the first user message if untitled."""
        conversation = self.get(conversation_id)
        if conversation is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            return

        conversation.messages = list(messages)
        conversation.updated_at = utcnow()

        if conversation.title == NEW_CHAT_TITLE and messages:
            first_user_message = next((m for m in messages if m.role == "user"), None)
            if first_user_message is not None:
                conversation.title = generate_title(first_user_message.content)

        self.save(conversation)

    def update(
        self,
        conversation_id: str,
        title: Optional[str] = None,
        messages: Optional[List[Message]] = None,
    ) -> Optional[Conversation]:
        conversation = self.get(conversation_id)
        if conversation is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            return None
        if title is not None:
            conversation.title = title
        if messages is not None:
            conversation.messages = list(messages)
        conversation.updated_at = utcnow()
        self.save(conversation)
        return conversation

    def duplicate(self, conversation_id: str) -> Optional[Conversation]:
        original = self.get(conversation_id)
        if original is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            return None

        copy = self.create()
        copy.title = f"{original.title} (Copy)"
        copy.messages = [
            message.model_copy(update={"id": generate_id("msg")})
            for message in original.messages
        ]
        self.save(copy)
        logger.info(
            "conversation_duplicated",
            conversation_id=conversation_id,
            duplicate_id=copy.id,
        )
        return copy

    def clear_all(self) -> None:
        self.storage.save_conversations([])
        self.storage.set_active_conversation_id(None)
        logger.info("conversations_cleared")

    # Active conversation pointer

    def get_active_id(self) -> Optional[str]:
        return self.storage.get_active_conversation_id()

    def set_active(self, conversation_id: Optional[str]) -> None:
        self.storage.set_active_conversation_id(conversation_id)

    def start_new_chat(self) -> None:
        """Detach from the active conversation without deleting anything."""
        self.storage.set_active_conversation_id(None)

    # Settings and transfer

    def get_settings(self) -> ChatSettings:
        return self.storage.get_settings()

    def save_settings(self, update: SettingsUpdate) -> None:
        self.storage.save_settings(update)

    def export(self) -> str:
        return self.storage.export_data()

    def import_(self, json_data: str) -> bool:
        return self.storage.import_data(json_data)
