"""
Local storage layer.

Typed access to the three keys the chat client keeps in its key-value
store: the conversation list, the chat settings and the active
conversation id. Values are JSON; timestamps are written as ISO-8601
strings and parsed back into datetimes on every read.

Storage faults never reach callers. A corrupt or unreadable value is
logged and treated as absent: an empty conversation list, default
settings, no active conversation.
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import TypeAdapter, ValidationError

from ..domain.models import ChatSettings, Conversation, utcnow
from .base import KeyValueStore

logger = structlog.get_logger()

CONVERSATIONS_KEY = "ai-chat-conversations"
SETTINGS_KEY = "ai-chat-settings"
ACTIVE_CONVERSATION_KEY = "ai-chat-active-conversation"

STORAGE_KEYS = (CONVERSATIONS_KEY, SETTINGS_KEY, ACTIVE_CONVERSATION_KEY)

_conversation_list = TypeAdapter(List[Conversation])

SettingsUpdate = Union[ChatSettings, Mapping[str, Any]]


def _settings_payload(update: SettingsUpdate) -> Dict[str, Any]:
    """Normalize a settings update to camelCase keys."""
    if isinstance(update, ChatSettings):
        return update.model_dump(by_alias=True)
    fields = ChatSettings.model_fields
    payload = {}
    for key, value in update.items():
        field = fields.get(key)
        payload[field.alias if field is not None and field.alias else key] = value
    return payload


class LocalStorage:
    """JSON (de)serialization over a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    # Conversations

    def get_conversations(self) -> List[Conversation]:
        try:
            raw = self.store.get(CONVERSATIONS_KEY)
            if not raw:
                return []
            return _conversation_list.validate_json(raw)
        except Exception as e:
            logger.error("conversations_load_failed", error=str(e))
            return []

    def save_conversations(self, conversations: List[Conversation]) -> None:
        try:
            raw = _conversation_list.dump_json(conversations, by_alias=True)
            self.store.set(CONVERSATIONS_KEY, raw.decode("utf-8"))
        except Exception as e:
            logger.error("conversations_save_failed", error=str(e))

    # Settings

    def get_settings(self) -> ChatSettings:
        try:
            raw = self.store.get(SETTINGS_KEY)
            if not raw:
                return ChatSettings()
            stored = json.loads(raw)
            if not isinstance(stored, dict):
                raise ValueError("settings must be a JSON object")
        except Exception as e:
            logger.error("settings_load_failed", error=str(e))
            return ChatSettings()

        # Overlay field by field: an invalid field keeps its default.
        settings = ChatSettings()
        for key, value in _settings_payload(stored).items():
            candidate = settings.model_dump(by_alias=True)
            candidate[key] = value
            try:
                settings = ChatSettings.model_validate(candidate)
            except ValidationError as e:
                logger.warning("settings_field_ignored", field=key, error=str(e))
        return settings

    def _merge_settings(self, update: SettingsUpdate) -> ChatSettings:
        merged = self.get_settings().model_dump(by_alias=True)
        merged.update(_settings_payload(update))
        return ChatSettings.model_validate(merged)

    def save_settings(self, update: SettingsUpdate) -> None:
        """Overlay update on the current settings and store the result."""
        try:
            updated = self._merge_settings(update)
            self.store.set(SETTINGS_KEY, updated.model_dump_json(by_alias=True))
        except Exception as e:
            logger.error("settings_save_failed", error=str(e))

    # Active conversation

    def get_active_conversation_id(self) -> Optional[str]:
        try:
            return self.store.get(ACTIVE_CONVERSATION_KEY) or None
        except Exception as e:
            logger.error("active_conversation_load_failed", error=str(e))
            return None

    def set_active_conversation_id(self, conversation_id: Optional[str]) -> None:
        try:
            if conversation_id:
                self.store.set(ACTIVE_CONVERSATION_KEY, conversation_id)
            else:
                self.store.remove(ACTIVE_CONVERSATION_KEY)
        except Exception as e:
            logger.error("active_conversation_save_failed", error=str(e))

    # Utilities

    def clear_all_data(self) -> None:
        try:
            for key in STORAGE_KEYS:
                self.store.remove(key)
        except Exception as e:
            logger.error("storage_clear_failed", error=str(e))

    def export_data(self) -> str:
        """Serialize conversations and settings as pretty-printed JSON."""
        data = {
            "conversations": _conversation_list.dump_python(
                self.get_conversations(), mode="json", by_alias=True
            ),
            "settings": self.get_settings().model_dump(mode="json", by_alias=True),
            "exportedAt": utcnow().isoformat(),
        }
        return json.dumps(data, indent=2)

    def import_data(self, json_data: str) -> bool:
        """
        Load an export produced by export_data.

        Conversations present in the payload replace the stored list
        wholesale; settings present in the payload are overlaid on the
        current ones. Absent fields are left alone. Nothing is written
        when any part of the payload is invalid.
        """
        try:
            data = json.loads(json_data)
            if not isinstance(data, dict):
                raise ValueError("import payload must be a JSON object")

            conversations = None
            if data.get("conversations") is not None:
                conversations = _conversation_list.validate_python(data["conversations"])

            settings = None
            if data.get("settings") is not None:
                if not isinstance(data["settings"], dict):
                    raise ValueError("settings must be a JSON object")
                settings = self._merge_settings(data["settings"])
        except Exception as e:
            logger.error("import_failed", error=str(e))
            return False

        if conversations is not None:
            self.save_conversations(conversations)
        if settings is not None:
            self.save_settings(settings)
        logger.info(
            "import_completed",
            conversations=len(conversations) if conversations is not None else None,
            settings_applied=settings is not None,
        )
        return True
