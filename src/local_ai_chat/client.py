"""
Client-side wiring.

Builds the chain a chat front end runs on: key-value store, local
storage, conversation repository, and a chat session that sends turns
to the gateway over HTTP.
"""

from typing import Optional

import httpx
import structlog

from .config import AppSettings, get_settings
from .repositories.conversations import ConversationRepository
from .repositories.storage import LocalStorage
from .repositories.stores import create_store
from .services.gateway import GatewayClient
from .services.session import ChatSession

logger = structlog.get_logger()


def create_repository(config: Optional[AppSettings] = None) -> ConversationRepository:
    config = config or get_settings()
    return ConversationRepository(LocalStorage(create_store(config.storage_path)))


def create_session(
    config: Optional[AppSettings] = None,
    conversation_id: Optional[str] = None,
    repository: Optional[ConversationRepository] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ChatSession:
    """
    Build a chat session bound to the configured store and gateway.

    Without a conversation_id the session resumes the stored active
    conversation, if any.
    """
    config = config or get_settings()
    repository = repository or create_repository(config)
    if conversation_id is None:
        conversation_id = repository.get_active_id()

    transport = GatewayClient(
        config.gateway_url,
        http_client=http_client,
        timeout=config.completion_timeout,
    )
    logger.info(
        "chat_session_created",
        gateway_url=config.gateway_url,
        storage_path=config.storage_path,
        conversation_id=conversation_id,
    )
    return ChatSession(repository, transport, conversation_id=conversation_id)
