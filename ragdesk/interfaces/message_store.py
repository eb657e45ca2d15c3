"""Abstract base class for chat message persistence.

Answers are delivered asynchronously: ``KnowledgeBase.ask`` stores the
user's message, queues the work, and the background task appends the
assistant's reply (with citation metadata) to the same chat.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ragdesk.models.chat import ChatMessage


# Concrete implementations: SQLiteMessageStore (aiosqlite)
# Located in: ragdesk/providers/storage/
class IMessageStore(ABC):
    """Contract for appending and reading chat messages."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def add_message(self, message: ChatMessage) -> ChatMessage:
        """Append *message* to its chat."""

    @abstractmethod
    async def list_messages(self, chat_id: str) -> list[ChatMessage]:
        """Return the chat's messages, oldest first."""
