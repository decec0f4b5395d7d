"""Metadata store models: chatbots, conversations and messages."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _iso(value: datetime) -> str:
    return value.isoformat() if value else None


class ChatbotStatus(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class MessageRole(str, Enum):
    USER = "user"
    AI = "ai"


class ChatbotRecord(Base):
    """One indexed knowledge base; its id links vector rows back to it."""
    __tablename__ = 'chatbots'

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    status = Column(String(20), nullable=False, default=ChatbotStatus.PROCESSING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_chatbots_user_id', 'user_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.user_id,
            'name': self.name,
            'url': self.url,
            'status': self.status,
            'createdAt': _iso(self.created_at),
        }


class Conversation(Base):
    """A sequence of turns between one user and one chatbot."""
    __tablename__ = 'conversations'

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(255), nullable=False)
    chatbot_id = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False, default='New Conversation')
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_conversations_chatbot_user', 'chatbot_id', 'user_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.user_id,
            'chatbotId': self.chatbot_id,
            'title': self.title,
            'lastUpdated': _iso(self.last_updated),
        }


class Message(Base):
    """One user question or AI answer. Only AI messages carry sources."""
    __tablename__ = 'messages'

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String(32), ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)
    role = Column(String(10), nullable=False)
    content = Column(Text, nullable=False)
    sources = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index('idx_messages_conversation_ts', 'conversation_id', 'timestamp'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'conversationId': self.conversation_id,
            'role': self.role,
            'content': self.content,
            'sources': list(self.sources or []),
            'timestamp': _iso(self.timestamp),
        }
