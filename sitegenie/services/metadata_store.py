"""Transactional metadata store for chatbot records, conversations and messages.

Session work is synchronous SQLAlchemy; every public coroutine hands it to a
worker thread so callers on the event loop never block on database I/O.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base, ChatbotRecord, ChatbotStatus, Conversation, Message, MessageRole, utcnow

logger = logging.getLogger(__name__)

# processing is the only state with outgoing transitions
ALLOWED_TRANSITIONS = {
    ChatbotStatus.PROCESSING.value: {ChatbotStatus.READY.value, ChatbotStatus.ERROR.value},
}


class InvalidStatusTransition(Exception):
    """Raised when a chatbot status change would move backwards."""

    def __init__(self, chatbot_id: str, current: str, requested: str):
        self.chatbot_id = chatbot_id
        self.current = current
        self.requested = requested
        super().__init__(f"Chatbot {chatbot_id}: cannot move from '{current}' to '{requested}'")


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True, "pool_recycle": 3600}
    kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return kwargs


class MetadataStore:
    """SQLAlchemy-backed store for ChatbotRecord, Conversation and Message rows."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = create_engine(database_url, echo=False, **_engine_kwargs(database_url))
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False,
                                         expire_on_commit=False)

    async def initialize(self):
        await asyncio.to_thread(Base.metadata.create_all, self.engine)
        logger.info("Metadata store initialized")

    async def close(self):
        await asyncio.to_thread(self.engine.dispose)
        logger.info("Metadata store closed")

    # Chatbots

    async def create_chatbot(self, user_id: str, name: str, url: str) -> ChatbotRecord:
        def _create():
            with self.SessionLocal() as session:
                record = ChatbotRecord(user_id=user_id, name=name, url=url,
                                       status=ChatbotStatus.PROCESSING.value)
                session.add(record)
                session.commit()
                return record

        record = await asyncio.to_thread(_create)
        logger.info(f"Chatbot record created: {record.id}")
        return record

    async def get_chatbot(self, chatbot_id: str) -> Optional[ChatbotRecord]:
        def _get():
            with self.SessionLocal() as session:
                return session.get(ChatbotRecord, chatbot_id)

        return await asyncio.to_thread(_get)

    async def list_chatbots(self, user_id: str) -> List[ChatbotRecord]:
        """Chatbots owned by ``user_id``, newest first."""
        def _list():
            with self.SessionLocal() as session:
                stmt = (select(ChatbotRecord)
                        .where(ChatbotRecord.user_id == user_id)
                        .order_by(ChatbotRecord.created_at.desc()))
                return list(session.scalars(stmt))

        return await asyncio.to_thread(_list)

    async def update_chatbot_status(self, chatbot_id: str, status: str) -> Optional[ChatbotRecord]:
        """Move a chatbot to ``status``; returns None when the record is gone.

        Raises InvalidStatusTransition for anything but processing -> ready|error.
        Setting the status a record already has is a no-op.
        """
        status = ChatbotStatus(status).value

        def _update():
            with self.SessionLocal() as session:
                record = session.get(ChatbotRecord, chatbot_id)
                if record is None:
                    return None
                if record.status == status:
                    return record
                if status not in ALLOWED_TRANSITIONS.get(record.status, set()):
                    raise InvalidStatusTransition(chatbot_id, record.status, status)
                record.status = status
                session.commit()
                return record

        return await asyncio.to_thread(_update)

    async def delete_chatbot(self, chatbot_id: str) -> bool:
        """Delete a chatbot record with its conversations and their messages.

        Returns False when no record with that id exists.
        """
        def _delete():
            with self.SessionLocal() as session:
                record = session.get(ChatbotRecord, chatbot_id)
                if record is None:
                    return False
                conversations = session.scalars(
                    select(Conversation).where(Conversation.chatbot_id == chatbot_id))
                for conversation in conversations:
                    session.delete(conversation)
                session.delete(record)
                session.commit()
                return True

        return await asyncio.to_thread(_delete)

    # Conversations

    async def create_conversation(self, user_id: str, chatbot_id: str,
                                  title: Optional[str] = None) -> Conversation:
        def _create():
            with self.SessionLocal() as session:
                conversation = Conversation(user_id=user_id, chatbot_id=chatbot_id,
                                            title=title or 'New Conversation')
                session.add(conversation)
                session.commit()
                return conversation

        return await asyncio.to_thread(_create)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        def _get():
            with self.SessionLocal() as session:
                return session.get(Conversation, conversation_id)

        return await asyncio.to_thread(_get)

    async def list_conversations(self, chatbot_id: str, user_id: str) -> List[Conversation]:
        """Conversations for one (chatbot, user) pair, most recently updated first."""
        def _list():
            with self.SessionLocal() as session:
                stmt = (select(Conversation)
                        .where(Conversation.chatbot_id == chatbot_id,
                               Conversation.user_id == user_id)
                        .order_by(Conversation.last_updated.desc()))
                return list(session.scalars(stmt))

        return await asyncio.to_thread(_list)

    async def touch_conversation(self, conversation_id: str) -> None:
        def _touch():
            with self.SessionLocal() as session:
                conversation = session.get(Conversation, conversation_id)
                if conversation is not None:
                    conversation.last_updated = utcnow()
                    session.commit()

        await asyncio.to_thread(_touch)

    async def delete_conversation(self, conversation_id: str) -> bool:
        def _delete():
            with self.SessionLocal() as session:
                conversation = session.get(Conversation, conversation_id)
                if conversation is None:
                    return False
                session.delete(conversation)
                session.commit()
                return True

        return await asyncio.to_thread(_delete)

    # Messages

    async def add_message(self, conversation_id: str, role: str, content: str,
                          sources: Optional[List[str]] = None) -> Message:
        role = MessageRole(role).value
        if role == MessageRole.USER.value:
            sources = None

        def _add():
            with self.SessionLocal() as session:
                message = Message(conversation_id=conversation_id, role=role,
                                  content=content, sources=list(sources) if sources is not None else None)
                session.add(message)
                session.commit()
                return message

        return await asyncio.to_thread(_add)

    async def recent_messages(self, conversation_id: str, limit: int = 20) -> List[Message]:
        """The last ``limit`` messages of a conversation, oldest to newest."""
        def _recent():
            with self.SessionLocal() as session:
                stmt = (select(Message)
                        .where(Message.conversation_id == conversation_id)
                        .order_by(Message.timestamp.desc(), Message.id.desc())
                        .limit(limit))
                return list(reversed(list(session.scalars(stmt))))

        return await asyncio.to_thread(_recent)

    async def list_messages(self, conversation_id: str) -> List[Message]:
        def _list():
            with self.SessionLocal() as session:
                stmt = (select(Message)
                        .where(Message.conversation_id == conversation_id)
                        .order_by(Message.timestamp.asc(), Message.id.asc()))
                return list(session.scalars(stmt))

        return await asyncio.to_thread(_list)
