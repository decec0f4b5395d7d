"""Metadata store, answer generation, retrieval and deletion services."""

from .chatbots import DeletionResult, DeletionStatus, delete_chatbot
from .llm import AnswerClient, OpenAIAnswerClient
from .metadata_store import InvalidStatusTransition, MetadataStore
from .models import ChatbotRecord, ChatbotStatus, Conversation, Message, MessageRole
from .retrieval import Answer, ConversationNotFound, RetrievalEngine, RetrievalError

__all__ = [
    'DeletionResult',
    'DeletionStatus',
    'delete_chatbot',
    'AnswerClient',
    'OpenAIAnswerClient',
    'InvalidStatusTransition',
    'MetadataStore',
    'ChatbotRecord',
    'ChatbotStatus',
    'Conversation',
    'Message',
    'MessageRole',
    'Answer',
    'ConversationNotFound',
    'RetrievalEngine',
    'RetrievalError',
]
