"""Retrieval-augmented answering over one chatbot's knowledge base.

A turn persists the user's question first, then retrieves chunks scoped to
the chatbot, generates an answer from them and persists it with its
sources. Retrieval failures surface as ``RetrievalError`` with the question
already stored; generation failures are answered with an apology.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..indexer.embeddings import EmbeddingClient
from ..indexer.vector_store import VectorMatch, VectorStore
from ..observability.prometheus_metrics import answers
from .llm import AnswerClient
from .metadata_store import MetadataStore
from .models import Conversation, Message, MessageRole

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = "I don't have enough information on this topic."
GENERATION_FAILED_ANSWER = "I'm sorry, I'm having trouble thinking right now."
CONTEXT_DELIMITER = "\n\n---\n\n"
TITLE_LENGTH = 50

PROMPT_TEMPLATE = """You are a highly detailed assistant for the website this knowledge base was built from.
Answer the question using the context provided. If the answer is not in the context, say you don't know.

INSTRUCTIONS:
- Provide a comprehensive response, using point-wise lists where they help.
- Include specific details such as names, departments and programs when the context mentions them.
- Use the conversation history to resolve follow-up questions.
- Use a professional tone.

CONVERSATION HISTORY:
{history}

CONTEXT:
{context}

QUESTION: {question}
"""


class RetrievalError(Exception):
    """Embedding or vector search failed while answering a question."""


class ConversationNotFound(Exception):
    """The conversation does not exist or belongs to another chatbot or user."""


@dataclass
class Answer:
    answer: str
    conversation_id: str
    sources: List[str] = field(default_factory=list)


def dedupe_sources(matches: List[VectorMatch]) -> List[str]:
    """Source URLs in order of first occurrence."""
    seen = set()
    sources = []
    for match in matches:
        url = match.metadata.get("url")
        if url and url not in seen:
            seen.add(url)
            sources.append(url)
    return sources


def render_transcript(messages: List[Message]) -> str:
    lines = []
    for message in messages:
        speaker = "User" if message.role == MessageRole.USER.value else "Assistant"
        lines.append(f"{speaker}: {message.content}")
    return "\n".join(lines)


def build_prompt(question: str, context: str, history: str) -> str:
    return PROMPT_TEMPLATE.format(
        history=history or "(no previous messages)",
        context=context,
        question=question,
    )


class RetrievalEngine:
    """Answers questions against one chatbot's indexed chunks."""

    def __init__(self,
                 metadata_store: MetadataStore,
                 vector_store: VectorStore,
                 embedder: EmbeddingClient,
                 answer_client: AnswerClient,
                 match_threshold: float = 0.4,
                 match_count: int = 10,
                 history_limit: int = 20):
        self.metadata_store = metadata_store
        self.vector_store = vector_store
        self.embedder = embedder
        self.answer_client = answer_client
        self.match_threshold = match_threshold
        self.match_count = match_count
        self.history_limit = history_limit

    async def answer(self, question: str, user_id: str, chatbot_id: str,
                     conversation_id: Optional[str] = None) -> Answer:
        """Answer ``question`` and record the turn.

        Raises:
            ConversationNotFound: ``conversation_id`` is unknown for this chatbot and user
            RetrievalError: Embedding or vector search failed
        """
        conversation = await self._resolve_conversation(question, user_id, chatbot_id, conversation_id)
        conversation_id = conversation.id

        question_message = await self.metadata_store.add_message(
            conversation_id, MessageRole.USER.value, question)

        history = await self._history(conversation_id, exclude_id=question_message.id)

        matches = await self.retrieve(question, chatbot_id)

        if not matches:
            logger.info(f"No relevant chunks for chatbot {chatbot_id}")
            answers.labels(outcome="no_context").inc()
            answer_text, sources = NO_CONTEXT_ANSWER, []
        else:
            context = CONTEXT_DELIMITER.join(match.content for match in matches)
            sources = dedupe_sources(matches)
            prompt = build_prompt(question, context, history)
            try:
                answer_text = await self.answer_client.generate(prompt)
                answers.labels(outcome="answered").inc()
            except Exception as e:
                logger.error(f"Answer generation failed for chatbot {chatbot_id}: {e}")
                answers.labels(outcome="generation_failed").inc()
                answer_text = GENERATION_FAILED_ANSWER

        await self.metadata_store.add_message(conversation_id, MessageRole.AI.value, answer_text, sources=sources)
        await self.metadata_store.touch_conversation(conversation_id)

        return Answer(answer=answer_text, sources=sources, conversation_id=conversation_id)

    async def retrieve(self, question: str, chatbot_id: str) -> List[VectorMatch]:
        """Chunks relevant to ``question`` that belong to ``chatbot_id``, best first."""
        try:
            embedding = await self.embedder.embed(question)
            scope = {"chatbot_id": chatbot_id} if self.vector_store.supports_metadata_filter else None
            matches = await self.vector_store.match(
                embedding,
                match_threshold=self.match_threshold,
                match_count=self.match_count,
                filter=scope,
            )
        except Exception as e:
            answers.labels(outcome="error").inc()
            logger.error(f"Retrieval failed for chatbot {chatbot_id}: {e}")
            raise RetrievalError(f"Retrieval failed: {e}") from e

        # server-side filters are not trusted for tenant isolation
        return [m for m in matches if (m.metadata or {}).get("chatbot_id") == chatbot_id]

    async def _history(self, conversation_id: str, exclude_id: int) -> str:
        """Transcript of the turns before the question being answered."""
        if self.history_limit <= 0:
            return ""
        recent = await self.metadata_store.recent_messages(conversation_id, self.history_limit + 1)
        earlier = [m for m in recent if m.id != exclude_id]
        return render_transcript(earlier[-self.history_limit:])

    async def _resolve_conversation(self, question: str, user_id: str, chatbot_id: str,
                                    conversation_id: Optional[str]) -> Conversation:
        if conversation_id is None:
            return await self.metadata_store.create_conversation(
                user_id=user_id, chatbot_id=chatbot_id, title=question[:TITLE_LENGTH])

        conversation = await self.metadata_store.get_conversation(conversation_id)
        if conversation is None or conversation.chatbot_id != chatbot_id or conversation.user_id != user_id:
            raise ConversationNotFound(conversation_id)
        return conversation
