"""Chatbot deletion across the metadata store and the vector store."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..indexer.vector_store import VectorStore
from .metadata_store import MetadataStore

logger = logging.getLogger(__name__)


class DeletionStatus(str, Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class DeletionResult:
    status: DeletionStatus
    chatbot_id: str
    vectors_deleted: Optional[int] = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'chatbotId': self.chatbot_id,
            'vectorsDeleted': self.vectors_deleted,
            'message': self.message,
        }


async def delete_chatbot(metadata_store: MetadataStore, vector_store: VectorStore,
                         chatbot_id: str) -> DeletionResult:
    """Delete a chatbot record, then every vector row tagged with its id.

    Never raises for a missing id. A vector cleanup failure after the record
    is gone is reported as ``partial_failure``.
    """
    deleted = await metadata_store.delete_chatbot(chatbot_id)
    if not deleted:
        logger.info(f"Chatbot {chatbot_id} not found, nothing to delete")
        return DeletionResult(DeletionStatus.NOT_FOUND, chatbot_id, message="Chatbot not found")

    logger.info(f"Chatbot record deleted: {chatbot_id}")

    try:
        count = await vector_store.delete_by_metadata("chatbot_id", chatbot_id)
    except Exception as e:
        logger.error(f"Vector cleanup failed for deleted chatbot {chatbot_id}: {e}")
        return DeletionResult(
            DeletionStatus.PARTIAL_FAILURE,
            chatbot_id,
            message=f"Chatbot record deleted but its knowledge base vectors could not be removed: {e}",
        )

    logger.info(f"Deleted {count} vectors for chatbot {chatbot_id}")
    return DeletionResult(DeletionStatus.DELETED, chatbot_id, vectors_deleted=count,
                          message="Chatbot and its knowledge base deleted")
