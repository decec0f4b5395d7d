"""SiteGenie HTTP API.

Chatbot creation runs the full ingestion synchronously and responds once the
knowledge base is indexed.
"""

import datetime
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config.services import Services, build_services
from ..config.settings import Settings
from ..observability.logging import setup_logging
from ..observability.prometheus_metrics import setup_prometheus_metrics
from ..pipelines.crawler import CrawlError
from ..pipelines.ingest import IngestionError
from ..pipelines.security import UnsafeURLError, check_url_safe
from ..services.chatbots import DeletionStatus, delete_chatbot
from ..services.retrieval import ConversationNotFound, RetrievalError

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "test-user"
DEFAULT_BOT_NAME = "New Assistant"


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateChatbotRequest(CamelModel):
    url: str
    user_id: Optional[str] = Field(default=None, alias="userId")
    name: Optional[str] = None


class ChatRequest(CamelModel):
    question: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    chatbot_id: Optional[str] = Field(default=None, alias="chatbotId")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class CreateConversationRequest(CamelModel):
    user_id: str = Field(alias="userId")
    chatbot_id: str = Field(alias="chatbotId")
    title: Optional[str] = None


def get_services(request: Request) -> Services:
    """Dependency to get the service container."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=500, detail="Services not initialized")
    return services


router = APIRouter(prefix="/api")


@router.post("/chatbot/create", status_code=201)
async def create_chatbot(req: CreateChatbotRequest, services: Services = Depends(get_services)):
    """Crawl and index ``url`` into a new chatbot."""
    url = req.url.strip()
    if not url:
        raise HTTPException(status_code=400, detail="URL is required")
    try:
        check_url_safe(url, resolve_dns=False)
    except UnsafeURLError as e:
        raise HTTPException(status_code=400, detail=f"Unsafe URL: {e}")

    try:
        result = await services.ingestion.ingest(
            url,
            user_id=req.user_id or DEFAULT_USER_ID,
            name=req.name or DEFAULT_BOT_NAME,
        )
    except CrawlError as e:
        logger.error(f"Could not crawl {url}: {e}")
        raise HTTPException(status_code=422, detail=f"Could not crawl usable content from {url}: {e}")
    except IngestionError as e:
        logger.error(f"Creation error for {url}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create chatbot")

    return {
        "message": "Chatbot created successfully!",
        "chatbotId": result.chatbot_id,
        "status": result.record.status,
        "bot": result.record.to_dict(),
    }


@router.get("/chatbots/{user_id}")
async def list_chatbots(user_id: str, services: Services = Depends(get_services)):
    bots = await services.metadata_store.list_chatbots(user_id)
    return [bot.to_dict() for bot in bots]


@router.delete("/chatbot/{chatbot_id}")
async def remove_chatbot(chatbot_id: str, services: Services = Depends(get_services)):
    result = await delete_chatbot(services.metadata_store, services.vector_store, chatbot_id)
    if result.status == DeletionStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Chatbot not found")
    if result.status == DeletionStatus.PARTIAL_FAILURE:
        return JSONResponse(status_code=500, content={
            "status": result.status.value,
            "chatbotId": chatbot_id,
            "message": result.message,
        })
    return result.to_dict()


@router.post("/chat")
async def chat(req: ChatRequest, services: Services = Depends(get_services)):
    """Answer a question against one chatbot's knowledge base."""
    if not req.question or not req.chatbot_id:
        raise HTTPException(status_code=400, detail="Question and ChatbotID required")

    try:
        answer = await services.retrieval.answer(
            req.question,
            user_id=req.user_id or DEFAULT_USER_ID,
            chatbot_id=req.chatbot_id,
            conversation_id=req.conversation_id,
        )
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except RetrievalError as e:
        logger.error(f"Chat error: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    return {
        "answer": answer.answer,
        "sources": answer.sources,
        "conversationId": answer.conversation_id,
    }


@router.post("/conversation", status_code=201)
async def create_conversation(req: CreateConversationRequest, services: Services = Depends(get_services)):
    conversation = await services.metadata_store.create_conversation(
        user_id=req.user_id, chatbot_id=req.chatbot_id, title=req.title)
    return conversation.to_dict()


@router.get("/conversations/{chatbot_id}/{user_id}")
async def list_conversations(chatbot_id: str, user_id: str, services: Services = Depends(get_services)):
    conversations = await services.metadata_store.list_conversations(chatbot_id, user_id)
    return [conversation.to_dict() for conversation in conversations]


@router.get("/messages/{conversation_id}")
async def list_messages(conversation_id: str, services: Services = Depends(get_services)):
    messages = await services.metadata_store.list_messages(conversation_id)
    return [message.to_dict() for message in messages]


@router.delete("/conversation/{conversation_id}")
async def delete_conversation(conversation_id: str, services: Services = Depends(get_services)):
    deleted = await services.metadata_store.delete_conversation(conversation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"status": "deleted", "conversationId": conversation_id}


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API.

    Injected ``services`` are used as-is and left open; otherwise services are
    built from ``settings`` (or the environment) on startup and closed on
    shutdown.
    """
    app = FastAPI(title="SiteGenie RAG API", version="0.3.0")
    app.state.services = services

    @app.on_event("startup")
    async def startup_event():
        if app.state.services is not None:
            return
        try:
            config = settings or Settings.from_env()
            setup_logging(level=config.log_level, log_file=config.log_file, use_json=config.log_json)
            app.state.services = build_services(config)
            await app.state.services.initialize()
            app.state.owns_services = True
            logger.info("SiteGenie API started")
        except Exception as e:
            logger.error(f"Failed to initialize application: {e}")
            raise

    @app.on_event("shutdown")
    async def shutdown_event():
        if getattr(app.state, "owns_services", False) and app.state.services is not None:
            await app.state.services.close()
            app.state.services = None
            logger.info("SiteGenie API stopped")

    @app.get("/health")
    async def health():
        return {"ok": True, "time": datetime.datetime.now(datetime.timezone.utc).isoformat()}

    app.include_router(router)
    setup_prometheus_metrics(app)
    return app


app = create_app()


def main():
    import os
    import uvicorn

    uvicorn.run(
        "sitegenie.server.rag_api:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "5000")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
