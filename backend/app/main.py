import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from app.config import get_settings
from app.models.api import (
    ChatRequest,
    ChatResponse,
    HistoryEntryRequest,
    HistoryEntryResponse,
    HistoryListResponse,
)
from app.models.tutor import GuidedSession
from app.services.tutor.cache import EmbeddingCache
from app.services.tutor.database import DatabaseClient
from app.services.tutor.embeddings import EmbeddingService, get_model_provider
from app.services.tutor.guided_session import GuidedSessionController
from app.services.tutor.llm import LLMService
from app.services.tutor.orchestrator import TutorOrchestrator
from app.services.tutor.topic_guard import TopicGuard
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Store service instances globally
db_client: Optional[DatabaseClient] = None
tutor_orchestrator: Optional[TutorOrchestrator] = None
guided_sessions: Optional[GuidedSessionController] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global db_client, tutor_orchestrator, guided_sessions

    # Startup
    settings = get_settings()
    llm_service = None
    try:
        db_client = DatabaseClient(settings.mongodb_uri, settings.database_name)
        await db_client.init_indexes()

        cache = None
        if settings.embedding_cache_enabled:
            cache = EmbeddingCache(settings.mongodb_uri)
            await cache.init_indexes()

        embeddings = EmbeddingService(
            get_model_provider(settings.embedding_model),
            cache=cache,
            max_concurrency=settings.embedding_concurrency,
        )

        llm_service = LLMService(
            api_key=settings.openai_api_key,
            model=settings.engine_name,
            classifier_model=settings.classifier_engine_name,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout_seconds,
            max_attempts=settings.llm_max_attempts,
        )

        tutor_orchestrator = TutorOrchestrator(
            db=db_client,
            embeddings=embeddings,
            llm=llm_service,
            topic_guard=TopicGuard(llm_service) if settings.topic_guard_enabled else None,
            history_limit=settings.conversation_history_limit,
            relevant_history_count=settings.relevant_history_count,
            request_timeout=settings.request_timeout_seconds,
        )
        guided_sessions = GuidedSessionController(tutor_orchestrator, db=db_client)

        logger.info("Successfully initialized services and database")
    except Exception as e:
        logger.error(f"Failed to initialize: {str(e)}")
        raise
    yield
    # Shutdown
    if llm_service is not None:
        await llm_service.close()
    if db_client is not None:
        await db_client.close()


app = FastAPI(
    title="Personal Tutor API",
    description="API for personalized tutoring responses and guided learning sessions",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies
async def get_db_client() -> DatabaseClient:
    """Dependency to get the configured DatabaseClient."""
    if db_client is None:
        raise RuntimeError("DatabaseClient not initialized")
    return db_client


async def get_tutor_orchestrator() -> TutorOrchestrator:
    """Dependency to get the configured TutorOrchestrator."""
    if tutor_orchestrator is None:
        raise RuntimeError("TutorOrchestrator not initialized")
    return tutor_orchestrator


async def get_guided_sessions() -> GuidedSessionController:
    """Dependency to get the configured GuidedSessionController."""
    if guided_sessions is None:
        raise RuntimeError("GuidedSessionController not initialized")
    return guided_sessions


def _require_chat_fields(request: ChatRequest) -> None:
    if not request.user_id or not request.input.strip():
        raise HTTPException(status_code=400, detail="user_id and input are required")


@app.post("/api/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    orchestrator: Annotated[TutorOrchestrator, Depends(get_tutor_orchestrator)],
):
    """Answer a question with a personalized tutoring response."""
    _require_chat_fields(request)
    logger.info(f"Chat request from user {request.user_id}")

    response = await orchestrator.get_response(request.user_id, request.input)
    return ChatResponse(response=response)


@app.post("/api/chat/guided", response_model=GuidedSession)
async def guided_chat(
    request: ChatRequest,
    controller: Annotated[GuidedSessionController, Depends(get_guided_sessions)],
):
    """Run a bounded Socratic session starting from the question."""
    _require_chat_fields(request)
    logger.info(f"Guided session request from user {request.user_id}")

    return await controller.get_guided_session(request.user_id, request.input)


@app.get("/api/history", response_model=HistoryListResponse)
async def list_history(
    db: Annotated[DatabaseClient, Depends(get_db_client)],
    user_id: Annotated[str, Query()] = "",
):
    """List a user's interest history."""
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id is required")

    try:
        entries = await db.get_interest_history(user_id)
    except Exception as e:
        logger.error(f"Error fetching interest history: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Error fetching interest history: {str(e)}"
        )
    return HistoryListResponse(data=entries)


@app.post("/api/history", response_model=HistoryEntryResponse, status_code=201)
async def add_history(
    request: HistoryEntryRequest,
    db: Annotated[DatabaseClient, Depends(get_db_client)],
):
    """Record something the user showed interest in or understood."""
    if not request.user_id or not request.content.strip():
        raise HTTPException(status_code=400, detail="user_id and content are required")

    try:
        entry = await db.add_interest_history(request.user_id, request.content)
    except Exception as e:
        logger.error(f"Error storing interest history: {str(e)}")
        raise HTTPException(
            status_code=500, detail=f"Error storing interest history: {str(e)}"
        )
    return HistoryEntryResponse(data=entry)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
