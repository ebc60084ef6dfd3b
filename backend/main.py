"""Main entry point for RefDesk RAG service API."""
import logging
import tiktoken
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import (
    CONVERSATION_BACKEND,
    CORS_ORIGINS,
    DECISION_LOG_PATH,
    FALLBACK_CONFIDENCE,
    GROQ_API_KEY,
    HIGH_THRESHOLD,
    HUGGINGFACE_API_KEY,
    LOG_LEVEL,
    LOW_THRESHOLD,
    MAX_MESSAGES_PER_SESSION,
    MIN_GAP_FOR_STRICT,
    PORT,
    RETRIEVAL_TOP_K,
    SESSION_TIMEOUT_SECONDS,
)
from logger import setup_logging
from models.api import (
    AnswerResponse,
    ConversationListResponse,
    ConversationResponse,
    QueryRequest,
)
from services.conversation_backends import InMemoryConversationBackend, SupabaseConversationBackend
from services.conversation_store import ConversationStore
from services.decision_logger import DecisionLogger
from services.embedding_model import EmbeddingModel
from services.errors import (
    EmbeddingError,
    GenerationError,
    InvalidCandidateScore,
    NotFound,
    RetrievalError,
    ServiceError,
)
from services.llm_client import LLMClient
from services.orchestrator import Orchestrator
from services.prompt_composer import PromptComposer
from services.retrieval_policy import RetrievalPolicy
from services.vector_store import VectorStore

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="RefDesk RAG Service",
    description="Retrieval-augmented question answering with trust-aware prompting and conversations",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
orchestrator: Orchestrator = None
llm_client: LLMClient = None
conversation_store: ConversationStore = None
decision_logger: DecisionLogger = None


@app.on_event("startup")
def startup_event():
    """Initialize services on startup."""
    global orchestrator, llm_client, conversation_store, decision_logger

    setup_logging(LOG_LEVEL)
    logger.info("Initializing RefDesk RAG services...")

    try:
        # Refuses to start on misordered thresholds
        policy = RetrievalPolicy(
            high_threshold=HIGH_THRESHOLD,
            low_threshold=LOW_THRESHOLD,
            min_gap_for_strict=MIN_GAP_FOR_STRICT,
            fallback_confidence=FALLBACK_CONFIDENCE
        )

        embedding_model = EmbeddingModel()
        vector_store = VectorStore(embedding_model)
        logger.info("Initialized retrieval collaborators")

        llm_client = LLMClient()

        if CONVERSATION_BACKEND == "memory":
            backend = InMemoryConversationBackend()
        else:
            backend = SupabaseConversationBackend()
        conversation_store = ConversationStore(backend, session_timeout_seconds=SESSION_TIMEOUT_SECONDS)
        conversation_store.purge_expired()
        logger.info(f"Initialized ConversationStore ({CONVERSATION_BACKEND} backend)")

        decision_logger = DecisionLogger(DECISION_LOG_PATH)

        orchestrator = Orchestrator(
            embedding_model=embedding_model,
            vector_store=vector_store,
            llm_client=llm_client,
            conversation_store=conversation_store,
            policy=policy,
            composer=PromptComposer(),
            top_k=RETRIEVAL_TOP_K,
            decision_logger=decision_logger,
            encoder=tiktoken.get_encoding("o200k_base")
        )

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
def shutdown_event():
    if decision_logger is not None:
        decision_logger.close()


def _status_for(error: ServiceError) -> int:
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, InvalidCandidateScore):
        return 502
    if isinstance(error, GenerationError) and error.error.code == "TIMEOUT_ERROR":
        return 504
    if isinstance(error, (EmbeddingError, RetrievalError, GenerationError)):
        return 503
    return 500


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status_code = _status_for(exc)
    log = logger.warning if status_code == 404 else logger.error
    log(
        f"{exc.kind} on {request.method} {request.url.path}: {exc.error.message}",
        extra={"error_code": exc.error.code}
    )
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning(f"Rejected request {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=422,
        content={"error": {"kind": "validation_error", "code": "VALIDATION_ERROR", "message": str(exc), "details": {}}}
    )


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "RefDesk RAG Service API"}


@app.get("/health")
def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "refdesk-rag",
        "version": "1.0.0",
        "api_keys_configured": {
            "groq": bool(GROQ_API_KEY),
            "huggingface": bool(HUGGINGFACE_API_KEY),
        },
        "active_sessions": conversation_store.count() if conversation_store else 0
    }


@app.get("/models")
def list_models():
    """Selectable generation models."""
    return llm_client.available()


@app.post("/query", response_model=AnswerResponse)
def query_endpoint(request: QueryRequest) -> AnswerResponse:
    """
    Answer a single question with no conversation state.

    Args:
        request: QueryRequest with question and optional model name

    Returns:
        AnswerResponse with answer, strategy, confidence and candidates
    """
    logger.info(f"Processing query: {request.question[:100]}...")
    result = orchestrator.answer_once(request.question, model=request.model)
    return AnswerResponse(**result.to_dict())


@app.post("/sessions/{conversation_id}/query", response_model=AnswerResponse)
def session_query_endpoint(conversation_id: str, request: QueryRequest) -> AnswerResponse:
    """Answer a question as the next turn of a conversation."""
    logger.info(
        f"Processing session query: {request.question[:100]}...",
        extra={"conversation_id": conversation_id}
    )
    result = orchestrator.answer_in_session(conversation_id, request.question, model=request.model)
    return AnswerResponse(**result.to_dict())


@app.get("/sessions", response_model=ConversationListResponse)
def list_sessions_endpoint() -> ConversationListResponse:
    """List live conversations without turn bodies."""
    sessions = orchestrator.list_conversations()
    logger.info(f"Listing {len(sessions)} conversations")
    return ConversationListResponse(
        sessions=sessions,
        total_sessions=len(sessions),
        config={
            "max_messages_per_session": MAX_MESSAGES_PER_SESSION,
            "session_timeout_seconds": SESSION_TIMEOUT_SECONDS,
        }
    )


@app.get("/sessions/{conversation_id}", response_model=ConversationResponse)
def get_session_endpoint(conversation_id: str) -> ConversationResponse:
    """Full conversation history."""
    return ConversationResponse(**orchestrator.get_conversation(conversation_id))


@app.delete("/sessions/{conversation_id}")
def clear_session_endpoint(conversation_id: str):
    """Clear conversation history, keeping the conversation."""
    cleared = orchestrator.clear_conversation(conversation_id)
    return {"message": "Session history cleared", **cleared}


@app.delete("/sessions/{conversation_id}/destroy")
def destroy_session_endpoint(conversation_id: str):
    """Delete a conversation entirely."""
    orchestrator.delete_conversation(conversation_id)
    return {"message": "Session destroyed", "conversation_id": conversation_id}


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting RefDesk RAG Service API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
