"""Main entry point for the chat history relay API."""
import json
import logging
import time
from typing import List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import APP_ENV, CORS_ORIGINS, LOG_LEVEL, PORT, STORE_BACKEND
from logger import setup_logging
from models.api import (
    ConsolidateRequest,
    ConsolidateResponse,
    ConversationOut,
    ConversationSummaryOut,
    ErrorResponse,
    TurnOut,
)
from services.conversation_store import (
    ConversationStore,
    InMemoryConversationStore,
    SupabaseConversationStore,
)
from services.errors import (
    ChatServiceError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    ProviderRejectedError,
    ProviderUnavailableError,
    StoreError,
)
from services.history_consolidator import HistoryConsolidator
from services.history_summarizer import list_summaries
from services.llm_client import LLMClient

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Chat History Relay",
    description="Relays chat turns to an LLM and keeps the resulting conversation history",
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
conversation_store: ConversationStore = None
llm_client: LLMClient = None
history_consolidator: HistoryConsolidator = None

# Status code and client-facing message per error type, most specific first
ERROR_RESPONSES = [
    (InvalidInputError, 400, "Invalid request"),
    (NotFoundError, 404, "Chat not found"),
    (ConflictError, 409, "Conversation was updated by another request"),
    (ProviderRejectedError, 502, "Completion provider rejected the request"),
    (ProviderUnavailableError, 503, "Completion provider unavailable"),
    (StoreError, 500, "Error accessing chat history"),
]

REDACTED_HEADERS = {"authorization", "cookie", "x-api-key"}

ERROR_RESPONSE_DOCS = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Chat not found"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}


def build_store() -> ConversationStore:
    """Create the conversation store selected by STORE_BACKEND."""
    if STORE_BACKEND == "memory":
        return InMemoryConversationStore()
    if STORE_BACKEND == "supabase":
        return SupabaseConversationStore()
    raise ValueError(f"Unknown STORE_BACKEND: {STORE_BACKEND}")


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global conversation_store, llm_client, history_consolidator

    setup_logging(LOG_LEVEL)
    logger.info("Initializing chat history relay services...")

    try:
        conversation_store = build_store()
        logger.info(f"Initialized {type(conversation_store).__name__}")

        llm_client = LLMClient()
        logger.info("Initialized LLMClient")

        history_consolidator = HistoryConsolidator(conversation_store, llm_client)
        logger.info("Initialized HistoryConsolidator")

        logger.info(f"All services initialized successfully, listening on port {PORT}")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every incoming request; bodies are only logged outside production."""
    start_time = time.time()
    headers = {
        k: ("<redacted>" if k.lower() in REDACTED_HEADERS else v)
        for k, v in request.headers.items()
    }
    logger.info(f"{request.method} {request.url.path} headers={json.dumps(headers)}")
    if APP_ENV != "production" and request.method in ("POST", "PUT", "PATCH"):
        body = await request.body()
        logger.debug(f"Body: {body.decode('utf-8', errors='replace')}")

    response = await call_next(request)

    latency_ms = int((time.time() - start_time) * 1000)
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {latency_ms}ms")
    return response


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported like any other invalid input."""
    message = "; ".join(
        f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    logger.warning(
        f"{request.method} {request.url.path} failed: INVALID_INPUT: {message}",
        extra={"error_code": "INVALID_INPUT"}
    )
    return error_response(400, "Invalid request", message)


@app.exception_handler(ChatServiceError)
async def service_error_handler(request: Request, exc: ChatServiceError):
    """Translate service errors into {error, message} responses."""
    status_code, error = 500, "Internal server error"
    for error_class, code, client_message in ERROR_RESPONSES:
        if isinstance(exc, error_class):
            status_code, error = code, client_message
            break

    log = logger.warning if status_code < 500 else logger.error
    log(
        f"{request.method} {request.url.path} failed: {exc.error.code}: {exc.error.message}",
        exc_info=status_code >= 500,
        extra={"error_code": exc.error.code, "error_details": exc.error.details}
    )
    return error_response(status_code, error, exc.error.message)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error in {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "Internal server error", str(exc))


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Chat History Relay API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "chat-history-relay",
        "version": "1.0.0",
        "store": STORE_BACKEND
    }


@app.post(
    "/consolidate",
    response_model=ConsolidateResponse,
    responses={
        **ERROR_RESPONSE_DOCS,
        409: {"model": ErrorResponse, "description": "Concurrent update"},
        502: {"model": ErrorResponse, "description": "Completion provider rejected the request"},
        503: {"model": ErrorResponse, "description": "Completion provider unavailable"},
    },
)
def consolidate_endpoint(request: ConsolidateRequest) -> ConsolidateResponse:
    """
    Send the running chat to the model and record the exchange.

    Args:
        request: Full turn sequence and optional existingId

    Returns:
        ConsolidateResponse with the reply turn and the conversation id
    """
    result = history_consolidator.consolidate(
        [turn.to_turn() for turn in request.turns],
        request.existing_id
    )
    return ConsolidateResponse(
        reply=TurnOut.from_turn(result.reply),
        conversation_id=result.conversation.conversation_id
    )


@app.get("/conversations", response_model=List[ConversationSummaryOut], responses={500: ERROR_RESPONSE_DOCS[500]})
def list_conversations_endpoint() -> List[ConversationSummaryOut]:
    """History list, most recently updated first."""
    summaries = list_summaries(conversation_store)
    logger.info(f"Sending history list: {len(summaries)} entries")
    return [ConversationSummaryOut.from_summary(s) for s in summaries]


@app.get("/conversations/{conversation_id}", response_model=ConversationOut, responses=ERROR_RESPONSE_DOCS)
def get_conversation_endpoint(conversation_id: str) -> ConversationOut:
    """Full stored conversation."""
    conversation = conversation_store.load(conversation_id)
    return ConversationOut.from_conversation(conversation)


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Chat History Relay API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
