import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import support_chat.config.config as configs
from support_chat.api.v1.route import api_router as ChatRouter
from support_chat.client.llm.chatgpt import create_completion_client
from support_chat.db import models  # noqa: F401
from support_chat.errors import NotFoundError, StoreError
from support_chat.model.chat.chat_response import HealthResponse
from support_chat.service.chat.relay import StreamingRelay
from support_chat.service.store.conversation_store import ConversationStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, configs.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = ConversationStore()
    store.create_tables()
    # Raises ConfigError without OPENAI_API_KEY, which aborts startup.
    completion_client = create_completion_client()
    app.state.store = store
    app.state.relay = StreamingRelay(store, completion_client)
    logger.info("support chat ready on port %s", configs.PORT)
    try:
        yield
    finally:
        await completion_client.aclose()


app = FastAPI(title="support_chat", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=configs.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("%s %s", request.method, request.url.path)
    return await call_next(request)


app.include_router(router=ChatRouter, prefix="/chat")


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid input", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": "Conversation not found"})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": "An unexpected error occurred. Please try again."},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": "An unexpected error occurred"},
    )


def run() -> None:
    configure_logging()
    uvicorn.run(app, host=configs.HOST, port=configs.PORT)


if __name__ == "__main__":
    run()
