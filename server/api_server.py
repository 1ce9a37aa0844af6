"""FastAPI application entry point for rag_bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from server.routers.DocumentRouter import router as document_router
from server.routers.QueryRouter import router as query_router
from server.routers.WikiRouter import router as wiki_router
from services.rag.RAGContext import build_context
from shared.exceptions import (
    BackendUnavailable,
    InitializationTimeout,
    InvalidInput,
    NotFound,
    RAGError,
    StorageError,
    UpstreamError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")

# most specific first, RAGError catches the rest
_ERROR_STATUS: list[tuple[type[RAGError], int]] = [
    (InvalidInput, 400),
    (NotFound, 404),
    (BackendUnavailable, 503),
    (InitializationTimeout, 504),
    (UpstreamError, 502),
    (StorageError, 500),
    (RAGError, 500),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    logging.info("Building knowledge base components...")
    app.state.context = await build_context(app.state.helper_config)
    logging.info("rag_bridge API ready.", color="green")

    # while the app is running...
    yield

    # when the app shuts down
    logging.info("Shutting down, closing all clients...")
    await app.state.context.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="rag_bridge",
    description=(
        "Local retrieval augmented generation for chat frontends. "
        "Uploaded files and wiki pages are chunked, embedded and stored locally; "
        "POST /query returns relevant context and POST /augment splices it into a chat prompt. "
        "Wiki spaces are synced incrementally via POST /wiki/sync."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RAGError)
async def handle_rag_error(request: Request, exc: RAGError) -> JSONResponse:
    """Translate domain errors into HTTP status codes."""
    status_code = next(code for error_type, code in _ERROR_STATUS if isinstance(exc, error_type))
    if status_code >= 500:
        logging.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logging.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


app.include_router(query_router)
app.include_router(document_router)
app.include_router(wiki_router)


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting rag_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", os.getcwd()),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
