"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imageflow.api.routes import router
from imageflow.config import CORS_ORIGINS, logger as config_logger
from imageflow.db import init_db
from imageflow.session import SessionStore

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.sessions = SessionStore()
    config_logger.info("ImageFlow API started")
    yield
    config_logger.info("ImageFlow API shutting down")


app = FastAPI(
    title="ImageFlow API",
    description="Batch-convert images to JPEG, PNG, WebP or AVIF and report size reduction.",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-ID", "Content-Disposition"],
)


async def session_header_middleware(request, call_next):
    """Set X-Session-ID on response when the session was created by the dependency."""
    response = await call_next(request)
    if hasattr(request.state, "session_id"):
        response.headers["X-Session-ID"] = request.state.session_id
    return response


app.middleware("http")(session_header_middleware)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    from imageflow.config import HOST, PORT
    uvicorn.run("imageflow.main:app", host=HOST, port=PORT, reload=True)
