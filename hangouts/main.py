import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from hangouts.core.config import settings
from hangouts.core.database import create_all, engine
from hangouts.core.websocket import ChatChannel
from hangouts.api.v1.router import api_router
from hangouts.api.v1.endpoints.websocket import websocket_endpoint
from hangouts.utils.exceptions import HangoutsException

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION} ({settings.ENVIRONMENT})")
    if settings.DB_CREATE_ALL:
        await create_all()

    # The fan-out registry lives exactly as long as the app
    app.state.chat_channel = ChatChannel()

    yield

    logger.info("Shutting down")
    await app.state.chat_channel.close()
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HangoutsException)
async def hangouts_exception_handler(request: Request, exc: HangoutsException):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=headers
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")

# WebSocket endpoint for chat
app.websocket("/ws/chat")(websocket_endpoint)


# Root endpoint
@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
        "health": "/health",
        "api": "/api/v1",
        "websocket": "/ws/chat"
    }


# Health check endpoint
@app.get("/health")
async def health_check(request: Request):
    channel = request.app.state.chat_channel
    return {
        "status": "healthy",
        "connections": len(channel.connections),
        "topics": len(channel.topic_listeners)
    }
