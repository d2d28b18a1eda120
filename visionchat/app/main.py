from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from visionchat.app.routers import session
from visionchat.app.services.session_services import close_session
from visionchat.config.settings import VisionChatConfig
from visionchat.utils.logging_config import log_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = VisionChatConfig()
    log_manager.configure(config.logging)
    log_manager.enable_console()
    yield
    await close_session()


app = FastAPI(
    title="VisionChat API",
    description="Upload a short video, get frame captions and a summary, then chat about it",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True
)

app.include_router(session.router)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint providing API information."""
    return {
        "message": "VisionChat API",
        "version": "1.0.0",
        "description": "Video frame captioning, summarization and grounded chat",
        "docs_url": "/docs",
        "redoc_url": "/redoc",
        "openapi_url": "/openapi.json"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "visionchat"}


@app.get("/providers", tags=["providers"])
async def get_supported_providers():
    """Get information about supported providers."""
    from visionchat.providers.factory import provider_factory

    return {
        "supported_providers": provider_factory.get_supported_providers(),
        "message": "These are the currently supported providers for each service type"
    }
