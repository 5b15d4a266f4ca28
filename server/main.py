"""
FastAPI backend serving cached AI-generated learning content.

Speech audio, news summaries, vocabulary lists, phrase illustrations and daily
topic articles are generated on first request, cached by content-derived key
and served from cache afterwards.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.exceptions import ConfigurationError, RequestShapeError
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import images, news, speech, topics, vocabulary

# Initialize settings and logging
settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting content service")
    set_startup_time()

    await container.database().startup()
    await container.cache().startup()

    # Pipelines bind to the selected cache backend on first resolution
    container.content_service()
    logger.info("Services initialized", cache_backend=container.cache().backend)

    yield

    # Shutdown
    logger.info("Shutting down services...")
    await container.cache().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Content Generation Service",
    version="1.0.0",
    description="Cache-aside generation of speech, news, vocabulary and illustrations",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Service not configured", path=request.url.path, error=str(exc))
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": str(exc)}
    )


@app.exception_handler(RequestShapeError)
async def request_shape_error_handler(request: Request, exc: RequestShapeError):
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": str(exc)}
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "invalid request") if errors else "invalid request"
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message}
    )


# Add exception handler middleware BEFORE CORS to catch all errors
class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}",
                         path=request.url.path, exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": f"{type(e).__name__}: {str(e)}",
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

# Add CORS middleware (must be AFTER exception middleware)
logger.info("Configuring CORS middleware",
            origins_count=len(settings.cors_origins),
            origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(speech.router)
app.include_router(news.router)
app.include_router(vocabulary.router)
app.include_router(images.router)
app.include_router(topics.router)


@app.get("/health")
async def health_check():
    """Health check with cache backend and connectivity checks."""
    health = await get_health_status(container.database(), container.cache(), settings)
    health["service"] = "content"
    health["environment"] = "development" if settings.debug else "production"
    return health


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting content service",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )
