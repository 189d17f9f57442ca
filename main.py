from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from agora.core.config import settings
from agora.core.analytics import initialize_posthog, shutdown_posthog
from agora.api.v1.router import api_router
from agora.core.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from agora.core.health import build_health_report, HealthStatus
from agora.services.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.POSTHOG_API_KEY:
        initialize_posthog()
        logger.info("PostHog analytics active")

    logger.info("Agora API started successfully")
    yield

    if settings.POSTHOG_API_KEY:
        shutdown_posthog()
    logger.info("Agora API shutting down")


# Create FastAPI app
app = FastAPI(
    title="Agora API",
    description="Group fitness challenges with a live leaderboard",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    redirect_slashes=False,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add trusted host middleware (skip in development or if wildcard is set)
if settings.ENVIRONMENT == "production" and "*" not in settings.allowed_hosts_list:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts_list)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware)

# Include API router
app.include_router(api_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health")
async def health_check():
    report = await build_health_report(api_version=app.version)
    status_code = (
        status.HTTP_200_OK
        if report.status != HealthStatus.CRITICAL
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(content=report.model_dump(mode="json"), status_code=status_code)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
    )
