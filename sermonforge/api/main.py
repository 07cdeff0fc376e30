"""
Main FastAPI application.

Endpoints:
- /api/sermons/* - Sermon CRUD, processing triggers, uploads
- /api/sermons/{id}/content/* - Generated content
- /api/sermons/{id}/export/* - PDF / DOCX / PPTX downloads
- /api/settings/* - Branding, church, notifications, profile, account
- /api/onboarding/* - Onboarding progress
- /api/stripe/* - Checkout, portal, proration, invoices, webhook
- /api/subscriptions/* - Usage and trial status
- /api/analytics/* - Summary and CSV export
- /api/jobs - Background job callbacks
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from ..lib.errors import SermonForgeError

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:3000"

# Create app
app = FastAPI(
    title="SermonForge API",
    description="Turn sermons into notes, devotionals, discussion guides and social content",
    version="1.0.0",
    docs_url="/docs" if os.environ.get("APP_ENV") == "development" else None,
    redoc_url=None,
)

# CORS - comma separated list in CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)


# =============================================================================
# Error envelope: every failure is {"error": ..., "details"?: ...}
# =============================================================================

@app.exception_handler(SermonForgeError)
async def sermonforge_error_handler(request: Request, exc: SermonForgeError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "version": "1.0.0"}


# Import and include routers
from .routes import (  # noqa: E402
    analytics,
    billing,
    content,
    exports,
    jobs,
    onboarding,
    sermons,
    settings,
    subscriptions,
    webhooks,
)

app.include_router(sermons.router, prefix="/api/sermons", tags=["sermons"])
app.include_router(content.router, prefix="/api/sermons", tags=["content"])
app.include_router(exports.router, prefix="/api/sermons", tags=["exports"])
app.include_router(settings.router, prefix="/api/settings", tags=["settings"])
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["onboarding"])
app.include_router(webhooks.router, prefix="/api/stripe", tags=["webhooks"])
app.include_router(billing.router, prefix="/api/stripe", tags=["billing"])
app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["subscriptions"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["analytics"])
app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
