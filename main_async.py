import os
DEBUG = os.getenv("DEBUG", "False").lower() == "true"

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from datetime import datetime, timezone
import logging

load_dotenv()

from database.mongo import db, discussions_collection, users_collection
from core.discussions.errors import DiscussionError
from core.discussions.service import DiscussionService
from routes import discussion_route

# ==== Logging ====
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ==== FastAPI app ====
app = FastAPI(title="CA Prep Discussions API")


# ==== Health Check Endpoint ====
@app.api_route("/", methods=["GET", "HEAD"])
async def root():
    """Root endpoint for health checks"""
    return {
        "status": "ok",
        "message": "CA Prep Discussions API is running",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.api_route("/health", methods=["GET", "HEAD"])
async def health_check(request: Request):
    """Detailed health check endpoint"""
    try:
        await db.command("ping")
        mongo_status = "connected"
    except Exception as e:
        mongo_status = f"error: {str(e)}"

    return {
        "status": "ok",
        "services": {
            "api": "running",
            "mongodb": mongo_status,
        },
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# ==== Startup Events ====
@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    try:
        await DiscussionService(discussions_collection, users_collection).ensure_indexes()
        logger.info("✅ Discussion indexes ensured")
    except Exception:
        # The API still answers; writes will fail loudly until Mongo is back
        logger.exception("❌ Could not ensure discussion indexes")
    logger.info("🚀 Backend services initialized")


# Include các routers từ routes
app.include_router(discussion_route.router, prefix="/api")

# Dynamic CORS based on environment
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite dev server
    "http://localhost:8000",
]

# Add production frontend URL if exists
FRONTEND_URL = os.getenv("FRONTEND_URL")
if FRONTEND_URL:
    ALLOWED_ORIGINS.append(FRONTEND_URL)
    # Also allow without trailing slash
    ALLOWED_ORIGINS.append(FRONTEND_URL.rstrip("/"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==== Logging middleware ====
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Request: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"Response: {response.status_code}")
    return response


@app.exception_handler(DiscussionError)
async def discussion_exception_handler(request: Request, exc: DiscussionError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "code": exc.code})


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.exception("Unhandled error")  # vẫn log full stacktrace
    detail = str(exc) if DEBUG else "Internal server error"
    return JSONResponse(status_code=500, content={"detail": detail})
