"""
Main FastAPI application
Exam instantiation and scoring service
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import time

from exam_engine.config import settings
from exam_engine.database import init_db
from exam_engine.utils.cache import cache_service
from exam_engine.exceptions import ExamEngineError
from exam_engine.api import exams, questions

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the exam tables on startup"""
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION} "
        f"(resubmission={settings.RESUBMISSION_POLICY}, pass threshold={settings.PASS_THRESHOLD}%)"
    )

    try:
        init_db()
        logger.info("Exam tables ready")
    except Exception as e:
        logger.error(f"Failed to initialize exam tables: {str(e)}")
        raise

    yield

    logger.info("Exam engine stopped")


# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Exam composition with per-learner choice shuffling and shuffle-aware scoring",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing"""

    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Duration: {duration:.3f}s"
    )

    return response


# Exam engine errors (not found, expired, already submitted, ...)
@app.exception_handler(ExamEngineError)
async def exam_engine_exception_handler(request: Request, exc: ExamEngineError):
    """Translate engine errors to their HTTP status"""

    logger.warning(f"{request.method} {request.url.path} rejected: {exc.error} - {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors gracefully"""

    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "detail": str(exc) if settings.DEBUG else None
        }
    )


# HTTP exception handler
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Format HTTP exceptions consistently"""

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "http_error",
            "message": exc.detail,
            "status_code": exc.status_code
        }
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "cache": "redis" if cache_service.redis_client else "disabled",
        "resubmissionPolicy": settings.RESUBMISSION_POLICY,
        "unresolvableQuestionPolicy": settings.UNRESOLVABLE_QUESTION_POLICY,
        "passThreshold": settings.PASS_THRESHOLD,
        "timestamp": time.time()
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Exam Engine API",
        "endpoints": ["/api/exam", "/api/exam/submit", "/api/exam/assign", "/api/questions"],
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/health"
    }


# Include routers
app.include_router(exams.router)
app.include_router(questions.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "exam_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
