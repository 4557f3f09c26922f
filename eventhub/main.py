# eventhub/main.py

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware import Middleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text # For database health check
import logging
import uvicorn

# --- Import settings first: Configuration is paramount ---
from eventhub.config import settings

# --- Configure logging early, before modules that log on import ---
from eventhub.core.logging_config import configure_logging
configure_logging()

logger = logging.getLogger(settings.APP_NAME)

# --- Custom Security Headers Middleware ---
class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            async def send_wrapper(message):
                if message["type"] == "http.response.start":
                    headers_list = list(message["headers"])

                    headers_list.append((b"x-content-type-options", b"nosniff"))
                    headers_list.append((b"x-frame-options", b"DENY"))
                    headers_list.append((b"referrer-policy", b"no-referrer"))
                    # Auth responses carry tokens; never cache them.
                    headers_list.append((b"cache-control", b"no-store"))

                    if settings.ENVIRONMENT == "PROD":
                        headers_list.append((b"strict-transport-security", b"max-age=31536000; includeSubDomains"))

                    message["headers"] = headers_list
                await send(message)
            await self.app(scope, receive, send_wrapper)
        else:
            await self.app(scope, receive, send)

# --- Import remaining modules after settings and initial setup ---
from eventhub.infrastructure.database.session import async_engine, get_db
from eventhub.infrastructure.database.base import Base # For metadata.create_all
from eventhub.api.v1 import auth, user
from eventhub.core.exceptions import APIException


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates tables on startup in DEV and disposes the engine on shutdown.
    """
    logger.info(f"🚀 {settings.APP_NAME} starting up in {settings.ENVIRONMENT} mode...")
    logger.info(f"Client URL: {settings.CLIENT_URL}")

    # DEV only; other environments manage the schema through migrations.
    if settings.ENVIRONMENT == "DEV":
        logger.info("ENVIRONMENT is DEV: Attempting to create database tables...")
        try:
            async with async_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully for DEV environment (if not already existing).")
        except SQLAlchemyError as e:
            logger.critical(f"Failed to create database tables in DEV environment: {e}", exc_info=True)
            raise
    else:
        logger.info("Database table creation skipped for non-DEV environment. Use migrations.")

    yield # Application runs, serving requests

    logger.info(f"👋 {settings.APP_NAME} shutting down...")
    try:
        await async_engine.dispose()
        logger.info("Database connections closed gracefully.")
    except SQLAlchemyError as e:
        logger.error(f"Error closing database connections during shutdown: {e}", exc_info=True)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    middleware=[
        Middleware(SecurityHeadersMiddleware)
    ]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


# Root endpoint
@app.get("/", summary="Welcome message", tags=["Root"])
async def read_root():
    return {"message": f"Welcome to {settings.APP_NAME} v{settings.VERSION}!", "environment": settings.ENVIRONMENT}

# Health Check Endpoint
@app.get("/health", summary="Health check endpoint", tags=["Monitoring"])
async def health_check(db_session: AsyncSession = Depends(get_db)):
    """
    Checks application status and database connectivity.
    """
    try:
        await db_session.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=False)
        db_status = "error"

    return JSONResponse(
        status_code=status.HTTP_200_OK if db_status == "ok" else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ok" if db_status == "ok" else "degraded",
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "database_status": db_status
        }
    )

# Include API routers
app.include_router(auth.router)
app.include_router(user.router)


# Global exception handlers
@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    if exc.status_code >= 500:
        logger.error(f"API Exception caught: {exc.name} - {exc.message}", exc_info=True)
    else:
        logger.info(f"API Exception on {request.method} {request.url.path}: {exc.name} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": exc.message, "error": exc.name},
        headers=exc.headers
    )

def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Request bodies may hold passwords; only echo them in debug mode.
    if settings.DEBUG:
        logger.error(f"Validation Error (DEBUG mode): {exc.errors()}", exc_info=False)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"success": False, "detail": "Validation error", "error": "request_validation_error", "errors": jsonable_errors(exc)}
        )
    # Outside debug mode only field locations are logged, never the submitted input.
    logger.error(f"Validation Error: {jsonable_errors(exc)}", exc_info=False)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "detail": "Invalid input provided. Please check your request.", "error": "request_validation_error"}
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled Exception: {exc}", exc_info=True)
    if settings.DEBUG:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "detail": f"An unexpected error occurred: {type(exc).__name__} - {str(exc)}", "error": "internal_server_error"}
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "detail": "An unexpected server error occurred. Please try again later.", "error": "internal_server_error"}
    )

# --- Local development entry point; deployments run uvicorn directly ---
if __name__ == "__main__":
    logger.info("--- Running FastAPI application in local development mode ---")
    logger.info(f"Environment: {settings.ENVIRONMENT}, Debug Mode: {settings.DEBUG}")
    logger.info(f"Listening on http://0.0.0.0:{settings.PORT}")

    uvicorn.run(
        "eventhub.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
