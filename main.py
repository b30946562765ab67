import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import text

from leap_api.cache.connection import close_redis
from leap_api.core.config import get_settings
from leap_api.core.logging_config import setup_logging
from leap_api.db.session import db_session, dispose_engine
from leap_api.routers import assessments as assessments_router
from leap_api.routers import users as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().log_level)
    logger.info("LEAP assessment API starting up...")

    yield # Service runs here

    logger.info("LEAP assessment API shutting down...")
    await close_redis()
    await dispose_engine()
    logger.info("LEAP assessment API stopped gracefully.")


app = FastAPI(title="LEAP Assessment API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(assessments_router.router, prefix="/api/v1")
app.include_router(users_router.router, prefix="/api/v1")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies use the standard error envelope and status 400."""
    fields = {".".join(str(part) for part in error["loc"][1:]) or "body": error["msg"] for error in exc.errors()}
    logger.info(f"Rejected malformed request to {request.url.path}: {fields}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"code": "REQUEST_INVALID", "message": "Request body is invalid.", "fields": fields}},
    )


@app.get("/health", tags=["Health Check"])
async def health_check():
    return {"status": "ok"}


@app.get("/health/db", tags=["Health Check"])
async def health_check_db(session: AsyncSession = Depends(db_session)):
    """
    Performs a database connection health check.
    """
    try:
        result = (await session.execute(text("SELECT 1"))).scalar_one()
    except SQLAlchemyError as e:
        logger.error(f"DB health check failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "detail": "Database connection error"},
        )
    return {"status": "ok", "db_check": result}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
