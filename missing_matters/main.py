import asyncio
import os
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from missing_matters.config import settings
from missing_matters.database import get_db, init_db
from missing_matters.logging_config import get_logger, setup_logging
from missing_matters.routers import admin, reports, webhook
from missing_matters.services.capabilities import Capabilities, build_capabilities, get_capabilities

setup_logging(settings.log_level, debug=settings.debug)

logger = get_logger("main")

app = FastAPI(
    title="Missing Matters API",
    description="WhatsApp intake bot and lost report service for Missing Matters",
    version="2.0.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(admin.router)
app.include_router(reports.router)

app.state.capabilities = build_capabilities(settings)


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    exc = context.get("exception")
    logger.error(
        "Unhandled async error",
        exc_info=exc,
        extra={"context": {"message": context.get("message")}},
    )


@app.on_event("startup")
async def startup() -> None:
    asyncio.get_running_loop().set_exception_handler(_log_loop_exception)
    init_db()
    logger.info("Missing Matters API started")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error",
        exc_info=exc,
        extra={"context": {"path": request.url.path, "method": request.method}},
    )
    return JSONResponse(status_code=500, content={"error": "Server error"})


def _database_available(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning(f"Database health check failed: {exc}")
        return False


@app.get("/health")
def health(db: Session = Depends(get_db), capabilities: Capabilities = Depends(get_capabilities)):
    flags = capabilities.as_flags()
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "database": _database_available(db),
            **flags,
        },
        "configuration": {
            "openai_configured": capabilities.llm.configured,
            "twilio_configured": capabilities.messaging.configured,
            "vision_configured": capabilities.vision.configured,
        },
    }
