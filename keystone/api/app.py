"""FastAPI application factory.

Status codes for domain errors:
    ValidationError                         -> 400
    InvalidReferenceError, SessionNotFound  -> 404
    StateConflictError                      -> 409
    any other KeystoneError                 -> 500
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from keystone import __version__
from keystone.api.routes import router
from keystone.core.config import Config, get_config
from keystone.core.exceptions import (
    InvalidReferenceError,
    KeystoneError,
    StateConflictError,
    ValidationError,
)
from keystone.core.logging import get_logger
from keystone.db.database import Database
from keystone.engine.bookings import ScheduleBook
from keystone.engine.interview import FeedbackInterviewEngine
from keystone.engine.question_graph import load_graph_dir
from keystone.engine.voice_scheduler import VoiceSchedulingInterpreter

logger = get_logger(__name__)


def status_for(error: KeystoneError) -> int:
    """HTTP status code for a domain exception."""
    if isinstance(error, InvalidReferenceError):
        return 404
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, StateConflictError):
        return 409
    return 500


def create_app(db: Optional[Database] = None, config: Optional[Config] = None) -> FastAPI:
    """Build the API app.

    Args:
        db: Database to serve (defaults to the configured path, initialized)
        config: Configuration (defaults to get_config())
    """
    config = config or get_config()
    if db is None:
        db = Database(str(config.db_path))
        db.initialize()
    if config.graph_dir is not None:
        load_graph_dir(config.graph_dir)

    app = FastAPI(title="Keystone", version=__version__)
    app.state.db = db
    app.state.config = config
    app.state.interview = FeedbackInterviewEngine(db, config)
    app.state.scheduler = VoiceSchedulingInterpreter(db, config)
    app.state.schedule_book = ScheduleBook(db, config)
    app.include_router(router)

    @app.exception_handler(KeystoneError)
    async def handle_keystone_error(request: Request, exc: KeystoneError):
        status = status_for(exc)
        if status >= 500:
            logger.error(
                f"Internal error: {exc}",
                exc_info=exc,
                extra={"context": {"path": request.url.path}},
            )
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
