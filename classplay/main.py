# classplay/main.py
# Start the backend using uvicorn classplay.main:app --reload --host 0.0.0.0
# STORE_BACKEND=sql keeps sessions in DATABASE_URL across restarts.
import json
import logging
import logging.config
import logging.handlers
import pathlib
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute, APIWebSocketRoute

from classplay.core.config import settings
from classplay.api import gameplay as gameplay_router
from classplay.api import monitoring as monitoring_router
from classplay.api import sessions as sessions_router
from classplay.api import websockets as websocket_router
from classplay.core.db_logging_handler import DatabaseHandler
from classplay.core.errors import (
    GameError,
    InsufficientPlayersError,
    InvalidStatusTransitionError,
    PartialWriteError,
    PlayerNotInSessionError,
    SessionFullError,
    SessionNotFoundError,
    ValidationError,
)
from classplay.db.base import Base # For table creation
from classplay.db.session import engine

_queue_handler_instance: Optional[logging.handlers.QueueHandler] = None # Module-level variable

def configure_logging_from_file():
    """Loads logging configuration from the JSON file and identifies the QueueHandler."""
    global _queue_handler_instance
    config_file = pathlib.Path(__file__).parent / "logging_config.json"
    try:
        with open(config_file) as f_in:
            config = json.load(f_in)

        settings.LOG_DIR.mkdir(parents=True, exist_ok=True)
        config["handlers"]["file_json"]["filename"] = str(settings.LOG_DIR / "classplay.log.jsonl")

        logging.config.dictConfig(config)

        # Find the QueueHandler instance to start/stop its listener later
        for handler in logging.getLogger().handlers:
            if isinstance(handler, logging.handlers.QueueHandler):
                _queue_handler_instance = handler
                break

        if not _queue_handler_instance:
            logging.getLogger("classplay.main.logging_setup_check").error(
                "QueueHandler not found in root logger. Off-thread logging will not work as intended."
            )
    except FileNotFoundError:
        print(f"ERROR: Logging configuration file not found at {config_file}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("classplay.main.logging_setup_fallback").error("Logging configuration file missing.", exc_info=True)
    except json.JSONDecodeError as e:
        print(f"ERROR: Failed to parse logging configuration file {config_file}: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("classplay.main.logging_setup_fallback").error("Logging configuration JSON error.", exc_info=True)
    except Exception as e:
        print(f"ERROR: Failed to configure logging from file: {e}. Falling back to basic stdout logging.")
        logging.basicConfig(level=logging.INFO, format='%(levelname)-8s [%(name)s] %(message)s')
        logging.getLogger("classplay.main.logging_setup_fallback").error("General logging configuration failed.", exc_info=True)

    if settings.ALERTS_TO_DATABASE:
        # Only the "classplay" tree: the crud fallback logger sits outside it.
        logging.getLogger("classplay").addHandler(DatabaseHandler())


# Configure logging when the module is loaded. Listener is started/stopped by lifespan.
configure_logging_from_file()
logger = logging.getLogger("classplay.main") # Logger for this module

def create_tables():
    Base.metadata.create_all(bind=engine)
create_tables()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup sequence initiated...")
    if _queue_handler_instance and hasattr(_queue_handler_instance, 'listener'):
        try:
            _queue_handler_instance.listener.start()
            logger.info("Logging QueueListener started successfully via lifespan.")
        except Exception as e:
            logger.error(f"Failed to start QueueListener in lifespan: {e}", exc_info=True)
    else:
        logger.warning("QueueHandler or its listener not found during startup; off-thread logging might not be active.")

    yield  # This is where the application will run

    logger.info("Application shutdown sequence initiated...")
    if _queue_handler_instance and hasattr(_queue_handler_instance, 'listener'):
        try:
            logger.info("Attempting to stop Logging QueueListener...")
            _queue_handler_instance.listener.stop()
            logger.info("Logging QueueListener stopped successfully via lifespan.")
        except Exception as e:
            logger.error(f"Failed to stop QueueListener gracefully in lifespan: {e}", exc_info=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# --- Error mapping ---

_STATUS_BY_ERROR = [
    # Most specific first: several of these are ValidationError subclasses.
    (PlayerNotInSessionError, status.HTTP_404_NOT_FOUND),
    (SessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (SessionFullError, status.HTTP_409_CONFLICT),
    (InsufficientPlayersError, status.HTTP_409_CONFLICT),
    (PartialWriteError, status.HTTP_502_BAD_GATEWAY),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
]

def status_for_error(exc: GameError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR

@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    status_code = status_for_error(exc)
    body = {"detail": exc.message, **exc.to_dict()}
    if isinstance(exc, PartialWriteError):
        body["turn"] = exc.turn.to_record() if exc.turn is not None else None
        body["move"] = exc.move.to_record() if exc.move is not None else None
        logger.error(f"Partial write on {request.url.path}: {exc.cause!r}")
    elif status_code >= 500:
        logger.error(f"Unmapped game error on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} ({type(exc).__name__}: {exc.message})")
    return JSONResponse(status_code=status_code, content=body)

# Include Routers
app.include_router(sessions_router.router, prefix=settings.API_V1_STR + "/sessions", tags=["Sessions"])
app.include_router(gameplay_router.router, prefix=settings.API_V1_STR + "/sessions", tags=["Gameplay"])
app.include_router(monitoring_router.router, prefix=settings.API_V1_STR + "/monitoring", tags=["Monitoring"])
app.include_router(websocket_router.router, tags=["Session Sockets"]) # WebSockets don't have the API prefix

logger.info("--- FastAPI Registered Routes ---")
for route in app.routes:
    if isinstance(route, APIRoute):
        logger.info(f"Path: {route.path}, Methods: {route.methods}, Name: {route.name}")
    elif isinstance(route, APIWebSocketRoute):
        logger.info(f"WebSocket Path: {route.path}, Name: {route.name}")
logger.info("--- End Registered Routes ---\n")


@app.get(settings.API_V1_STR + "/health", tags=["Health Check"])
async def health_check():
    return {"status": "healthy", "project": settings.PROJECT_NAME, "store_backend": settings.STORE_BACKEND}
