"""HTTP front end for movie jobs: app, lifespan and error mapping."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from moviepipe import __version__, validate_dependencies
from moviepipe.db import init_database, shutdown
from moviepipe.errors import InputRejectedError
from moviepipe.api.routes import JobRegistry, router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Refuse to start without ffmpeg; create and later release the history store."""
    logger.info("Starting moviepipe API...")
    validate_dependencies()
    await init_database()
    logger.info("API startup complete")

    yield

    logger.info("Shutting down moviepipe API...")
    await shutdown()
    logger.info("API shutdown complete")


app = FastAPI(
    title="moviepipe API",
    version=__version__,
    lifespan=lifespan,
)
app.state.registry = JobRegistry()

# CORS for a local dev frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(InputRejectedError)
async def input_rejected_handler(request: Request, exc: InputRejectedError):
    return JSONResponse(status_code=422, content={"error": "Invalid input", "detail": str(exc)})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Unexpected errors become a JSON 500 without a traceback."""
    logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
        }
    )
