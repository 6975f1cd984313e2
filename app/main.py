"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from app.config import get_settings
from app.db import close_db, init_db

_STATIC_DIR = Path(__file__).resolve().parent / "static"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    print(f"[startup] DB ready at {settings.db_abs_path}")
    yield
    await close_db()
    print("[shutdown] DB closed")


app = FastAPI(
    title="queue-shuffle",
    version="0.1.0",
    lifespan=lifespan,
)

# Session middleware (signed cookie — stores PKCE verifier, state + user id).
app.add_middleware(SessionMiddleware, secret_key=get_settings().secret_key)

app.mount("/static", StaticFiles(directory=str(_STATIC_DIR)), name="static")

# Routers
from app.auth import router as auth_router  # noqa: E402
from app.routes_shuffle import router as shuffle_router  # noqa: E402

app.include_router(auth_router)
app.include_router(shuffle_router)


@app.get("/health")
async def health():
    """Simple health-check endpoint."""
    return JSONResponse({"status": "ok", "version": app.version})
