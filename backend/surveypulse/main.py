import logging
import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

# before any surveypulse module reads its os.getenv settings
load_dotenv(find_dotenv(usecwd=True))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from surveypulse.logging_setup import setup_logging
from surveypulse.routers import aggregates, login, responses, stream
from surveypulse.services.notifier import ChangeNotifier
from surveypulse.services.records import make_record_store

setup_logging()
logger = logging.getLogger(__name__)

# Prefer a built client, fall back to the plain client folder
CLIENT_BUILD_DIR = os.getenv("CLIENT_BUILD_DIR", "client/build")
CLIENT_DIR = os.getenv("CLIENT_DIR", "client")

app = FastAPI(title="Survey Pulse")

# Get CORS origins from environment variable
cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["GET", "POST"], allow_headers=["*"],
)

# Owned by this process, handed to routes through app.state
app.state.store = make_record_store()
app.state.notifier = ChangeNotifier()


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(responses.router)
app.include_router(aggregates.router)
app.include_router(login.router)
app.include_router(stream.router)


@app.on_event("shutdown")
def on_shutdown():
    logger.info("Shutting down, closing %d live subscribers", len(app.state.notifier))
    app.state.notifier.close_all()


def static_dir() -> Path | None:
    for candidate in (CLIENT_BUILD_DIR, CLIENT_DIR):
        if Path(candidate).is_dir():
            return Path(candidate)
    return None


# Mounted last so the API routes win
_static = static_dir()
if _static is not None:
    app.mount("/", StaticFiles(directory=str(_static), html=True), name="client")
    logger.info("Serving static files from %s", _static)
else:
    logger.info("No client static files found (%s or %s)", CLIENT_BUILD_DIR, CLIENT_DIR)
