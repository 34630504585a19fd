"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from testgenius import __version__
from testgenius.config import APP_NAME, GEMINI_API_KEY, GEMINI_MODEL
from testgenius.database import init_db
from testgenius.logging_setup import setup_console_logging
from testgenius.routes import auth, extract, history, leaderboard, review, session, users
from testgenius.services.cleanup_service import schedule_cleanup
from testgenius.services.session_service import SessionManager

setup_console_logging()

app = FastAPI(title=f"{APP_NAME} API", version=__version__)
app.state.session_manager = SessionManager()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup_events() -> None:
    """Create tables and start the cleanup worker."""
    init_db()
    schedule_cleanup()


@app.on_event("shutdown")
def shutdown_events() -> None:
    app.state.session_manager.shutdown()


@app.get("/info")
def info() -> dict[str, object]:
    return {
        "name": APP_NAME,
        "version": __version__,
        "aiConfigured": bool(GEMINI_API_KEY),
        "model": GEMINI_MODEL,
    }


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(session.router)
app.include_router(review.router)
app.include_router(history.router)
app.include_router(leaderboard.router)
app.include_router(extract.router)
