"""
RallyDesk backend.

Serves the rally management API and the two rally status update triggers
(cron and admin). Run with ``python main.py`` or ``uvicorn main:app``.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.config import get_settings
from app.database import init_db
from app.api.routes import config, health, rallies, rally_status

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the rallies table before serving requests."""
    print(f"Starting {settings.APP_NAME} v{settings.VERSION}")
    init_db()
    if settings.cron.SECRET_TOKEN:
        print("Cron status updates require a bearer token")
    else:
        print("Warning: CRON_SECRET_TOKEN not set, cron endpoint is open")

    yield

    print(f"{settings.APP_NAME} stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Rally lifecycle backend for an e-sports rally community",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.server.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
# rally_status goes before rallies so /rallies/update-statuses
# is not captured by /rallies/{rally_id}
app.include_router(health.router, tags=["health"])
app.include_router(config.router)
app.include_router(rally_status.router)
app.include_router(rallies.router)


@app.get("/")
async def root() -> dict:
    """Welcome message with links to the docs, health and status preview."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health",
        "status_preview": "/rallies/update-statuses",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.server.HOST, port=settings.server.PORT)
