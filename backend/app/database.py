"""
Database configuration and session management.

Rallies live in a SQLite file under backend/data unless
RALLYDESK_DATABASE_URL points somewhere else.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from pathlib import Path

from app.config import DatabaseConfig, get_settings

settings = get_settings()

BACKEND_DIR = Path(__file__).parent.parent
DATA_DIR = BACKEND_DIR / "data"
DB_FILE = DATA_DIR / "rallydesk.db"


def resolve_database_url(config: DatabaseConfig) -> str:
    """Return the configured URL, or the default SQLite file."""
    if config.DATABASE_URL:
        return config.DATABASE_URL
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DB_FILE}"


DATABASE_URL = resolve_database_url(settings.database)

# SQLite connections are shared across FastAPI's worker threads
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    echo=settings.database.ECHO_SQL,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Session:
    """
    Dependency function to get a database session.

    Yields:
        Session: Closed automatically once the request is done.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create the rallies table if it doesn't exist. Called on startup."""
    from app.models import rally  # noqa: F401

    Base.metadata.create_all(bind=engine)
    print(f"Database initialised at {engine.url.render_as_string(hide_password=True)}")
