# ============================================================
# Core DB connection
# ============================================================
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from bizdir.config import settings
from bizdir.db.models import Base

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)


def get_db() -> Session:
    """Dependency to provide DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
