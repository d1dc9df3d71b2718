from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from axescan.platform.config import settings


def _connect_args(database_url: str) -> dict:
    # API threads and Celery threads share the engine
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

# Each Scan Store call opens and closes its own session from this factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    class_=Session,
)
