from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from invite_gate.config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine_from_settings(database_url: str = None) -> AsyncEngine:
    """Create the async engine for the authoritative store."""
    url = database_url or settings.sqlalchemy_database_url

    # Log the connection string (mask password for safety)
    password = settings.db_password.get_secret_value()
    masked_url = url.replace(f":{password}@", ":*****@") if password else url
    logger.info(f"🔧 SQLAlchemy DB URL: {masked_url}")

    if url.startswith("sqlite"):
        return create_async_engine(url)
    return create_async_engine(
        url,
        pool_pre_ping=True,  # Validate connections before use
        pool_recycle=3600,   # Recycle connections every hour
        pool_size=10,
        max_overflow=20
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(autocommit=False, autoflush=False, bind=engine, class_=AsyncSession, expire_on_commit=False)
