import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from resilience.core.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(settings.DATABASE_URL, future=True, pool_pre_ping=True, echo=settings.DATABASE_ECHO)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def init_db() -> None:
    """Create tables if they don't exist. Production deployments run migrations instead."""
    from resilience.models.orm import Base
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")
