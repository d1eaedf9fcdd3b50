from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from circuito.core.config import settings
import logging

logger = logging.getLogger(__name__)

engine_options = {"pool_pre_ping": True, "echo": settings.DEBUG}
if settings.database_url.startswith("sqlite"):
    # SQLite en memoria (tests): una sola conexión compartida entre hilos
    engine_options.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
else:
    engine_options.update(pool_size=10, max_overflow=20)

sync_engine = create_engine(settings.database_url, **engine_options)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

Base = declarative_base()


def get_db():
    """Genera una sesión de base de datos por request."""
    db = SessionLocal()
    try:
        yield db
    except HTTPException:
        # Respuesta de negocio (404, 409, ...): no es un error de base de datos
        db.rollback()
        raise
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()
