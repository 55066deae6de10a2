import sqlite3
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from library_management.core.config import settings
from library_management.core.exceptions import ConstraintViolation
from library_management.core.logging import get_logger

logger = get_logger("library.db")


# SQLite no aplica las FK salvo que se active por conexión
@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    return create_engine(
        url or settings.DATABASE_URL,
        echo=settings.SQL_ECHO if echo is None else echo,
        future=True,
        pool_pre_ping=True,
    )


# Engine: conexión a la base configurada (PostgreSQL, MySQL o SQLite)
engine = make_engine()

# SessionLocal: fábrica de sesiones para los servicios
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

# Base: clase base para los modelos SQLAlchemy
Base = declarative_base()


@contextmanager
def unit_of_work(db: Session) -> Generator[Session, None, None]:
    """
    Envuelve un grupo de escrituras en una sola transacción.

    - Hace commit si el bloque termina bien.
    - Hace rollback ante cualquier excepción.
    - Traduce IntegrityError a ConstraintViolation (la excepción de SQLAlchemy queda en __cause__).
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        detail = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
        logger.warning(
            "constraint_violation",
            extra={"operation": "commit", "detail": detail},
        )
        raise ConstraintViolation(detail) from exc
    except Exception:
        db.rollback()
        raise
