from typing import Optional

from sqlalchemy.engine import Engine

from library_management.core.logging import configure_logging, get_logger
from library_management.db import models  # noqa: F401  (registra las tablas en Base)
from library_management.db.session import Base, engine as default_engine

logger = get_logger("library.db")


def init_db(engine: Optional[Engine] = None) -> None:
    """Crea tablas, índices y constraints si no existen."""
    engine = engine or default_engine
    Base.metadata.create_all(bind=engine)
    logger.info(
        "schema_created",
        extra={"operation": "init_db", "tables": sorted(Base.metadata.tables.keys())},
    )


def drop_db(engine: Optional[Engine] = None) -> None:
    engine = engine or default_engine
    Base.metadata.drop_all(bind=engine)
    logger.info("schema_dropped", extra={"operation": "drop_db"})


if __name__ == "__main__":
    configure_logging()
    init_db()
