#configuracion de los test
import uuid
from datetime import date, datetime, timezone
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from library_management.core.clock import FixedClock
from library_management.db.init_db import drop_db, init_db
from library_management.db.models import CopyStatus, MembershipStatus
from library_management.db.session import make_engine
from library_management.schemas.catalog import (
    AuthorCreate,
    BookCreate,
    CopyCreate,
    MemberCreate,
    PublisherCreate,
)
from library_management.services import catalog_service


def _unique(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


# ======================================================
# ENGINE / SESSION FIXTURES
# ======================================================
@pytest.fixture
def engine(tmp_path):
    """
    Base SQLite en un fichero temporal por test (dos sesiones pueden verse
    entre sí, cosa que :memory: no permite).
    """
    eng = make_engine(f"sqlite:///{tmp_path / 'library_test.db'}", echo=False)
    init_db(eng)
    yield eng
    drop_db(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """
    Provee una sesión limpia de DB para cada test.
    """
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_session(session_factory) -> Generator[Session, None, None]:
    """Segunda sesión: simula otro cliente concurrente."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc))


# ======================================================
# CATALOG FIXTURES
# ======================================================
@pytest.fixture
def publisher(db_session):
    return catalog_service.create_publisher(
        db_session, PublisherCreate(name="Editorial Pruebas", contact_email="ed@pruebas.org")
    )


@pytest.fixture
def author(db_session):
    return catalog_service.create_author(db_session, AuthorCreate(name="Autor Test"))


@pytest.fixture
def make_book(db_session, publisher):
    def _make(title: str = "Libro de Pruebas", author_ids=None):
        return catalog_service.create_book(
            db_session,
            BookCreate(
                isbn=_unique("ISBN"),
                title=title,
                publisher_id=publisher.publisher_id,
                author_ids=author_ids or [],
            ),
        )

    return _make


@pytest.fixture
def book(make_book, author):
    return make_book(author_ids=[author.author_id])


@pytest.fixture
def make_copy(db_session, book):
    def _make(status: CopyStatus = CopyStatus.AVAILABLE, book_id: int | None = None):
        return catalog_service.add_copy(
            db_session,
            CopyCreate(
                book_id=book_id or book.book_id,
                barcode=_unique("BC"),
                acquisition_date=date(2025, 1, 15),
                status=status,
            ),
        )

    return _make


@pytest.fixture
def make_member(db_session):
    def _make(status: MembershipStatus = MembershipStatus.ACTIVE):
        return catalog_service.create_member(
            db_session,
            MemberCreate(
                first_name="Member",
                last_name="Test",
                email=f"{_unique('member')}@biblioteca.org",
                membership_date=date(2025, 6, 1),
                membership_status=status,
            ),
        )

    return _make


@pytest.fixture
def copy(make_copy):
    return make_copy()


@pytest.fixture
def member(make_member):
    return make_member()
