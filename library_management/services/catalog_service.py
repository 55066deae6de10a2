from typing import Optional

from sqlalchemy import delete, insert
from sqlalchemy.orm import Session

from library_management.core.clock import Clock, system_clock
from library_management.core.exceptions import ConstraintViolation, NotFound
from library_management.core.logging import get_logger
from library_management.db.models import (
    Author,
    Book,
    BookCopy,
    CopyStatus,
    Fine,
    Member,
    MembershipStatus,
    Publisher,
    Reservation,
    Staff,
    book_authors,
)
from library_management.db.session import unit_of_work
from library_management.schemas.catalog import (
    AuthorCreate,
    BookCreate,
    CopyCreate,
    FineCreate,
    MemberCreate,
    PublisherCreate,
    ReservationCreate,
    StaffCreate,
)

logger = get_logger("library.catalog")


def _created(resource: str, obj_id: int) -> None:
    logger.info(
        f"{resource}_created",
        extra={"operation": f"{resource}_create", "resource": resource, f"{resource}_id": obj_id},
    )


def _add(db: Session, obj, resource: str):
    with unit_of_work(db):
        db.add(obj)
    db.refresh(obj)
    _created(resource, getattr(obj, f"{resource}_id"))
    return obj


# --- Alta de entidades ---

def create_publisher(db: Session, data: PublisherCreate) -> Publisher:
    return _add(db, Publisher(**data.model_dump()), "publisher")


def create_author(db: Session, data: AuthorCreate) -> Author:
    return _add(db, Author(**data.model_dump()), "author")


def create_book(db: Session, data: BookCreate) -> Book:
    """
    Crea el libro y sus filas en book_authors en la misma transacción.
    Un autor inexistente lo rechaza la FK (ConstraintViolation).
    """
    book = Book(**data.model_dump(exclude={"author_ids"}))
    with unit_of_work(db):
        db.add(book)
        db.flush()
        if data.author_ids:
            db.execute(
                insert(book_authors),
                [{"book_id": book.book_id, "author_id": a_id} for a_id in data.author_ids],
            )
    db.refresh(book)
    _created("book", book.book_id)
    return book


def add_copy(db: Session, data: CopyCreate) -> BookCopy:
    return _add(db, BookCopy(**data.model_dump()), "copy")


def create_member(db: Session, data: MemberCreate) -> Member:
    return _add(db, Member(**data.model_dump()), "member")


def create_staff(db: Session, data: StaffCreate) -> Staff:
    return _add(db, Staff(**data.model_dump()), "staff")


def issue_fine(db: Session, data: FineCreate, clock: Optional[Clock] = None) -> Fine:
    clock = clock or system_clock
    fine = Fine(
        loan_id=data.loan_id,
        amount=data.amount,
        issue_date=data.issue_date or clock.today(),
        notes=data.notes,
    )
    return _add(db, fine, "fine")


def create_reservation(
    db: Session, data: ReservationCreate, clock: Optional[Clock] = None
) -> Reservation:
    clock = clock or system_clock
    reservation = Reservation(
        book_id=data.book_id,
        member_id=data.member_id,
        reservation_date=clock.now(),
        expiry_date=data.expiry_date,
    )
    return _add(db, reservation, "reservation")


# --- Cambios de estado manuales ---

def set_copy_status(db: Session, copy_id: int, status: CopyStatus) -> BookCopy:
    """
    Marca un ejemplar como perdido, dañado, en reparación o disponible.
    `checked_out` y los ejemplares prestados quedan fuera: los gestiona el
    ciclo de préstamos.
    """
    with unit_of_work(db):
        copy = db.get(BookCopy, copy_id, populate_existing=True, with_for_update=True)
        if copy is None:
            raise NotFound("BookCopy", copy_id)
        if copy.status == CopyStatus.CHECKED_OUT and status != CopyStatus.CHECKED_OUT:
            raise ConstraintViolation("Copy is checked out; return the loan first")
        copy.status = status
    db.refresh(copy)
    return copy


def set_membership_status(db: Session, member_id: int, status: MembershipStatus) -> Member:
    with unit_of_work(db):
        member = db.get(Member, member_id, populate_existing=True)
        if member is None:
            raise NotFound("Member", member_id)
        member.membership_status = status
    db.refresh(member)
    return member


# --- Bajas ---
# DELETE directo: las acciones referenciales (RESTRICT / CASCADE) las decide la BD.

def _delete(db: Session, model, pk_column, obj_id: int, resource: str) -> None:
    with unit_of_work(db):
        result = db.execute(delete(model).where(pk_column == obj_id))
        if result.rowcount == 0:
            raise NotFound(resource, obj_id)
    logger.info(
        f"{resource.lower()}_deleted",
        extra={"operation": "delete", "resource": resource, "resource_id": obj_id},
    )


def delete_publisher(db: Session, publisher_id: int) -> None:
    _delete(db, Publisher, Publisher.publisher_id, publisher_id, "Publisher")


def delete_book(db: Session, book_id: int) -> None:
    _delete(db, Book, Book.book_id, book_id, "Book")


def delete_copy(db: Session, copy_id: int) -> None:
    _delete(db, BookCopy, BookCopy.copy_id, copy_id, "BookCopy")


def delete_member(db: Session, member_id: int) -> None:
    _delete(db, Member, Member.member_id, member_id, "Member")
