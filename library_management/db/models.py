from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func

from library_management.core.clock import system_clock
from library_management.db.session import Base


# ======================
# Enums
# ======================

class MembershipStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class CopyStatus(str, Enum):
    AVAILABLE = "available"
    CHECKED_OUT = "checked_out"
    LOST = "lost"
    DAMAGED = "damaged"
    IN_REPAIR = "in_repair"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"


class FineStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    WAIVED = "waived"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def _status_enum(enum_cls: type[Enum], name: str) -> SqlEnum:
    # Guardamos el valor en minúsculas ("checked_out"), no el nombre del miembro
    return SqlEnum(
        enum_cls,
        name=name,
        values_callable=lambda obj: [e.value for e in obj],
        create_constraint=True,
        validate_strings=True,
    )


# ======================
# Member
# ======================

class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        CheckConstraint("email LIKE '%@%.%'", name="chk_email"),
        Index("idx_members_name", "last_name", "first_name"),
        {"comment": "Stores library member information"},
    )

    member_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    membership_date: Mapped[date] = mapped_column(Date, nullable=False)
    membership_status: Mapped[MembershipStatus] = mapped_column(
        _status_enum(MembershipStatus, "membership_status"),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )

    # RESTRICT en la BD: no se borra un socio con préstamos
    loans: Mapped[list["Loan"]] = relationship(
        "Loan", back_populates="member", passive_deletes="all"
    )
    reservations: Mapped[list["Reservation"]] = relationship(
        "Reservation",
        back_populates="member",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Member(id={self.member_id}, email='{self.email}', status={self.membership_status})>"


# ======================
# Author / Publisher
# ======================

class Author(Base):
    __tablename__ = "authors"
    __table_args__ = {"comment": "Stores author information"}

    author_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_year: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    nationality: Mapped[str | None] = mapped_column(String(50), nullable=True)
    biography: Mapped[str | None] = mapped_column(Text, nullable=True)

    books: Mapped[list["Book"]] = relationship(
        "Book", secondary="book_authors", back_populates="authors", passive_deletes=True
    )


class Publisher(Base):
    __tablename__ = "publishers"
    __table_args__ = {"comment": "Stores publisher information"}

    publisher_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(100), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # RESTRICT en la BD: la editorial no se borra mientras tenga libros
    books: Mapped[list["Book"]] = relationship(
        "Book", back_populates="publisher", passive_deletes="all"
    )


# ======================
# Book / BookAuthor
# ======================

book_authors = Table(
    "book_authors",
    Base.metadata,
    Column(
        "book_id",
        Integer,
        ForeignKey("books.book_id", name="fk_ba_book", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "author_id",
        Integer,
        ForeignKey("authors.author_id", name="fk_ba_author", ondelete="CASCADE"),
        primary_key=True,
    ),
    comment="Junction table for book-author relationships",
)


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        Index("idx_books_title", "title"),
        {"comment": "Stores book information"},
    )

    book_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    isbn: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    publisher_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("publishers.publisher_id", name="fk_book_publisher", ondelete="RESTRICT"),
        nullable=False,
    )
    publication_year: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    edition: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    language: Mapped[str | None] = mapped_column(String(30), nullable=True, default="English")
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    publisher: Mapped["Publisher"] = relationship("Publisher", back_populates="books")
    authors: Mapped[list["Author"]] = relationship(
        "Author", secondary=book_authors, back_populates="books", passive_deletes=True
    )
    copies: Mapped[list["BookCopy"]] = relationship(
        "BookCopy",
        back_populates="book",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    reservations: Mapped[list["Reservation"]] = relationship(
        "Reservation",
        back_populates="book",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Book(id={self.book_id}, isbn='{self.isbn}', title='{self.title}')>"


# ======================
# BookCopy
# ======================

class BookCopy(Base):
    __tablename__ = "book_copies"
    __table_args__ = (
        Index("idx_book_copies_status", "status"),
        {"comment": "Stores individual copies of books"},
    )

    copy_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.book_id", name="fk_copy_book", ondelete="CASCADE"),
        nullable=False,
    )
    barcode: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    acquisition_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Estado derivado: solo el ciclo de préstamos lo pasa a / saca de checked_out
    status: Mapped[CopyStatus] = mapped_column(
        _status_enum(CopyStatus, "copy_status"),
        nullable=False,
        default=CopyStatus.AVAILABLE,
        active_history=True,
    )
    location: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    book: Mapped["Book"] = relationship("Book", back_populates="copies")
    loans: Mapped[list["Loan"]] = relationship(
        "Loan", back_populates="copy", passive_deletes="all"
    )

    def __repr__(self):
        return f"<BookCopy(id={self.copy_id}, barcode='{self.barcode}', status={self.status})>"


# ======================
# Loan
# ======================

class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("due_date > date(loan_date)", name="chk_due_date"),
        CheckConstraint(
            "status <> 'returned' OR return_date IS NOT NULL",
            name="chk_returned_has_return_date",
        ),
        CheckConstraint(
            "return_date IS NULL OR status = 'returned'",
            name="chk_return_date_means_returned",
        ),
        Index("idx_loans_member", "member_id"),
        Index("idx_loans_status", "status"),
        {"comment": "Tracks book loans to members"},
    )

    loan_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    copy_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("book_copies.copy_id", name="fk_loan_copy", ondelete="RESTRICT"),
        nullable=False,
    )

    member_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("members.member_id", name="fk_loan_member", ondelete="RESTRICT"),
        nullable=False,
    )

    loan_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=system_clock.now,
        server_default=func.now(),
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    return_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        active_history=True,
    )

    status: Mapped[LoanStatus] = mapped_column(
        _status_enum(LoanStatus, "loan_status"),
        nullable=False,
        default=LoanStatus.ACTIVE,
        active_history=True,
    )

    copy: Mapped["BookCopy"] = relationship("BookCopy", back_populates="loans")
    member: Mapped["Member"] = relationship("Member", back_populates="loans")
    fines: Mapped[list["Fine"]] = relationship(
        "Fine",
        back_populates="loan",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Loan(id={self.loan_id}, copy_id={self.copy_id}, member_id={self.member_id}, status={self.status})>"


# ======================
# Fine
# ======================

class Fine(Base):
    __tablename__ = "fines"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_amount"),
        Index("idx_fines_status", "status"),
        {"comment": "Tracks fines for overdue/lost books"},
    )

    fine_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    loan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("loans.loan_id", name="fk_fine_loan", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[FineStatus] = mapped_column(
        _status_enum(FineStatus, "fine_status"),
        nullable=False,
        default=FineStatus.PENDING,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    loan: Mapped["Loan"] = relationship("Loan", back_populates="fines")


# ======================
# Reservation
# ======================

class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = {"comment": "Tracks book reservations"}

    reservation_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.book_id", name="fk_reservation_book", ondelete="CASCADE"),
        nullable=False,
    )
    member_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("members.member_id", name="fk_reservation_member", ondelete="CASCADE"),
        nullable=False,
    )
    reservation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=system_clock.now,
        server_default=func.now(),
    )
    expiry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        _status_enum(ReservationStatus, "reservation_status"),
        nullable=False,
        default=ReservationStatus.PENDING,
    )

    book: Mapped["Book"] = relationship("Book", back_populates="reservations")
    member: Mapped["Member"] = relationship("Member", back_populates="reservations")


# ======================
# Staff
# ======================

class Staff(Base):
    __tablename__ = "staff"
    __table_args__ = (
        CheckConstraint("email LIKE '%@%.%'", name="chk_staff_email"),
        CheckConstraint("salary >= 0", name="chk_salary"),
        {"comment": "Stores library staff information"},
    )

    staff_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    position: Mapped[str] = mapped_column(String(50), nullable=False)
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    salary: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)


# Las reglas del ciclo de préstamos se registran junto con los modelos
from library_management.db import events  # noqa: E402,F401
