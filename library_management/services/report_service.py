from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from library_management.core.clock import Clock, system_clock
from library_management.db.models import (
    Author,
    Book,
    BookCopy,
    CopyStatus,
    Loan,
    LoanStatus,
    Member,
    book_authors,
)
from library_management.schemas.report import AvailableBook, OverdueLoan


def available_books(db: Session) -> List[AvailableBook]:
    """
    Ejemplares disponibles por libro y autor.

    JOIN internos: un libro sin autores o sin ejemplares disponibles no aparece,
    y un libro con dos autores da dos filas.
    """
    stmt = (
        select(
            Book.book_id,
            Book.title,
            Book.isbn,
            Author.name.label("author"),
            func.count(BookCopy.copy_id).label("available_copies"),
        )
        .join(book_authors, book_authors.c.book_id == Book.book_id)
        .join(Author, Author.author_id == book_authors.c.author_id)
        .join(BookCopy, BookCopy.book_id == Book.book_id)
        .where(BookCopy.status == CopyStatus.AVAILABLE)
        .group_by(Book.book_id, Book.title, Book.isbn, Author.name)
        .order_by(Book.title, Author.name)
    )
    return [AvailableBook.model_validate(row) for row in db.execute(stmt)]


def overdue_loans(db: Session, clock: Optional[Clock] = None) -> List[OverdueLoan]:
    """Préstamos activos sin devolver cuya fecha límite ya pasó."""
    today = (clock or system_clock).today()

    stmt = (
        select(
            Loan.loan_id,
            Member.first_name,
            Member.last_name,
            Book.title,
            BookCopy.barcode,
            Loan.loan_date,
            Loan.due_date,
        )
        .join(Member, Member.member_id == Loan.member_id)
        .join(BookCopy, BookCopy.copy_id == Loan.copy_id)
        .join(Book, Book.book_id == BookCopy.book_id)
        .where(
            Loan.status == LoanStatus.ACTIVE,
            Loan.return_date.is_(None),
            Loan.due_date < today,
        )
        .order_by(Loan.due_date, Loan.loan_id)
    )

    return [
        OverdueLoan(
            loan_id=row.loan_id,
            first_name=row.first_name,
            last_name=row.last_name,
            title=row.title,
            barcode=row.barcode,
            loan_date=row.loan_date,
            due_date=row.due_date,
            days_overdue=(today - row.due_date).days,
        )
        for row in db.execute(stmt)
    ]
