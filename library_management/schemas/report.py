from datetime import date, datetime

from pydantic import BaseModel


class AvailableBook(BaseModel):
    # Una fila por (libro, autor), como la vista available_books
    book_id: int
    title: str
    isbn: str
    author: str
    available_copies: int

    class Config:
        from_attributes = True


class OverdueLoan(BaseModel):
    loan_id: int
    first_name: str
    last_name: str
    title: str
    barcode: str
    loan_date: datetime
    due_date: date
    days_overdue: int

    class Config:
        from_attributes = True
