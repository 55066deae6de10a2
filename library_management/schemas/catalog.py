from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr

from library_management.db.models import CopyStatus, MembershipStatus


class PublisherCreate(BaseModel):
    name: str
    address: Optional[str] = None
    contact_email: Optional[str] = None
    website: Optional[str] = None


class AuthorCreate(BaseModel):
    name: str
    birth_year: Optional[int] = None
    nationality: Optional[str] = None
    biography: Optional[str] = None


class BookCreate(BaseModel):
    isbn: str
    title: str
    publisher_id: int
    author_ids: List[int] = []
    publication_year: Optional[int] = None
    edition: Optional[str] = None
    category: Optional[str] = None
    language: Optional[str] = "English"
    page_count: Optional[int] = None
    description: Optional[str] = None


class CopyCreate(BaseModel):
    book_id: int
    barcode: str
    acquisition_date: date
    # checked_out no se acepta aquí: solo lo pone el checkout
    status: CopyStatus = CopyStatus.AVAILABLE
    location: Optional[str] = None
    notes: Optional[str] = None


class MemberCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    membership_date: date
    membership_status: MembershipStatus = MembershipStatus.ACTIVE


class StaffCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    position: str
    hire_date: date
    salary: Optional[Decimal] = None


class FineCreate(BaseModel):
    loan_id: int
    amount: Decimal
    issue_date: Optional[date] = None  # None -> hoy según el reloj
    notes: Optional[str] = None


class ReservationCreate(BaseModel):
    book_id: int
    member_id: int
    expiry_date: datetime
