from datetime import datetime, date
from typing import Optional

from pydantic import BaseModel

from library_management.db.models import LoanStatus


class LoanRead(BaseModel):
    loan_id: int
    copy_id: int
    member_id: int
    loan_date: datetime
    due_date: date
    return_date: Optional[datetime]
    status: LoanStatus

    class Config:
        from_attributes = True
