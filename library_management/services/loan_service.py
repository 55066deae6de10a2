import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from library_management.core.clock import Clock, system_clock
from library_management.core.config import settings
from library_management.core.exceptions import (
    ConstraintViolation,
    CopyUnavailable,
    MemberNotActive,
    NotFound,
)
from library_management.core.logging import correlation_id_ctx, get_logger
from library_management.db.models import (
    BookCopy,
    CopyStatus,
    Loan,
    LoanStatus,
    Member,
    MembershipStatus,
)
from library_management.db.session import unit_of_work


logger = get_logger("library.loans")


def _validate_due_days(due_days) -> int:
    if isinstance(due_days, bool) or not isinstance(due_days, int) or due_days < 1:
        raise ConstraintViolation("due_days must be a positive integer")
    return due_days


def checkout_book(
    db: Session,
    copy_id: int,
    member_id: int,
    due_days: Optional[int] = None,
    clock: Optional[Clock] = None,
) -> Loan:
    """
    Presta un ejemplar a un socio.

    Validaciones en orden (gana el primer fallo):
    1. El ejemplar está `available`   -> si no, CopyUnavailable.
    2. El socio está `active`         -> si no, MemberNotActive.

    El préstamo y el cambio de estado del ejemplar se confirman juntos o no se
    confirma nada. El ejemplar se reclama con un UPDATE condicional
    (`WHERE status = 'available'`), así que de dos checkouts concurrentes
    solo uno gana; el otro recibe CopyUnavailable.
    """
    clock = clock or system_clock
    due_days = _validate_due_days(settings.DEFAULT_LOAN_DAYS if due_days is None else due_days)

    token = correlation_id_ctx.set(str(uuid.uuid4()))
    try:
        with unit_of_work(db):
            # FOR UPDATE bloquea la fila en PostgreSQL/MySQL; SQLite lo ignora
            copy = db.get(BookCopy, copy_id, populate_existing=True, with_for_update=True)
            if copy is None:
                raise ConstraintViolation(f"Book copy {copy_id} does not exist")
            if copy.status != CopyStatus.AVAILABLE:
                raise CopyUnavailable(copy_id)

            member = db.get(Member, member_id, populate_existing=True)
            if member is None:
                raise ConstraintViolation(f"Member {member_id} does not exist")
            if member.membership_status != MembershipStatus.ACTIVE:
                raise MemberNotActive(member_id)

            claimed = db.execute(
                update(BookCopy)
                .where(
                    BookCopy.copy_id == copy_id,
                    BookCopy.status == CopyStatus.AVAILABLE,
                )
                .values(status=CopyStatus.CHECKED_OUT)
            )
            if claimed.rowcount != 1:
                # Otro checkout ganó la carrera entre la lectura y el UPDATE
                raise CopyUnavailable(copy_id)

            loan_date = clock.now()
            loan = Loan(
                copy_id=copy_id,
                member_id=member_id,
                loan_date=loan_date,
                due_date=loan_date.date() + timedelta(days=due_days),
                status=LoanStatus.ACTIVE,
            )
            db.add(loan)
    except (CopyUnavailable, MemberNotActive) as exc:
        logger.warning(
            "checkout_rejected",
            extra={
                "operation": "checkout",
                "resource": "loan",
                "copy_id": copy_id,
                "member_id": member_id,
                "reason": type(exc).__name__,
            },
        )
        raise
    else:
        db.refresh(loan)
        logger.info(
            "checkout_completed",
            extra={
                "operation": "checkout",
                "resource": "loan",
                "loan_id": loan.loan_id,
                "copy_id": copy_id,
                "member_id": member_id,
                "due_date": loan.due_date.isoformat(),
                "new_status": loan.status.value,
            },
        )
        return loan
    finally:
        correlation_id_ctx.reset(token)


def return_loan(
    db: Session,
    loan_id: int,
    returned_at: Optional[datetime] = None,
    clock: Optional[Clock] = None,
) -> Loan:
    """
    Registra la devolución de un préstamo.

    Solo fija `return_date`; el paso a `returned` y la liberación del ejemplar
    los hace la regla de flush (ver db/events.py). Si el préstamo ya estaba
    devuelto no se toca nada.
    """
    clock = clock or system_clock

    token = correlation_id_ctx.set(str(uuid.uuid4()))
    try:
        with unit_of_work(db):
            loan = db.get(Loan, loan_id, populate_existing=True, with_for_update=True)
            if loan is None:
                raise NotFound("Loan", loan_id)

            if loan.return_date is not None:
                logger.info(
                    "return_noop",
                    extra={
                        "operation": "loan_return",
                        "resource": "loan",
                        "loan_id": loan_id,
                    },
                )
                return loan

            loan.return_date = returned_at or clock.now()

        db.refresh(loan)
        logger.info(
            "loan_returned",
            extra={
                "operation": "loan_return",
                "resource": "loan",
                "loan_id": loan.loan_id,
                "copy_id": loan.copy_id,
                "member_id": loan.member_id,
                "new_status": loan.status.value,
            },
        )
        return loan
    finally:
        correlation_id_ctx.reset(token)


def get_loan(db: Session, loan_id: int) -> Loan:
    loan = db.get(Loan, loan_id)
    if loan is None:
        raise NotFound("Loan", loan_id)
    return loan
