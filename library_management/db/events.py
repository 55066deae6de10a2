"""
Reglas del ciclo de préstamos aplicadas en cada flush de la sesión.

Equivale a un trigger BEFORE UPDATE sobre `loans`: cualquier escritor que use
el ORM pasa por aquí, no solo `loan_service`.

- Cuando `return_date` pasa de NULL a un valor, el préstamo queda `returned`
  (aunque el llamador haya puesto otro estado) y su ejemplar vuelve a
  `available`, en el mismo flush.
- Un préstamo no puede quedar `returned` sin `return_date`, ni salir de
  `returned` una vez devuelto.
- Un préstamo nuevo solo se inserta como `active`, sin `return_date`, y sobre
  un ejemplar reclamado (`checked_out`) que no tenga otro préstamo abierto.
- Un ejemplar solo pasa a `checked_out` junto con el préstamo nuevo que lo
  ocupa, y solo sale de `checked_out` por una devolución.
"""
from typing import Set

from sqlalchemy import event, func, select
from sqlalchemy.orm import Session, attributes

from library_management.core.exceptions import ConstraintViolation
from library_management.core.logging import get_logger
from library_management.db.models import BookCopy, CopyStatus, Loan, LoanStatus

logger = get_logger("library.loans")


def _return_date_first_set(loan: Loan) -> bool:
    hist = attributes.get_history(loan, "return_date")
    if not hist.added or hist.added[0] is None:
        return False
    old = hist.deleted[0] if hist.deleted else None
    return old is None


def _status_changed_to(obj, value) -> bool:
    hist = attributes.get_history(obj, "status")
    return bool(hist.added) and hist.added[0] == value


def _status_changed_from(obj, value) -> bool:
    hist = attributes.get_history(obj, "status")
    return bool(hist.deleted) and hist.deleted[0] == value and obj.status != value


def _open_loans(session: Session, copy_id: int, returning: Set[int]) -> int:
    """Préstamos sin `return_date` ya guardados, menos los que se devuelven ahora."""
    stmt = select(func.count(Loan.loan_id)).where(
        Loan.copy_id == copy_id,
        Loan.return_date.is_(None),
    )
    if returning:
        stmt = stmt.where(Loan.loan_id.not_in(returning))
    return session.scalar(stmt)


def _check_new_loan(session: Session, loan: Loan, returning: Set[int]) -> None:
    if loan.status not in (None, LoanStatus.ACTIVE) or loan.return_date is not None:
        raise ConstraintViolation("Loans are created active and unreturned")

    copy = loan.copy or session.get(BookCopy, loan.copy_id)
    if copy is None:
        # la FK rechaza el INSERT
        return
    if copy.status != CopyStatus.CHECKED_OUT:
        raise ConstraintViolation(f"Book copy {copy.copy_id} is not claimed for this loan")

    pending = [
        obj for obj in session.new
        if isinstance(obj, Loan) and (obj.copy is copy or obj.copy_id == copy.copy_id)
    ]
    if len(pending) > 1 or _open_loans(session, copy.copy_id, returning) > 0:
        raise ConstraintViolation(f"Book copy {copy.copy_id} already has an open loan")


def _apply_return_transition(session: Session, loan: Loan) -> BookCopy:
    requested = loan.status
    loan.status = LoanStatus.RETURNED

    copy = session.get(BookCopy, loan.copy_id)
    if copy is not None:
        copy.status = CopyStatus.AVAILABLE

    logger.info(
        "return_transition",
        extra={
            "operation": "loan_return",
            "resource": "loan",
            "loan_id": loan.loan_id,
            "copy_id": loan.copy_id,
            "requested_status": getattr(requested, "value", requested),
            "new_status": LoanStatus.RETURNED.value,
        },
    )
    return copy


def _claimed_by_new_loan(session: Session, copy: BookCopy) -> bool:
    for obj in session.new:
        if not isinstance(obj, Loan) or obj.return_date is not None:
            continue
        if obj.copy is copy or obj.copy_id == copy.copy_id:
            return True
    return False


@event.listens_for(Session, "before_flush")
def enforce_loan_lifecycle(session: Session, flush_context, instances) -> None:
    returning: Set[int] = set()
    released: Set[int] = set()

    with session.no_autoflush:
        for obj in list(session.dirty):
            if not isinstance(obj, Loan):
                continue
            if _return_date_first_set(obj):
                copy = _apply_return_transition(session, obj)
                returning.add(obj.loan_id)
                if copy is not None:
                    released.add(copy.copy_id)
            elif obj.status == LoanStatus.RETURNED and obj.return_date is None:
                raise ConstraintViolation("Loan status 'returned' requires a return_date")
            elif _status_changed_from(obj, LoanStatus.RETURNED):
                raise ConstraintViolation("A returned loan cannot be reopened")

        for obj in list(session.new):
            if isinstance(obj, Loan):
                _check_new_loan(session, obj, returning)

        for obj in list(session.dirty) + list(session.new):
            if not isinstance(obj, BookCopy):
                continue
            if _status_changed_to(obj, CopyStatus.CHECKED_OUT):
                if not _claimed_by_new_loan(session, obj):
                    raise ConstraintViolation("Copy status 'checked_out' is set only by checkout")
            elif _status_changed_from(obj, CopyStatus.CHECKED_OUT) and obj.copy_id not in released:
                if _open_loans(session, obj.copy_id, returning) > 0:
                    raise ConstraintViolation(
                        f"Book copy {obj.copy_id} has an open loan; return it first"
                    )
