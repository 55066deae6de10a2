from datetime import timedelta

import pytest
from sqlalchemy import func, select

from library_management.core.exceptions import (
    ConstraintViolation,
    CopyUnavailable,
    MemberNotActive,
    NotFound,
)
from library_management.db.models import (
    BookCopy,
    CopyStatus,
    Loan,
    LoanStatus,
    MembershipStatus,
)
from library_management.schemas.loan import LoanRead
from library_management.services import catalog_service
from library_management.services.loan_service import checkout_book, get_loan


# ============================================================
# Helpers
# ============================================================

def _loan_count(db) -> int:
    return db.scalar(select(func.count(Loan.loan_id)))


def _copy_status(db, copy_id: int) -> CopyStatus:
    return db.scalar(select(BookCopy.status).where(BookCopy.copy_id == copy_id))


def _snapshot(db):
    """Foto de préstamos y ejemplares para comprobar que nada cambió."""
    loans = [LoanRead.model_validate(loan) for loan in db.scalars(select(Loan)).all()]
    copies = dict(db.execute(select(BookCopy.copy_id, BookCopy.status)).all())
    return loans, copies


# ============================================================
# Checkout correcto
# ============================================================

def test_checkout_creates_active_loan_and_marks_copy(db_session, copy, member, clock):
    """
    Escenario: ejemplar disponible, socio activo, 14 días en el día D
    -> préstamo con due_date D+14 y ejemplar checked_out.
    """
    loan = checkout_book(db_session, copy.copy_id, member.member_id, 14, clock=clock)

    assert loan.loan_id is not None
    assert loan.status == LoanStatus.ACTIVE
    assert loan.return_date is None
    assert loan.loan_date.date() == clock.today()
    assert loan.due_date == clock.today() + timedelta(days=14)
    assert loan.copy_id == copy.copy_id
    assert loan.member_id == member.member_id

    assert _copy_status(db_session, copy.copy_id) == CopyStatus.CHECKED_OUT
    assert _loan_count(db_session) == 1


def test_checkout_due_date_follows_due_days(db_session, make_copy, member, clock):
    for days in (1, 7, 30):
        c = make_copy()
        loan = checkout_book(db_session, c.copy_id, member.member_id, days, clock=clock)
        assert loan.due_date == loan.loan_date.date() + timedelta(days=days)


def test_checkout_uses_default_loan_days(db_session, copy, member, clock):
    loan = checkout_book(db_session, copy.copy_id, member.member_id, clock=clock)
    assert loan.due_date == clock.today() + timedelta(days=14)


def test_checkout_is_visible_to_other_sessions(db_session, other_session, copy, member, clock):
    loan = checkout_book(db_session, copy.copy_id, member.member_id, 14, clock=clock)

    assert other_session.get(Loan, loan.loan_id) is not None
    assert _copy_status(other_session, copy.copy_id) == CopyStatus.CHECKED_OUT


# ============================================================
# Ejemplar no disponible
# ============================================================

def test_checkout_lost_copy_fails_without_changes(db_session, make_copy, member, clock):
    """Escenario: ejemplar perdido -> CopyUnavailable y ninguna fila cambia."""
    lost = make_copy(status=CopyStatus.LOST)
    before = _snapshot(db_session)

    with pytest.raises(CopyUnavailable) as exc_info:
        checkout_book(db_session, lost.copy_id, member.member_id, 14, clock=clock)

    assert exc_info.value.message == "Book copy is not available for checkout"
    assert exc_info.value.copy_id == lost.copy_id
    assert _snapshot(db_session) == before


@pytest.mark.parametrize(
    "status",
    [CopyStatus.LOST, CopyStatus.DAMAGED, CopyStatus.IN_REPAIR],
)
def test_checkout_non_available_copy(db_session, make_copy, member, clock, status):
    c = make_copy(status=status)

    with pytest.raises(CopyUnavailable):
        checkout_book(db_session, c.copy_id, member.member_id, 14, clock=clock)

    assert _loan_count(db_session) == 0
    assert _copy_status(db_session, c.copy_id) == status


def test_checkout_copy_already_checked_out(db_session, copy, make_member, clock):
    first = make_member()
    second = make_member()
    checkout_book(db_session, copy.copy_id, first.member_id, 14, clock=clock)

    with pytest.raises(CopyUnavailable):
        checkout_book(db_session, copy.copy_id, second.member_id, 14, clock=clock)

    assert _loan_count(db_session) == 1
    assert _copy_status(db_session, copy.copy_id) == CopyStatus.CHECKED_OUT


def test_checkout_with_stale_copy_in_session(db_session, other_session, copy, make_member, clock):
    """
    La sesión A tiene el ejemplar cargado como disponible; la sesión B lo presta
    antes. A debe releer el estado y fallar con CopyUnavailable.
    """
    stale = db_session.get(BookCopy, copy.copy_id)
    assert stale.status == CopyStatus.AVAILABLE

    checkout_book(other_session, copy.copy_id, make_member().member_id, 14, clock=clock)

    with pytest.raises(CopyUnavailable):
        checkout_book(db_session, copy.copy_id, make_member().member_id, 14, clock=clock)

    assert _loan_count(other_session) == 1


def test_checkout_loses_race_between_read_and_claim(
    db_session, other_session, copy, make_member, clock, monkeypatch
):
    """
    A lee el ejemplar como disponible y, antes de su UPDATE condicional, B lo
    presta y confirma. El UPDATE de A no toca filas: CopyUnavailable y ningún
    préstamo para A.
    """
    winner = make_member()
    loser = make_member()
    real_get = db_session.get
    raced = []

    def get_then_other_client_wins(entity, ident, **kwargs):
        obj = real_get(entity, ident, **kwargs)
        if entity is BookCopy and not raced:
            raced.append(ident)
            checkout_book(other_session, ident, winner.member_id, 14, clock=clock)
        return obj

    monkeypatch.setattr(db_session, "get", get_then_other_client_wins)

    with pytest.raises(CopyUnavailable):
        checkout_book(db_session, copy.copy_id, loser.member_id, 14, clock=clock)

    assert raced == [copy.copy_id]
    monkeypatch.undo()
    db_session.expire_all()
    assert _loan_count(db_session) == 1
    assert db_session.scalar(
        select(func.count(Loan.loan_id)).where(Loan.member_id == loser.member_id)
    ) == 0
    assert _copy_status(db_session, copy.copy_id) == CopyStatus.CHECKED_OUT


# ============================================================
# Socio no activo
# ============================================================

@pytest.mark.parametrize(
    "status",
    [MembershipStatus.EXPIRED, MembershipStatus.SUSPENDED],
)
def test_checkout_inactive_member(db_session, copy, make_member, clock, status):
    inactive = make_member(status=status)
    before = _snapshot(db_session)

    with pytest.raises(MemberNotActive) as exc_info:
        checkout_book(db_session, copy.copy_id, inactive.member_id, 14, clock=clock)

    assert exc_info.value.message == "Member account is not active"
    assert exc_info.value.member_id == inactive.member_id
    assert _snapshot(db_session) == before
    assert _copy_status(db_session, copy.copy_id) == CopyStatus.AVAILABLE


def test_membership_status_change_gates_checkout(db_session, copy, member, clock):
    suspended = catalog_service.set_membership_status(
        db_session, member.member_id, MembershipStatus.SUSPENDED
    )
    assert suspended.membership_status == MembershipStatus.SUSPENDED

    with pytest.raises(MemberNotActive):
        checkout_book(db_session, copy.copy_id, member.member_id, 14, clock=clock)
    assert _loan_count(db_session) == 0

    catalog_service.set_membership_status(db_session, member.member_id, MembershipStatus.ACTIVE)
    loan = checkout_book(db_session, copy.copy_id, member.member_id, 14, clock=clock)

    assert loan.member_id == member.member_id
    assert get_loan(db_session, loan.loan_id) is loan


def test_set_membership_status_for_missing_member(db_session):
    with pytest.raises(NotFound):
        catalog_service.set_membership_status(db_session, 4242, MembershipStatus.EXPIRED)


def test_get_loan_missing(db_session):
    with pytest.raises(NotFound) as exc_info:
        get_loan(db_session, 9999)
    assert exc_info.value.message == "Loan 9999 not found"


def test_copy_check_runs_before_member_check(db_session, make_copy, make_member, clock):
    lost = make_copy(status=CopyStatus.LOST)
    suspended = make_member(status=MembershipStatus.SUSPENDED)

    with pytest.raises(CopyUnavailable):
        checkout_book(db_session, lost.copy_id, suspended.member_id, 14, clock=clock)


# ============================================================
# Argumentos inválidos
# ============================================================

@pytest.mark.parametrize("due_days", [0, -3, True, 2.5])
def test_checkout_rejects_invalid_due_days(db_session, copy, member, clock, due_days):
    with pytest.raises(ConstraintViolation):
        checkout_book(db_session, copy.copy_id, member.member_id, due_days, clock=clock)

    assert _loan_count(db_session) == 0
    assert _copy_status(db_session, copy.copy_id) == CopyStatus.AVAILABLE


def test_checkout_missing_copy(db_session, member, clock):
    with pytest.raises(ConstraintViolation):
        checkout_book(db_session, 9999, member.member_id, 14, clock=clock)
    assert _loan_count(db_session) == 0


def test_checkout_missing_member(db_session, copy, clock):
    with pytest.raises(ConstraintViolation):
        checkout_book(db_session, copy.copy_id, 9999, 14, clock=clock)

    assert _loan_count(db_session) == 0
    assert _copy_status(db_session, copy.copy_id) == CopyStatus.AVAILABLE
