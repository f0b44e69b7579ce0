"""Loan lifecycle and stock bookkeeping.

A book's ``stock`` counts the copies not held by a borrower.  A loan holds a
copy while it is APPROVED or LATE and has no ``actual_return_date``.  Every
operation here computes the stock change from whether the loan holds a copy
before and after the status change, so repeating a transition never moves
stock twice.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from digilib.core.errors import Conflict, InvalidState, NotFound, OutOfStock, Unauthorized, ValidationError
from digilib.core.security import Action, Actor, authorize
from digilib.models.models import Book, BookLoan, LoanStatus, User, UserStatus

logger = logging.getLogger("digilib")

ALLOWED_EDGES = {
    LoanStatus.PENDING: {LoanStatus.APPROVED, LoanStatus.REJECTED},
    LoanStatus.APPROVED: {LoanStatus.RETURNED, LoanStatus.LATE},
    LoanStatus.LATE: {LoanStatus.RETURNED},
    LoanStatus.RETURNED: {LoanStatus.LATE},
    LoanStatus.REJECTED: set(),
}

RETURN_STATUSES = {LoanStatus.RETURNED, LoanStatus.LATE}


@dataclass(frozen=True)
class Transition:
    status: LoanStatus
    stock_delta: int
    returned: bool


def transition(current: LoanStatus, target: LoanStatus, *, returned: bool = False,
               returning: bool = False) -> Transition:
    """Validate ``current -> target`` and compute its stock effect.

    ``returned`` says the copy is already back (the loan has an actual return
    date); ``returning`` says this change hands the copy back.
    """
    if target not in ALLOWED_EDGES[current] and target != current:
        raise InvalidState(f"Cannot change loan status from {current.value} to {target.value}")

    held_before = current.can_hold_copy and not returned
    if returning:
        if target not in RETURN_STATUSES:
            raise ValidationError("Returning a book requires status RETURNED or LATE")
        if not held_before:
            raise InvalidState(f"Loan with status {current.value} has no copy to return")

    if target == LoanStatus.APPROVED:
        held_after = True
    elif target == LoanStatus.LATE:
        # marking overdue keeps the copy out, a late return brings it back
        held_after = held_before and not returning
    else:
        held_after = False

    returned_after = target in RETURN_STATUSES and (returned or held_before) and not held_after
    return Transition(status=target, stock_delta=int(held_before) - int(held_after), returned=returned_after)


def is_overdue(loan: BookLoan, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return loan.holds_copy and loan.return_date < now


def _get_loan(db: Session, loan_id: int, lock: bool = False) -> BookLoan:
    query = db.query(BookLoan).filter(BookLoan.id == loan_id)
    if lock:
        query = query.with_for_update()
    loan = query.first()
    if not loan:
        raise NotFound("Loan not found")
    return loan


def _apply_stock(db: Session, book_id: int, delta: int) -> None:
    if delta == 0:
        return
    updated = (
        db.query(Book)
        .filter(Book.id == book_id, Book.stock + delta >= 0)
        .update({Book.stock: Book.stock + delta}, synchronize_session=False)
    )
    if updated == 0:
        if db.query(Book.id).filter(Book.id == book_id).first() is None:
            raise NotFound("Book not found")
        raise OutOfStock("Book is out of stock")
    logger.info(f"Stock of book {book_id} changed by {delta:+d}")


def _apply_transition(db: Session, loan: BookLoan, target: LoanStatus,
                      actual_return_date: Optional[datetime], returning: bool) -> BookLoan:
    previous = loan.status
    step = transition(previous, target, returned=loan.actual_return_date is not None, returning=returning)
    try:
        _apply_stock(db, loan.book_id, step.stock_delta)
        loan.status = step.status
        if step.returned and loan.actual_return_date is None:
            loan.actual_return_date = actual_return_date or datetime.utcnow()
        elif step.returned and actual_return_date is not None:
            loan.actual_return_date = actual_return_date
        db.add(loan)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(loan)
    logger.info(f"Loan {loan.id} {previous.value} -> {loan.status.value} (stock {step.stock_delta:+d})")
    return loan


def create_loan_request(db: Session, actor: Optional[Actor], book_id: Optional[int],
                        borrow_date: Optional[datetime], return_date: Optional[datetime],
                        notes: Optional[str] = None) -> BookLoan:
    actor = authorize(actor, Action.CREATE_LOAN)
    if not book_id or not borrow_date or not return_date:
        raise ValidationError("Book ID, borrow date, and return date are required")
    if return_date < borrow_date:
        raise ValidationError("Return date must not be before borrow date")

    if not db.query(User.id).filter(User.id == actor.id, User.status == UserStatus.ACTIVE).first():
        raise Unauthorized("Unknown or inactive member")

    existing = (
        db.query(BookLoan.id)
        .filter(
            BookLoan.user_id == actor.id,
            BookLoan.book_id == book_id,
            BookLoan.status.in_([LoanStatus.PENDING, LoanStatus.APPROVED]),
        )
        .first()
    )
    if existing:
        raise Conflict("You already borrowed this book and have not returned it yet")

    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFound("Book not found")
    if book.stock <= 0:
        raise OutOfStock("Book is out of stock")

    loan = BookLoan(
        user_id=actor.id,
        book_id=book.id,
        borrow_date=borrow_date,
        return_date=return_date,
        notes=notes,
        status=LoanStatus.PENDING,
    )
    db.add(loan)
    db.commit()
    db.refresh(loan)
    logger.info(f"User {actor.id} requested book {book.id} loan {loan.id}")
    return loan


def cancel_loan(db: Session, actor: Optional[Actor], loan_id: int) -> None:
    authorize(actor, Action.CANCEL_LOAN)
    loan = _get_loan(db, loan_id, lock=True)
    authorize(actor, Action.CANCEL_LOAN, owner_id=loan.user_id)
    if loan.status != LoanStatus.PENDING:
        raise InvalidState("Only PENDING loans can be cancelled")
    db.delete(loan)
    db.commit()
    logger.info(f"Loan {loan_id} cancelled by user {actor.id}")


def update_loan_status(db: Session, actor: Optional[Actor], loan_id: int, new_status: LoanStatus,
                       actual_return_date: Optional[datetime] = None) -> BookLoan:
    authorize(actor, Action.UPDATE_LOAN_STATUS)
    loan = _get_loan(db, loan_id, lock=True)
    returning = actual_return_date is not None and loan.holds_copy and new_status in RETURN_STATUSES
    return _apply_transition(db, loan, new_status, actual_return_date, returning)


def return_loan(db: Session, actor: Optional[Actor], loan_id: int, actual_return_date: Optional[datetime],
                new_status: LoanStatus) -> BookLoan:
    authorize(actor, Action.RETURN_LOAN)
    loan = _get_loan(db, loan_id, lock=True)
    authorize(actor, Action.RETURN_LOAN, owner_id=loan.user_id)
    if actual_return_date is None or new_status is None:
        raise ValidationError("Actual return date and status are required")
    if new_status not in RETURN_STATUSES:
        raise ValidationError("Status must be RETURNED or LATE")
    return _apply_transition(db, loan, new_status, actual_return_date, returning=True)


def verify_return(db: Session, actor: Optional[Actor], loan_id: int, new_status: LoanStatus) -> BookLoan:
    authorize(actor, Action.VERIFY_RETURN)
    if new_status not in RETURN_STATUSES:
        raise ValidationError("Status must be RETURNED or LATE")
    loan = _get_loan(db, loan_id, lock=True)
    return _apply_transition(db, loan, new_status, None, returning=False)


def list_loans(db: Session, actor: Optional[Actor], user_id: Optional[int] = None,
               status: Optional[LoanStatus] = None) -> List[BookLoan]:
    authorize(actor, Action.VIEW_LOANS, owner_id=user_id)
    query = db.query(BookLoan)
    if user_id is not None:
        query = query.filter(BookLoan.user_id == user_id)
    if status is not None:
        query = query.filter(BookLoan.status == status)
    return query.order_by(BookLoan.created_at.desc(), BookLoan.id.desc()).all()


def list_returns(db: Session, actor: Optional[Actor]) -> List[BookLoan]:
    authorize(actor, Action.VERIFY_RETURN)
    return (
        db.query(BookLoan)
        .filter(BookLoan.status == LoanStatus.RETURNED)
        .order_by(BookLoan.actual_return_date.desc())
        .all()
    )
