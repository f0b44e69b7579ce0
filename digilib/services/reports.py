"""Report and dashboard aggregation.

Overdue here is a read-only classification (a loan holding a copy past its due
date with no return recorded); nothing in this module changes loan status.
"""

import calendar
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from digilib.core.config import settings
from digilib.core.errors import ValidationError
from digilib.core.security import Action, Actor, authorize
from digilib.models.models import Book, BookLoan, LoanStatus, Role, User
from digilib.services import catalog

MONTH_NAMES = [calendar.month_abbr[m] for m in range(1, 13)]


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, 1), datetime(year, month, last_day, 23, 59, 59, 999999)


def last_months(now: datetime, count: int = 6) -> List[Tuple[int, int]]:
    """(year, month) pairs for the ``count`` months ending with ``now``'s month, oldest first."""
    months = []
    year, month = now.year, now.month
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def late_days_and_fine(loan: BookLoan) -> Tuple[int, int]:
    if loan.status != LoanStatus.LATE or loan.actual_return_date is None:
        return 0, 0
    late_days = max(0, (loan.actual_return_date.date() - loan.return_date.date()).days)
    return late_days, late_days * settings.fine_per_day


def loan_report(db: Session, actor: Optional[Actor], start_date: Optional[datetime] = None,
                end_date: Optional[datetime] = None, status: Optional[str] = None,
                member_id: Optional[int] = None, now: Optional[datetime] = None) -> dict:
    authorize(actor, Action.VIEW_REPORTS)
    now = now or datetime.utcnow()
    query = db.query(BookLoan).options(joinedload(BookLoan.user), joinedload(BookLoan.book))
    if start_date:
        query = query.filter(BookLoan.borrow_date >= start_date)
    if end_date:
        query = query.filter(BookLoan.borrow_date <= end_date)
    if status and status != "all":
        try:
            query = query.filter(BookLoan.status == LoanStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown loan status {status!r}") from None
    if member_id is not None:
        query = query.filter(BookLoan.user_id == member_id)
    loans = query.order_by(BookLoan.borrow_date.desc()).all()

    rows = []
    for loan in loans:
        late_days, fine = late_days_and_fine(loan)
        rows.append({
            "id": loan.id,
            "member_id": loan.user_id,
            "member_name": loan.user.name if loan.user else "N/A",
            "book_id": loan.book_id,
            "book_title": loan.book.title if loan.book else "N/A",
            "borrow_date": loan.borrow_date,
            "return_date": loan.return_date,
            "actual_return_date": loan.actual_return_date,
            "status": loan.status.value,
            "late_days": late_days,
            "fine": fine,
            "notes": loan.notes or "",
        })

    monthly = []
    for index, name in enumerate(MONTH_NAMES, start=1):
        borrowed = [l for l in loans if l.borrow_date.year == now.year and l.borrow_date.month == index]
        returned = [
            l for l in loans
            if l.actual_return_date and l.actual_return_date.year == now.year and l.actual_return_date.month == index
        ]
        monthly.append({
            "name": name,
            "borrowings": len(borrowed),
            "returns": len(returned),
            "late": len([l for l in returned if l.status == LoanStatus.LATE]),
        })

    summary = {
        "total_loans": len(loans),
        "active_loans": len([l for l in loans if l.status == LoanStatus.APPROVED]),
        "overdue_loans": len([l for l in loans if l.status == LoanStatus.LATE]),
        "returned_loans": len([l for l in loans if l.status == LoanStatus.RETURNED]),
        "total_fines": sum(r["fine"] for r in rows),
        "unique_members": len({l.user_id for l in loans}),
        "unique_books": len({l.book_id for l in loans}),
    }
    return {"loans": rows, "statistics": {"monthly": monthly, "summary": summary}}


def dashboard_stats(db: Session, actor: Optional[Actor], now: Optional[datetime] = None) -> dict:
    authorize(actor, Action.VIEW_REPORTS)
    now = now or datetime.utcnow()

    def count_loans(*criteria):
        return db.query(func.count(BookLoan.id)).filter(*criteria).scalar()

    holds_copy = (
        BookLoan.status.in_([LoanStatus.APPROVED, LoanStatus.LATE]),
        BookLoan.actual_return_date.is_(None),
    )

    summary = {
        "total_books": db.query(func.count(Book.id)).scalar(),
        "active_borrowed_books": count_loans(*holds_copy),
        "total_members": db.query(func.count(User.id)).filter(User.role == Role.USER).scalar(),
        "overdue_books": count_loans(*holds_copy, BookLoan.return_date < now),
        "pending_requests": count_loans(BookLoan.status == LoanStatus.PENDING),
    }

    monthly_trends = []
    member_trends = []
    for year, month in last_months(now):
        start, end = month_bounds(year, month)
        label = {"name": MONTH_NAMES[month - 1], "month": f"{year:04d}-{month:02d}"}
        monthly_trends.append({
            **label,
            "borrowings": count_loans(BookLoan.borrow_date >= start, BookLoan.borrow_date <= end),
            "returns": count_loans(BookLoan.actual_return_date >= start, BookLoan.actual_return_date <= end),
            "late": count_loans(
                BookLoan.actual_return_date >= start,
                BookLoan.actual_return_date <= end,
                BookLoan.status == LoanStatus.LATE,
            ),
        })
        member_trends.append({
            **label,
            "new_members": db.query(func.count(User.id))
            .filter(User.role == Role.USER, User.created_at >= start, User.created_at <= end)
            .scalar(),
        })

    recent = (
        db.query(BookLoan)
        .options(joinedload(BookLoan.user), joinedload(BookLoan.book))
        .order_by(BookLoan.updated_at.desc(), BookLoan.id.desc())
        .limit(5)
        .all()
    )

    return {
        "summary": summary,
        "monthly_trends": monthly_trends,
        "member_trends": member_trends,
        "recent_activities": recent,
        "popular_books": catalog.popular_books(db, limit=5),
        "low_stock_books": catalog.low_stock_books(db, limit=5),
    }
