import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from digilib.core.config import settings
from digilib.core.errors import Conflict, NotFound, ValidationError
from digilib.core.security import Action, Actor, authorize
from digilib.models.models import Book, BookLoan, LoanStatus, Wishlist

logger = logging.getLogger("digilib")


def get_book(db: Session, book_id: int) -> Book:
    book = db.query(Book).filter(Book.id == book_id).first()
    if not book:
        raise NotFound("Book not found")
    return book


def list_books(db: Session, q: Optional[str] = None, category: Optional[str] = None,
               skip: int = 0, limit: Optional[int] = None) -> List[Book]:
    query = db.query(Book)
    if q:
        like_q = f"%{q}%"
        query = query.filter(
            (Book.title.ilike(like_q)) | (Book.author.ilike(like_q)) | (Book.isbn.ilike(like_q))
        )
    if category:
        query = query.filter(Book.category == category)
    limit = limit or settings.default_page_size
    return query.order_by(Book.created_at.desc(), Book.id.desc()).offset(skip).limit(limit).all()


def create_book(db: Session, actor: Optional[Actor], data: dict) -> Book:
    authorize(actor, Action.MANAGE_BOOKS)
    if data.get("isbn"):
        existing = db.query(Book).filter(Book.isbn == data["isbn"]).first()
        if existing:
            raise Conflict("ISBN already exists")
    copies = data.get("copies_total", 1)
    if copies < 1:
        raise ValidationError("Book stock must be at least 1")
    book = Book(
        title=data["title"].strip(),
        author=data["author"].strip(),
        publisher=data.get("publisher"),
        year=data.get("year"),
        isbn=data.get("isbn"),
        category=data.get("category"),
        cover_image=data.get("cover_image"),
        copies_total=copies,
        stock=copies,
    )
    db.add(book)
    db.commit()
    db.refresh(book)
    logger.info(f"Created book id={book.id} title={book.title}")
    return book


def update_book(db: Session, actor: Optional[Actor], book_id: int, data: dict) -> Book:
    authorize(actor, Action.MANAGE_BOOKS)
    book = db.query(Book).filter(Book.id == book_id).with_for_update().first()
    if not book:
        raise NotFound("Book not found")
    if data.get("isbn") and data["isbn"] != book.isbn:
        existing = db.query(Book).filter(Book.isbn == data["isbn"], Book.id != book.id).first()
        if existing:
            raise Conflict("ISBN already exists")
    # copies held by borrowers stay held; only the shelf count moves
    if data.get("copies_total") is not None:
        delta = data["copies_total"] - book.copies_total
        if data["copies_total"] < 1 or book.stock + delta < 0:
            raise ValidationError("Cannot reduce copies below the number currently on loan")
        book.stock = book.stock + delta
        book.copies_total = data["copies_total"]
    for k, v in data.items():
        if k == "copies_total":
            continue
        if k in ("title", "author"):
            v = (v or "").strip()
            if not v:
                raise ValidationError(f"Book {k} is required")
        setattr(book, k, v)
    db.add(book)
    db.commit()
    db.refresh(book)
    logger.info(f"Updated book id={book.id}")
    return book


def delete_book(db: Session, actor: Optional[Actor], book_id: int) -> None:
    authorize(actor, Action.MANAGE_BOOKS)
    book = get_book(db, book_id)
    open_loans = (
        db.query(BookLoan)
        .filter(
            BookLoan.book_id == book.id,
            (BookLoan.status == LoanStatus.PENDING)
            | (BookLoan.status.in_([LoanStatus.APPROVED, LoanStatus.LATE]) & BookLoan.actual_return_date.is_(None)),
        )
        .count()
    )
    if open_loans > 0:
        raise ValidationError("Cannot delete book with active loans")
    db.query(Wishlist).filter(Wishlist.book_id == book.id).delete(synchronize_session=False)
    db.query(BookLoan).filter(BookLoan.book_id == book.id).delete(synchronize_session=False)
    db.delete(book)
    db.commit()
    logger.info(f"Deleted book id={book_id}")


def popular_books(db: Session, limit: int = 5) -> List[dict]:
    rows = (
        db.query(Book, func.count(BookLoan.id).label("loan_count"))
        .join(BookLoan)
        .group_by(Book.id)
        .order_by(func.count(BookLoan.id).desc(), Book.title)
        .limit(limit)
        .all()
    )
    return [
        {
            "id": book.id,
            "title": book.title,
            "author": book.author,
            "cover_image": book.cover_image,
            "stock": book.stock,
            "loan_count": count,
        }
        for book, count in rows
    ]


def low_stock_books(db: Session, threshold: Optional[int] = None, limit: int = 5) -> List[Book]:
    threshold = settings.low_stock_threshold if threshold is None else threshold
    return db.query(Book).filter(Book.stock < threshold).order_by(Book.stock, Book.title).limit(limit).all()
