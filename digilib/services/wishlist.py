import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from digilib.core.config import settings
from digilib.core.errors import Conflict, NotFound
from digilib.core.security import Action, Actor, authorize
from digilib.models.models import Book, Wishlist

logger = logging.getLogger("digilib")


def add_to_wishlist(db: Session, actor: Optional[Actor], book_id: int) -> Wishlist:
    actor = authorize(actor, Action.MANAGE_WISHLIST)
    if not db.query(Book.id).filter(Book.id == book_id).first():
        raise NotFound("Book not found")
    existing = db.query(Wishlist).filter(Wishlist.user_id == actor.id, Wishlist.book_id == book_id).first()
    if existing:
        raise Conflict("Book is already in your wishlist")
    item = Wishlist(user_id=actor.id, book_id=book_id)
    db.add(item)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent add of the same book
        db.rollback()
        raise Conflict("Book is already in your wishlist") from None
    db.refresh(item)
    logger.info(f"User {actor.id} added book {book_id} to wishlist")
    return item


def list_wishlist(db: Session, actor: Optional[Actor]) -> List[dict]:
    actor = authorize(actor, Action.MANAGE_WISHLIST)
    items = db.query(Wishlist).filter(Wishlist.user_id == actor.id).order_by(Wishlist.created_at.desc()).all()
    return [
        {
            "id": item.id,
            "book_id": item.book_id,
            "title": item.book.title if item.book else "N/A",
            "author": item.book.author if item.book else "N/A",
            "cover_url": (item.book.cover_image if item.book else None) or settings.placeholder_cover,
        }
        for item in items
    ]


def remove_from_wishlist(db: Session, actor: Optional[Actor], item_id: int) -> None:
    actor = authorize(actor, Action.MANAGE_WISHLIST)
    item = db.query(Wishlist).filter(Wishlist.id == item_id, Wishlist.user_id == actor.id).first()
    if not item:
        raise NotFound("Not found")
    db.delete(item)
    db.commit()
    logger.info(f"User {actor.id} removed wishlist item {item_id}")
