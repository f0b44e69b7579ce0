import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Date, DateTime, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from digilib.core.database import Base


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class LoanStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"
    LATE = "LATE"

    @property
    def is_active(self) -> bool:
        return self in (LoanStatus.PENDING, LoanStatus.APPROVED)

    @property
    def can_hold_copy(self) -> bool:
        return self in (LoanStatus.APPROVED, LoanStatus.LATE)


def _values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(String, unique=True, index=True, nullable=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(SAEnum(Role, native_enum=False, values_callable=_values), default=Role.USER, nullable=False)
    status = Column(SAEnum(UserStatus, native_enum=False, values_callable=_values),
                    default=UserStatus.ACTIVE, nullable=False)
    profile_image = Column(String, nullable=True)
    address = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    birth_date = Column(Date, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    loans = relationship("BookLoan", back_populates="user")
    wishlist = relationship("Wishlist", back_populates="user")


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    publisher = Column(String, nullable=True)
    year = Column(Integer, nullable=True)
    isbn = Column(String, unique=True, index=True, nullable=True)
    category = Column(String, nullable=True, index=True)
    cover_image = Column(String, nullable=True)
    copies_total = Column(Integer, default=1, nullable=False)
    stock = Column(Integer, default=1, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    loans = relationship("BookLoan", back_populates="book")


Index('ix_books_title_author', Book.title, Book.author)


class BookLoan(Base):
    __tablename__ = "book_loans"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    borrow_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=False)
    actual_return_date = Column(DateTime, nullable=True)
    status = Column(SAEnum(LoanStatus, native_enum=False), default=LoanStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
    user = relationship("User", back_populates="loans")
    book = relationship("Book", back_populates="loans")

    @property
    def holds_copy(self) -> bool:
        return self.status.can_hold_copy and self.actual_return_date is None


Index('ix_book_loans_user_book_status', BookLoan.user_id, BookLoan.book_id, BookLoan.status)


class Wishlist(Base):
    __tablename__ = "wishlist"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    user = relationship("User", back_populates="wishlist")
    book = relationship("Book")

    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_wishlist_user_book"),)
