from pydantic import BaseModel, ConfigDict, Field, constr, field_validator
from datetime import date, datetime, timezone
from typing import List, Optional

from digilib.models.models import LoanStatus, Role, UserStatus


class BookBase(BaseModel):
    title: constr(min_length=1)
    author: constr(min_length=1)
    publisher: Optional[str] = None
    year: Optional[int] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    cover_image: Optional[str] = None
    copies_total: int = Field(default=1, ge=1)

    @field_validator('title', 'author')
    @classmethod
    def ensure_not_blank(cls, v):
        if not v.strip():
            raise ValueError('must not be blank')
        return v


class BookCreate(BookBase):
    pass


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    year: Optional[int] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    cover_image: Optional[str] = None
    copies_total: Optional[int] = Field(default=None, ge=1)


class BookOut(BookBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stock: int
    created_at: datetime


class BookSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    cover_image: Optional[str] = None
    stock: int


class PopularBookOut(BookSummary):
    loan_count: int


class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None


class LoginIn(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    profile_image: Optional[str] = None


class UserAdminUpdate(BaseModel):
    name: str
    role: Role
    status: UserStatus


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    member_id: Optional[str] = None
    name: str
    email: str
    role: Role
    status: UserStatus
    profile_image: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    birth_date: Optional[date] = None
    last_login: Optional[datetime] = None
    created_at: datetime


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    profile_image: Optional[str] = None


def naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Stored datetimes are naive UTC; convert offset-aware input to match."""
    if v is not None and v.tzinfo is not None:
        v = v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class LoanCreate(BaseModel):
    book_id: Optional[int] = None
    borrow_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    notes: Optional[str] = None

    normalize_dates = field_validator('borrow_date', 'return_date')(naive_utc)


class LoanStatusUpdate(BaseModel):
    status: LoanStatus
    actual_return_date: Optional[datetime] = None

    normalize_dates = field_validator('actual_return_date')(naive_utc)


class LoanReturn(BaseModel):
    status: Optional[LoanStatus] = None
    actual_return_date: Optional[datetime] = None

    normalize_dates = field_validator('actual_return_date')(naive_utc)


class ReturnVerify(BaseModel):
    status: LoanStatus


class LoanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    book_id: int
    borrow_date: datetime
    return_date: datetime
    actual_return_date: Optional[datetime] = None
    status: LoanStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    book: Optional[BookSummary] = None
    user: Optional[UserSummary] = None


class WishlistCreate(BaseModel):
    book_id: int


class WishlistItemOut(BaseModel):
    id: int
    book_id: int
    title: str
    author: str
    cover_url: str


class ReportRow(BaseModel):
    id: int
    member_id: int
    member_name: str
    book_id: int
    book_title: str
    borrow_date: datetime
    return_date: datetime
    actual_return_date: Optional[datetime] = None
    status: LoanStatus
    late_days: int
    fine: int
    notes: str


class MonthlyStat(BaseModel):
    name: str
    borrowings: int
    returns: int
    late: int


class ReportSummary(BaseModel):
    total_loans: int
    active_loans: int
    overdue_loans: int
    returned_loans: int
    total_fines: int
    unique_members: int
    unique_books: int


class ReportStatistics(BaseModel):
    monthly: List[MonthlyStat]
    summary: ReportSummary


class ReportOut(BaseModel):
    loans: List[ReportRow]
    statistics: ReportStatistics


class DashboardSummary(BaseModel):
    total_books: int
    active_borrowed_books: int
    total_members: int
    overdue_books: int
    pending_requests: int


class TrendPoint(MonthlyStat):
    month: str


class MemberTrendPoint(BaseModel):
    name: str
    month: str
    new_members: int


class DashboardOut(BaseModel):
    summary: DashboardSummary
    monthly_trends: List[TrendPoint]
    member_trends: List[MemberTrendPoint]
    recent_activities: List[LoanOut]
    popular_books: List[PopularBookOut]
    low_stock_books: List[BookSummary]
