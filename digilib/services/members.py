import logging
import re
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from digilib.core.config import settings
from digilib.core.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from digilib.core.security import Action, Actor, authorize, hash_password, verify_password
from digilib.models.models import Book, BookLoan, Role, User, UserStatus, Wishlist

logger = logging.getLogger("digilib")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[0-9]{10,13}$")


def _format_member_id(prefix: str, number: int) -> str:
    return f"{prefix}{number:04d}"


def generate_member_id(db: Session) -> str:
    prefix = settings.member_id_prefix
    last = (
        db.query(User.member_id)
        .filter(User.member_id.like(f"{prefix}%"))
        .order_by(func.length(User.member_id).desc(), User.member_id.desc())
        .first()
    )
    number = 1
    if last and last[0]:
        try:
            number = int(last[0][len(prefix):]) + 1
        except ValueError:
            number = 1
    return _format_member_id(prefix, number)


def migrate_member_ids(db: Session) -> int:
    """Rewrite legacy ``M`` member ids to the ``A`` prefix, keeping the number."""
    legacy = settings.legacy_member_id_prefix
    count = 0
    for user in db.query(User).filter(User.member_id.like(f"{legacy}%")).all():
        try:
            number = int(user.member_id[len(legacy):])
        except ValueError:
            logger.warning(f"Skipping user {user.id} with malformed member id {user.member_id!r}")
            continue
        user.member_id = _format_member_id(settings.member_id_prefix, number)
        count += 1
    db.commit()
    logger.info(f"Migrated {count} member ids")
    return count


def _validate_phone(phone: Optional[str]) -> None:
    if phone and not PHONE_RE.match(re.sub(r"\D", "", phone)):
        raise ValidationError("Invalid phone number format. Should be 10-13 digits")


def _validate_birth_date(birth_date: Optional[date]) -> None:
    if birth_date and birth_date > date.today():
        raise ValidationError("Birth date cannot be in the future")


def register_user(db: Session, data: dict, actor: Optional[Actor] = None) -> User:
    missing = [f for f in ("name", "email", "password") if not data.get(f)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    email = data["email"].strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    if len(data["password"]) < 6:
        raise ValidationError("Password must be at least 6 characters long")
    role = data.get("role") or Role.USER.value
    if role not in [r.value for r in Role]:
        raise ValidationError("Invalid role. Role must be either 'user' or 'admin'")
    role = Role(role)
    # the very first account may bootstrap itself as admin
    if role == Role.ADMIN and db.query(User.id).first() is not None:
        authorize(actor, Action.MANAGE_MEMBERS)
    _validate_phone(data.get("phone"))
    _validate_birth_date(data.get("birth_date"))

    if db.query(User).filter(User.email == email).first():
        raise Conflict("User with this email already exists")

    user = User(
        member_id=generate_member_id(db),
        name=data["name"].strip(),
        email=email,
        password_hash=hash_password(data["password"]),
        role=role,
        status=UserStatus.ACTIVE,
        address=data.get("address"),
        phone=data.get("phone"),
        birth_date=data.get("birth_date"),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user id={user.id} member_id={user.member_id} role={user.role.value}")
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == (email or "").strip().lower()).first()
    if not user or not verify_password(user.password_hash, password or ""):
        logger.warning(f"Failed login for {email!r}")
        raise Unauthorized("Invalid email or password")
    if user.status != UserStatus.ACTIVE:
        raise Forbidden("Account is inactive")
    user.last_login = datetime.utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} logged in")
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


def update_profile(db: Session, actor: Optional[Actor], data: dict) -> User:
    actor = authorize(actor, Action.EDIT_PROFILE)
    user = get_user(db, actor.id)
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("Name is required")
    _validate_phone(data.get("phone"))
    _validate_birth_date(data.get("birth_date"))
    for k, v in data.items():
        setattr(user, k, v.strip() if k == "name" else v)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} updated profile")
    return user


def list_users(db: Session, actor: Optional[Actor], search: Optional[str] = None) -> List[User]:
    authorize(actor, Action.MANAGE_MEMBERS)
    query = db.query(User)
    if search:
        like_q = f"%{search}%"
        query = query.filter(
            User.name.ilike(like_q) | User.email.ilike(like_q) | User.member_id.ilike(like_q)
        )
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def update_user(db: Session, actor: Optional[Actor], user_id: int, name: str, role: Role,
                status: UserStatus) -> User:
    actor = authorize(actor, Action.MANAGE_MEMBERS)
    if not name or not name.strip():
        raise ValidationError("Name is required")
    user = get_user(db, user_id)
    if user.role == Role.ADMIN and role != Role.ADMIN:
        admins = db.query(func.count(User.id)).filter(User.role == Role.ADMIN).scalar()
        if admins <= 1:
            raise ValidationError("Cannot remove admin role from the last admin user")
    user.name = name.strip()
    user.role = role
    user.status = status
    db.commit()
    db.refresh(user)
    logger.info(f"Admin {actor.id} updated user {user.id} role={role.value} status={status.value}")
    return user


def delete_user(db: Session, actor: Optional[Actor], user_id: int) -> None:
    actor = authorize(actor, Action.MANAGE_MEMBERS)
    if actor.id == user_id:
        raise ValidationError("Cannot delete your own account")
    user = get_user(db, user_id)
    try:
        for loan in db.query(BookLoan).filter(BookLoan.user_id == user.id).all():
            if loan.holds_copy:
                db.query(Book).filter(Book.id == loan.book_id).update(
                    {Book.stock: Book.stock + 1}, synchronize_session=False
                )
                logger.info(f"Stock of book {loan.book_id} changed by +1 (loan {loan.id} removed)")
            db.delete(loan)
        db.query(Wishlist).filter(Wishlist.user_id == user.id).delete(synchronize_session=False)
        db.delete(user)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Admin {actor.id} deleted user {user_id}")
