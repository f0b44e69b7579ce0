"""Identity and authorization helpers.

Passwords are hashed with werkzeug.  The logged-in identity lives in the
signed session cookie managed by Starlette's ``SessionMiddleware``; request
handlers resolve it into an :class:`Actor` and every service operation asks
:func:`authorize` whether that actor may perform the action.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash, check_password_hash

from digilib.core.database import get_db
from digilib.core.errors import Forbidden, Unauthorized
from digilib.models.models import Role, User, UserStatus


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class Action(str, enum.Enum):
    CREATE_LOAN = "create_loan"
    CANCEL_LOAN = "cancel_loan"
    RETURN_LOAN = "return_loan"
    UPDATE_LOAN_STATUS = "update_loan_status"
    VERIFY_RETURN = "verify_return"
    VIEW_LOANS = "view_loans"
    MANAGE_BOOKS = "manage_books"
    MANAGE_MEMBERS = "manage_members"
    VIEW_REPORTS = "view_reports"
    MANAGE_WISHLIST = "manage_wishlist"
    EDIT_PROFILE = "edit_profile"


# actions only an admin may perform, whoever owns the resource
ADMIN_ACTIONS = {
    Action.UPDATE_LOAN_STATUS,
    Action.VERIFY_RETURN,
    Action.MANAGE_BOOKS,
    Action.MANAGE_MEMBERS,
    Action.VIEW_REPORTS,
}

# actions restricted to the resource owner, even for admins
OWNER_ACTIONS = {
    Action.CANCEL_LOAN,
    Action.RETURN_LOAN,
    Action.MANAGE_WISHLIST,
    Action.EDIT_PROFILE,
}

_DENIED = {
    Action.UPDATE_LOAN_STATUS: "Only admin can update loan status",
    Action.VERIFY_RETURN: "Only admin can verify returns",
    Action.CANCEL_LOAN: "Not allowed to cancel this loan",
    Action.RETURN_LOAN: "You are not authorized to return this book",
    Action.VIEW_LOANS: "Unauthorized to access these loans",
}


def authorize(actor: Optional[Actor], action: Action, owner_id: Optional[int] = None) -> Actor:
    """Return the actor when allowed, raise ``Unauthorized``/``Forbidden`` otherwise.

    ``owner_id`` is the user id owning the resource acted on, when there is one.
    Members may view only their own loans; admins may view anyone's.
    """
    if actor is None:
        raise Unauthorized("Unauthorized")
    message = _DENIED.get(action, "Admin access required")
    if action in ADMIN_ACTIONS:
        if not actor.is_admin:
            raise Forbidden(message)
    elif action in OWNER_ACTIONS:
        if owner_id is not None and owner_id != actor.id:
            raise Forbidden(message)
    elif action == Action.VIEW_LOANS:
        if not actor.is_admin and owner_id != actor.id:
            raise Forbidden(message)
    return actor


def login_session(request: Request, user) -> None:
    request.session["user_id"] = user.id


def logout_session(request: Request) -> None:
    request.session.clear()


def get_actor(request: Request, db: Session = Depends(get_db)) -> Optional[Actor]:
    """Resolve the session cookie to an actor backed by an active user row."""
    user_id = request.session.get("user_id")
    if user_id is None:
        return None
    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None or user.status != UserStatus.ACTIVE:
        # deleted or deactivated since login
        request.session.clear()
        return None
    return Actor(id=user.id, role=user.role)


def require_actor(actor: Optional[Actor] = Depends(get_actor)) -> Actor:
    if actor is None:
        raise Unauthorized("Unauthorized")
    return actor
