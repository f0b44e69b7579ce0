from datetime import date, datetime, timedelta

import pytest

from digilib.core.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from digilib.core.security import Actor
from digilib.models.models import Book, BookLoan, LoanStatus, Role, User, UserStatus, Wishlist
from digilib.services import loans, members


def as_actor(user):
    return Actor(id=user.id, role=user.role)


def signup(db, email, **extra):
    data = {"name": "Budi", "email": email, "password": "rahasia1", **extra}
    return members.register_user(db, data)


def test_member_ids_are_sequential(db):
    assert signup(db, "a@example.com").member_id == "A0001"
    assert signup(db, "b@example.com").member_id == "A0002"
    assert members.generate_member_id(db) == "A0003"


def test_register_validation(db):
    with pytest.raises(ValidationError, match="name, password"):
        members.register_user(db, {"email": "x@example.com"})
    with pytest.raises(ValidationError, match="email"):
        signup(db, "not-an-email")
    with pytest.raises(ValidationError, match="6 characters"):
        signup(db, "x@example.com", password="123")
    with pytest.raises(ValidationError, match="role"):
        signup(db, "x@example.com", role="librarian")
    with pytest.raises(ValidationError, match="phone"):
        signup(db, "x@example.com", phone="12-34")
    with pytest.raises(ValidationError, match="future"):
        signup(db, "x@example.com", birth_date=date.today() + timedelta(days=1))

    signup(db, "x@example.com", phone="0812-3456-7890")
    with pytest.raises(Conflict):
        signup(db, "X@example.com")


def test_admin_registration_needs_admin_once_users_exist(db, make_user):
    first = signup(db, "root@example.com", role="admin")
    assert first.role == Role.ADMIN

    with pytest.raises(Unauthorized):
        signup(db, "sneaky@example.com", role="admin")
    member = make_user("member@example.com")
    with pytest.raises(Forbidden):
        members.register_user(db, {"name": "S", "email": "s@example.com", "password": "rahasia1",
                                   "role": "admin"}, actor=as_actor(member))
    second = members.register_user(db, {"name": "T", "email": "t@example.com", "password": "rahasia1",
                                        "role": "admin"}, actor=as_actor(first))
    assert second.role == Role.ADMIN


def test_authenticate(db, make_user):
    make_user("alice@example.com")
    make_user("ghost@example.com", status=UserStatus.INACTIVE)

    user = members.authenticate(db, "Alice@Example.com", "secret123")
    assert user.last_login is not None
    with pytest.raises(Unauthorized):
        members.authenticate(db, "alice@example.com", "bad")
    with pytest.raises(Unauthorized):
        members.authenticate(db, "nobody@example.com", "secret123")
    with pytest.raises(Forbidden):
        members.authenticate(db, "ghost@example.com", "secret123")


def test_update_profile(db, make_user):
    alice = make_user("alice@example.com")
    user = members.update_profile(db, as_actor(alice), {"name": " Alice W ", "address": "Jl. Merdeka 1",
                                                        "phone": "081234567890"})
    assert user.name == "Alice W"
    assert user.address == "Jl. Merdeka 1"
    with pytest.raises(ValidationError):
        members.update_profile(db, as_actor(alice), {"name": ""})
    with pytest.raises(Unauthorized):
        members.update_profile(db, None, {"name": "x"})


def test_list_users_search(db, make_user):
    admin = make_user("admin@example.com", role=Role.ADMIN)
    make_user("alice@example.com", name="Alice")
    make_user("bob@example.com", name="Bob")

    assert {u.email for u in members.list_users(db, as_actor(admin), "ali")} == {"alice@example.com"}
    assert len(members.list_users(db, as_actor(admin))) == 3
    assert [u.name for u in members.list_users(db, as_actor(admin), "A0003")] == ["Bob"]
    with pytest.raises(Forbidden):
        members.list_users(db, Actor(id=2, role=Role.USER))


def test_last_admin_cannot_be_demoted(db, make_user):
    admin = make_user("admin@example.com", role=Role.ADMIN)
    with pytest.raises(ValidationError):
        members.update_user(db, as_actor(admin), admin.id, "Admin", Role.USER, UserStatus.ACTIVE)

    other = make_user("other@example.com", role=Role.ADMIN)
    user = members.update_user(db, as_actor(admin), other.id, "Other", Role.USER, UserStatus.INACTIVE)
    assert user.role == Role.USER
    assert user.status == UserStatus.INACTIVE


def test_delete_user_restores_held_copies(db, make_user, make_book):
    admin = make_user("admin@example.com", role=Role.ADMIN)
    alice = make_user("alice@example.com")
    book = make_book(copies=2)
    other = make_book(title="Other", copies=1)
    held = loans.create_loan_request(db, as_actor(alice), book.id, datetime(2026, 1, 1), datetime(2026, 1, 8))
    loans.update_loan_status(db, as_actor(admin), held.id, LoanStatus.APPROVED)
    loans.create_loan_request(db, as_actor(alice), other.id, datetime(2026, 1, 1), datetime(2026, 1, 8))
    db.add(Wishlist(user_id=alice.id, book_id=other.id))
    db.commit()

    with pytest.raises(ValidationError):
        members.delete_user(db, as_actor(admin), admin.id)
    with pytest.raises(NotFound):
        members.delete_user(db, as_actor(admin), 999)

    alice_id = alice.id
    members.delete_user(db, as_actor(admin), alice_id)
    db.expire_all()
    assert db.query(User).filter(User.id == alice_id).first() is None
    assert db.query(BookLoan).count() == 0
    assert db.query(Wishlist).count() == 0
    assert db.query(Book).filter(Book.id == book.id).one().stock == 2
    assert db.query(Book).filter(Book.id == other.id).one().stock == 1


def test_migrate_member_ids(db, make_user):
    legacy = make_user("old@example.com")
    legacy.member_id = "M0007"
    db.commit()

    assert members.migrate_member_ids(db) == 1
    db.refresh(legacy)
    assert legacy.member_id == "A0007"
