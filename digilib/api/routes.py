from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from digilib.core.database import get_db
from digilib.core.security import Actor, get_actor, login_session, logout_session, require_actor
from digilib.schemas import schemas
from digilib.services import catalog, members, reports, wishlist

router = APIRouter()


# -----------------------------
# Auth & members
# -----------------------------
@router.post("/register", response_model=schemas.UserOut, status_code=201)
def register(user_in: schemas.UserCreate, db: Session = Depends(get_db),
             actor: Optional[Actor] = Depends(get_actor)):
    return members.register_user(db, user_in.model_dump(), actor=actor)


@router.post("/login", response_model=schemas.UserOut)
def login(credentials: schemas.LoginIn, request: Request, db: Session = Depends(get_db)):
    user = members.authenticate(db, credentials.email, credentials.password)
    login_session(request, user)
    return user


@router.post("/logout", status_code=204)
def logout(request: Request):
    logout_session(request)
    return Response(status_code=204)


@router.get("/users/me", response_model=schemas.UserOut)
def read_profile(db: Session = Depends(get_db), actor: Actor = Depends(require_actor)):
    return members.get_user(db, actor.id)


@router.put("/users/me", response_model=schemas.UserOut)
def update_profile(profile: schemas.ProfileUpdate, db: Session = Depends(get_db),
                   actor: Optional[Actor] = Depends(get_actor)):
    return members.update_profile(db, actor, profile.model_dump(exclude_unset=True))


@router.get("/users", response_model=List[schemas.UserOut])
def list_users(search: Optional[str] = Query(None), db: Session = Depends(get_db),
               actor: Optional[Actor] = Depends(get_actor)):
    return members.list_users(db, actor, search)


@router.put("/users/{user_id}", response_model=schemas.UserOut)
def update_user(user_id: int, user_upd: schemas.UserAdminUpdate, db: Session = Depends(get_db),
                actor: Optional[Actor] = Depends(get_actor)):
    return members.update_user(db, actor, user_id, user_upd.name, user_upd.role, user_upd.status)


@router.delete("/users/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    members.delete_user(db, actor, user_id)
    return {"ok": True}


# -----------------------------
# Catalog
# -----------------------------
@router.get("/books/popular", response_model=List[schemas.PopularBookOut])
def popular_books(limit: int = 5, db: Session = Depends(get_db)):
    return catalog.popular_books(db, limit=limit)


@router.get("/books", response_model=List[schemas.BookOut])
def list_books(q: Optional[str] = Query(None, description="search title, author or isbn"),
               category: Optional[str] = None, skip: int = 0, limit: Optional[int] = None,
               db: Session = Depends(get_db)):
    return catalog.list_books(db, q=q, category=category, skip=skip, limit=limit)


@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, db: Session = Depends(get_db)):
    return catalog.get_book(db, book_id)


@router.post("/books", response_model=schemas.BookOut, status_code=201)
def create_book(book_in: schemas.BookCreate, db: Session = Depends(get_db),
                actor: Optional[Actor] = Depends(get_actor)):
    return catalog.create_book(db, actor, book_in.model_dump())


@router.put("/books/{book_id}", response_model=schemas.BookOut)
def update_book(book_id: int, book_upd: schemas.BookUpdate, db: Session = Depends(get_db),
                actor: Optional[Actor] = Depends(get_actor)):
    return catalog.update_book(db, actor, book_id, book_upd.model_dump(exclude_unset=True))


@router.delete("/books/{book_id}")
def delete_book(book_id: int, db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    catalog.delete_book(db, actor, book_id)
    return {"ok": True}


# -----------------------------
# Wishlist
# -----------------------------
@router.post("/wishlist", status_code=201)
def add_to_wishlist(item_in: schemas.WishlistCreate, db: Session = Depends(get_db),
                    actor: Optional[Actor] = Depends(get_actor)):
    item = wishlist.add_to_wishlist(db, actor, item_in.book_id)
    return {"id": item.id, "book_id": item.book_id, "user_id": item.user_id}


@router.get("/wishlist", response_model=List[schemas.WishlistItemOut])
def list_wishlist(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return wishlist.list_wishlist(db, actor)


@router.delete("/wishlist/{item_id}", status_code=204)
def remove_from_wishlist(item_id: int, db: Session = Depends(get_db),
                         actor: Optional[Actor] = Depends(get_actor)):
    wishlist.remove_from_wishlist(db, actor, item_id)
    return Response(status_code=204)


# -----------------------------
# Reports & dashboard
# -----------------------------
@router.get("/reports", response_model=schemas.ReportOut)
def loan_report(start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                status: Optional[str] = None, member_id: Optional[int] = None,
                db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return reports.loan_report(db, actor, start_date=start_date, end_date=end_date,
                               status=status, member_id=member_id)


@router.get("/stats", response_model=schemas.DashboardOut)
def dashboard_stats(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return reports.dashboard_stats(db, actor)
