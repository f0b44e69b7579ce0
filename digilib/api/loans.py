from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from digilib.core.database import get_db
from digilib.core.security import Actor, get_actor
from digilib.models.models import LoanStatus
from digilib.schemas import schemas
from digilib.services import loans

router = APIRouter()


@router.get("/loans", response_model=List[schemas.LoanOut])
def list_loans(user_id: Optional[int] = None, status: Optional[LoanStatus] = None,
               db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return loans.list_loans(db, actor, user_id=user_id, status=status)


@router.post("/loans", response_model=schemas.LoanOut, status_code=201)
def create_loan(loan_in: schemas.LoanCreate, db: Session = Depends(get_db),
                actor: Optional[Actor] = Depends(get_actor)):
    return loans.create_loan_request(db, actor, loan_in.book_id, loan_in.borrow_date,
                                     loan_in.return_date, loan_in.notes)


@router.patch("/loans/{loan_id}", response_model=schemas.LoanOut)
def update_loan_status(loan_id: int, update: schemas.LoanStatusUpdate, db: Session = Depends(get_db),
                       actor: Optional[Actor] = Depends(get_actor)):
    return loans.update_loan_status(db, actor, loan_id, update.status, update.actual_return_date)


@router.patch("/loans/{loan_id}/cancel")
def cancel_loan(loan_id: int, db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    loans.cancel_loan(db, actor, loan_id)
    return {"message": "Loan cancelled"}


@router.post("/loans/{loan_id}/return", response_model=schemas.LoanOut)
def return_loan(loan_id: int, body: schemas.LoanReturn, db: Session = Depends(get_db),
                actor: Optional[Actor] = Depends(get_actor)):
    return loans.return_loan(db, actor, loan_id, body.actual_return_date, body.status)


@router.get("/returns", response_model=List[schemas.LoanOut])
def list_returns(db: Session = Depends(get_db), actor: Optional[Actor] = Depends(get_actor)):
    return loans.list_returns(db, actor)


@router.patch("/returns/{loan_id}", response_model=schemas.LoanOut)
def verify_return(loan_id: int, body: schemas.ReturnVerify, db: Session = Depends(get_db),
                  actor: Optional[Actor] = Depends(get_actor)):
    return loans.verify_return(db, actor, loan_id, body.status)
