from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from .schemas import LoanRequest, Message
from .services import LendingService
from .dependencies import get_db, get_lending

borrow_router = APIRouter(tags=["borrowing"])


@borrow_router.post("/borrow", response_model=Message)
def borrow_book(loan: LoanRequest, db: Session = Depends(get_db), lending: LendingService = Depends(get_lending)):
    lending.borrow(db, borrower_id=loan.borrower_id, book_id=loan.book_id)
    return {"message": "Book borrowed successfully"}


@borrow_router.post("/return", response_model=Message)
def return_book(loan: LoanRequest, db: Session = Depends(get_db), lending: LendingService = Depends(get_lending)):
    lending.return_book(db, borrower_id=loan.borrower_id, book_id=loan.book_id)
    return {"message": "Book returned successfully"}
