import logging
from datetime import datetime, UTC
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, selectinload
from typing import List
from .errors import BusinessRuleViolation, NotFoundError
from .models import Author, Book, Borrower, Loan, MembershipType
from .schemas import BorrowerCreate, BorrowerRead, BorrowerUpdate, Message
from .dependencies import get_db

logger = logging.getLogger(__name__)

# loans come back with their books and authors fully expanded
expanded_loans = selectinload(Borrower.loans).selectinload(Loan.book).selectinload(Book.author).selectinload(Author.books)


def get_borrower_or_404(db: Session, id: int) -> Borrower:
    borrower = db.query(Borrower).options(expanded_loans).filter(Borrower.id == id).first()
    if not borrower:
        raise NotFoundError("Borrower not found")
    return borrower


# router
borrower_router = APIRouter(tags=["borrowers"])


@borrower_router.post("/borrower/create", response_model=BorrowerRead, status_code=201) # create borrower
def create_borrower(borrower: BorrowerCreate, db: Session = Depends(get_db)):
    db_borrower = Borrower(
        name=borrower.name,
        membership_active=borrower.membership_active,
        membership_type=borrower.membership_type,
    )
    db.add(db_borrower)
    db.commit()
    db.refresh(db_borrower)
    logger.info("Created borrower %s", db_borrower.id)
    return db_borrower


@borrower_router.get("/borrowers", response_model=List[BorrowerRead]) # get all the borrowers
def list_borrowers(db: Session = Depends(get_db)):
    return db.query(Borrower).options(expanded_loans).order_by(Borrower.id).all()


@borrower_router.get("/borrowers/overdue", response_model=List[BorrowerRead]) # borrowers holding at least one overdue loan
def list_overdue_borrowers(db: Session = Depends(get_db)):
    now = datetime.now(UTC)
    return (
        db.query(Borrower)
        .options(expanded_loans)
        .filter(Borrower.loans.any(Loan.due_at < now))
        .order_by(Borrower.id)
        .all()
    )


@borrower_router.get("/borrower/{id}", response_model=BorrowerRead) # get borrower by id
def get_borrower(id: int, db: Session = Depends(get_db)):
    return get_borrower_or_404(db, id)


@borrower_router.put("/borrower/{id}", response_model=BorrowerRead) # update borrower by id
def update_borrower(id: int, borrower_update: BorrowerUpdate, db: Session = Depends(get_db)):
    borrower = get_borrower_or_404(db, id)
    if borrower_update.name is not None:
        borrower.name = borrower_update.name

    if borrower_update.membership_active is not None:
        borrower.membership_active = borrower_update.membership_active

    if borrower_update.membership_type is not None:
        # a downgrade may not leave the borrower above the new tier limit
        limit = MembershipType(borrower_update.membership_type).loan_limit
        if len(borrower.loans) > limit:
            raise BusinessRuleViolation(
                f"Borrower holds {len(borrower.loans)} books, more than the {limit} allowed "
                f"for {borrower_update.membership_type.value} membership"
            )
        borrower.membership_type = borrower_update.membership_type
    db.commit()
    return get_borrower_or_404(db, id)


@borrower_router.delete("/borrower/{id}", response_model=Message) # delete borrower by id
def delete_borrower(id: int, db: Session = Depends(get_db)):
    borrower = get_borrower_or_404(db, id)
    if borrower.loans:
        raise BusinessRuleViolation("Cannot delete borrower with borrowed books")
    db.delete(borrower)
    db.commit()
    logger.info("Deleted borrower %s", id)
    return {"message": "Borrower deleted successfully"}
