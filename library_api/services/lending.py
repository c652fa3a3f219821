import logging
from ..errors import BusinessRuleViolation, NotFoundError
from ..models import LOAN_PERIOD, Book, Borrower, Loan
from .base import TransactionalService

logger = logging.getLogger(__name__)


class LendingService(TransactionalService):
    """Moves copies between the shelf and a borrower's active loans.

    A borrow or return updates the book and the borrower in the same
    transaction, so the copy count and the loan list never drift apart.
    """

    def __init__(self, *, loan_period=LOAN_PERIOD, **kwargs):
        super().__init__(**kwargs)
        self.loan_period = loan_period

    def _load(self, db, borrower_id, book_id):
        borrower = db.get(Borrower, borrower_id)
        book = db.get(Book, book_id)
        if not borrower or not book:
            raise NotFoundError("Borrower or book not found")
        return borrower, book

    def borrow(self, db, *, borrower_id: int, book_id: int) -> Loan:
        def work(db):
            borrower, book = self._load(db, borrower_id, book_id)
            if not borrower.membership_active:
                raise BusinessRuleViolation("Membership is not active")
            if not borrower.can_borrow_more():
                raise BusinessRuleViolation("Borrowing limit reached")
            if book.available_copies <= 0:
                raise BusinessRuleViolation("No copies available")
            now = self.clock()
            if borrower.has_overdue_loans(now):
                raise BusinessRuleViolation("Cannot borrow with overdue books")

            book.available_copies -= 1
            book.borrow_count += 1
            loan = Loan(book=book, borrowed_at=now, due_at=now + self.loan_period)
            borrower.loans.append(loan)
            # bumps the borrower's version so a parallel borrow cannot pass the limit check
            borrower.last_activity_at = now
            return loan

        loan = self._run(db, "Borrow", work)
        logger.info("Borrower %s borrowed book %s, due %s", borrower_id, book_id, loan.due_at.isoformat())
        return loan

    def return_book(self, db, *, borrower_id: int, book_id: int) -> Book:
        def work(db):
            borrower, book = self._load(db, borrower_id, book_id)
            loan = borrower.find_loan(book.id)
            if loan is None:
                raise BusinessRuleViolation("Book not borrowed by this user")

            # delete-orphan cascade removes the loan row
            borrower.loans.remove(loan)
            borrower.last_activity_at = self.clock()
            book.available_copies += 1
            return book

        book = self._run(db, "Return", work)
        logger.info("Borrower %s returned book %s", borrower_id, book_id)
        return book
