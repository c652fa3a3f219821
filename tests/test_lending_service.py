import itertools
from datetime import datetime, timedelta, UTC

import pytest
from sqlalchemy.orm.exc import StaleDataError

from library_api.errors import BusinessRuleViolation, ConcurrencyConflict, NotFoundError, OperationTimeout
from library_api.models import Author, Book, Borrower, Loan, MembershipType
from library_api.services import LendingService

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def records(session):
    author = Author(name="Author", email="author@example.com", phone_number="+1 555 123 4567")
    book = Book(title="Book", isbn="9780000000001", available_copies=2, author=author)
    borrower = Borrower(name="Reader", membership_active=True, membership_type=MembershipType.STANDARD)
    session.add_all([author, book, borrower])
    session.commit()
    return book.id, borrower.id


def count_loans(session, borrower_id):
    return session.query(Loan).filter(Loan.borrower_id == borrower_id).count()


def test_borrow_records_loan_due_in_fourteen_days(session, records):
    book_id, borrower_id = records
    service = LendingService(clock=lambda: NOW)

    loan = service.borrow(session, borrower_id=borrower_id, book_id=book_id)

    assert loan.borrowed_at == NOW
    assert loan.due_at == NOW + timedelta(days=14)
    book = session.get(Book, book_id)
    assert book.available_copies == 1
    assert book.borrow_count == 1
    assert session.get(Borrower, borrower_id).last_activity_at == NOW


def test_missing_records_raise_not_found(session, records):
    book_id, borrower_id = records
    service = LendingService()
    with pytest.raises(NotFoundError):
        service.borrow(session, borrower_id=borrower_id + 100, book_id=book_id)
    with pytest.raises(NotFoundError):
        service.return_book(session, borrower_id=borrower_id, book_id=book_id + 100)


def test_checks_run_in_order(session, records):
    book_id, borrower_id = records
    borrower = session.get(Borrower, borrower_id)
    book = session.get(Book, book_id)
    # inactive and out of copies: membership is reported first
    borrower.membership_active = False
    book.available_copies = 0
    session.commit()

    service = LendingService(clock=lambda: NOW)
    with pytest.raises(BusinessRuleViolation, match="Membership is not active"):
        service.borrow(session, borrower_id=borrower_id, book_id=book_id)

    borrower = session.get(Borrower, borrower_id)
    borrower.membership_active = True
    borrower.loans.append(Loan(book_id=book_id, borrowed_at=NOW - timedelta(days=30), due_at=NOW - timedelta(days=16)))
    session.commit()
    # out of copies and overdue: copies are reported first
    with pytest.raises(BusinessRuleViolation, match="No copies available"):
        service.borrow(session, borrower_id=borrower_id, book_id=book_id)


def test_overdue_block_leaves_records_untouched(session, records):
    book_id, borrower_id = records
    other = Book(title="Other", isbn="9780000000002", available_copies=1, author_id=session.get(Book, book_id).author_id)
    session.add(other)
    borrower = session.get(Borrower, borrower_id)
    borrower.loans.append(Loan(book=other, borrowed_at=NOW - timedelta(days=15), due_at=NOW - timedelta(seconds=1)))
    session.commit()

    service = LendingService(clock=lambda: NOW)
    with pytest.raises(BusinessRuleViolation, match="Cannot borrow with overdue books"):
        service.borrow(session, borrower_id=borrower_id, book_id=book_id)

    book = session.get(Book, book_id)
    assert book.available_copies == 2
    assert book.borrow_count == 0
    assert count_loans(session, borrower_id) == 1


def test_loan_due_exactly_now_is_not_overdue(session, records):
    book_id, borrower_id = records
    service = LendingService(clock=lambda: NOW - timedelta(days=14))
    service.borrow(session, borrower_id=borrower_id, book_id=book_id)

    service.clock = lambda: NOW
    service.borrow(session, borrower_id=borrower_id, book_id=book_id)
    assert count_loans(session, borrower_id) == 2


def test_return_removes_first_loan_in_storage_order(session, records):
    book_id, borrower_id = records
    times = iter([NOW, NOW + timedelta(hours=1), NOW + timedelta(hours=2)])
    service = LendingService(clock=lambda: next(times))
    service.borrow(session, borrower_id=borrower_id, book_id=book_id)
    service.borrow(session, borrower_id=borrower_id, book_id=book_id)

    service.return_book(session, borrower_id=borrower_id, book_id=book_id)

    remaining = session.query(Loan).filter(Loan.borrower_id == borrower_id).all()
    assert [loan.borrowed_at for loan in remaining] == [NOW + timedelta(hours=1)]
    book = session.get(Book, book_id)
    assert book.available_copies == 1
    assert book.borrow_count == 2


def test_lost_update_on_same_book_is_detected(app, records):
    book_id, _ = records
    first = app.state.database.session()
    second = app.state.database.session()
    try:
        mine = first.get(Book, book_id)
        theirs = second.get(Book, book_id)
        mine.available_copies -= 1
        first.commit()

        # the second writer read the old count and must not overwrite it
        theirs.available_copies -= 1
        with pytest.raises(StaleDataError):
            second.commit()
        second.rollback()
        assert second.get(Book, book_id).available_copies == 1
    finally:
        first.close()
        second.close()


def test_conflicting_write_is_retried(app, session, records):
    book_id, borrower_id = records
    other = app.state.database.session()
    calls = []

    def clock():
        if not calls:
            # another request changes the book between our read and our write
            book = other.get(Book, book_id)
            book.available_copies -= 1
            other.commit()
        calls.append(1)
        return NOW

    try:
        LendingService(clock=clock).borrow(session, borrower_id=borrower_id, book_id=book_id)
    finally:
        other.close()

    assert len(calls) == 2
    book = session.get(Book, book_id)
    assert book.available_copies == 0
    assert book.borrow_count == 1
    assert count_loans(session, borrower_id) == 1


def test_conflicts_beyond_retry_budget_surface(app, session, records):
    book_id, borrower_id = records
    other = app.state.database.session()
    titles = itertools.count()

    def clock():
        book = other.get(Book, book_id)
        book.title = f"Edition {next(titles)}"
        other.commit()
        return NOW

    service = LendingService(clock=clock, conflict_retries=1)
    try:
        with pytest.raises(ConcurrencyConflict):
            service.borrow(session, borrower_id=borrower_id, book_id=book_id)
    finally:
        other.close()

    assert next(titles) == 2
    assert session.get(Book, book_id).available_copies == 2
    assert count_loans(session, borrower_id) == 0


def test_timeout_rolls_back_the_whole_borrow(session, records):
    book_id, borrower_id = records
    ticks = itertools.chain([0.0, 0.0], itertools.repeat(100.0))
    service = LendingService(clock=lambda: NOW, timeout=5, monotonic=lambda: next(ticks))

    with pytest.raises(OperationTimeout):
        service.borrow(session, borrower_id=borrower_id, book_id=book_id)

    book = session.get(Book, book_id)
    assert book.available_copies == 2
    assert book.borrow_count == 0
    assert count_loans(session, borrower_id) == 0


def test_parallel_borrow_for_same_borrower_cannot_pass_limit(app, session, records):
    first_id, borrower_id = records
    author_id = session.get(Book, first_id).author_id
    book = Book(title="Shelf", isbn="9780000000002", available_copies=10, author_id=author_id)
    session.add(book)
    session.commit()
    service = LendingService(clock=lambda: NOW)
    for _ in range(4):
        service.borrow(session, borrower_id=borrower_id, book_id=book.id)

    other = app.state.database.session()
    calls = []

    def clock():
        if not calls:
            # the borrower's fifth loan lands from another request mid-flight
            service.borrow(other, borrower_id=borrower_id, book_id=book.id)
        calls.append(1)
        return NOW

    try:
        with pytest.raises(BusinessRuleViolation, match="Borrowing limit reached"):
            LendingService(clock=clock).borrow(session, borrower_id=borrower_id, book_id=first_id)
    finally:
        other.close()

    assert count_loans(session, borrower_id) == 5
    assert session.get(Book, first_id).available_copies == 2
    assert session.get(Book, book.id).available_copies == 5
