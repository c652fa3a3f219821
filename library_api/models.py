import enum
from datetime import UTC, timedelta
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


MAX_BOOKS_PER_AUTHOR = 5
LOAN_PERIOD = timedelta(days=14)

# books borrowed more than this many times are capped at POPULAR_MAX_COPIES
POPULAR_BORROW_THRESHOLD = 10
POPULAR_MAX_COPIES = 100


def normalize_isbn(isbn):
    # hyphens are presentation only, stored and compared without them
    return isbn.replace("-", "").strip()


class MembershipType(str, enum.Enum):
    STANDARD = "Standard"
    PREMIUM = "Premium"

    @property
    def loan_limit(self):
        return TIER_LOAN_LIMITS[self]


TIER_LOAN_LIMITS = {
    MembershipType.STANDARD: 5,
    MembershipType.PREMIUM: 10,
}


class UTCDateTime(TypeDecorator):
    """Stores naive UTC values and hands back timezone-aware datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


# table for author model
class Author(Base):
    __tablename__ = 'author'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone_number = Column(String, nullable=False)
    # touched whenever the set of owned books changes
    updated_at = Column(UTCDateTime)
    version = Column(Integer, nullable=False)
    # derived from Book.author_id, never written directly
    books = relationship('Book', back_populates='author', order_by='Book.id')

    __mapper_args__ = {"version_id_col": version}

    @property
    def book_ids(self):
        return [book.id for book in self.books]

    def can_own_more(self):
        return len(self.books) < MAX_BOOKS_PER_AUTHOR


# table for book model
class Book(Base):
    __tablename__ = 'book'
    __table_args__ = (
        CheckConstraint('available_copies >= 0', name='ck_book_available_copies'),
        CheckConstraint('borrow_count >= 0', name='ck_book_borrow_count'),
    )
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    isbn = Column(String, unique=True, nullable=False)
    author_id = Column(Integer, ForeignKey('author.id'), nullable=False)
    available_copies = Column(Integer, nullable=False, default=0)
    borrow_count = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    author = relationship('Author', back_populates='books') # relationship with author model
    loans = relationship('Loan', back_populates='book')

    __mapper_args__ = {"version_id_col": version}

    def is_over_provisioned(self):
        return self.borrow_count > POPULAR_BORROW_THRESHOLD and self.available_copies > POPULAR_MAX_COPIES


# table for borrower model
class Borrower(Base):
    __tablename__ = 'borrower'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    membership_active = Column(Boolean, nullable=False)
    membership_type = Column(
        Enum(MembershipType, name='membership_type', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    # touched on every borrow and return so the version moves with the loan list
    last_activity_at = Column(UTCDateTime)
    version = Column(Integer, nullable=False)
    loans = relationship('Loan', back_populates='borrower', order_by='Loan.id', cascade='all, delete-orphan')

    __mapper_args__ = {"version_id_col": version}

    @property
    def loan_limit(self):
        return MembershipType(self.membership_type).loan_limit

    def can_borrow_more(self):
        return len(self.loans) < self.loan_limit

    def has_overdue_loans(self, now):
        return any(loan.due_at < now for loan in self.loans)

    def find_loan(self, book_id):
        # first match in storage order
        for loan in self.loans:
            if loan.book_id == book_id:
                return loan
        return None


# table for active loans, a row is deleted when the book comes back
class Loan(Base):
    __tablename__ = 'loan'
    id = Column(Integer, primary_key=True, index=True)
    borrower_id = Column(Integer, ForeignKey('borrower.id'), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey('book.id'), nullable=False, index=True)
    borrowed_at = Column(UTCDateTime, nullable=False)
    due_at = Column(UTCDateTime, nullable=False)
    borrower = relationship('Borrower', back_populates='loans')
    book = relationship('Book', back_populates='loans')
