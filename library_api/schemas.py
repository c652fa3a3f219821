import re
from datetime import datetime
from typing import Annotated, List, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from .models import MembershipType, normalize_isbn

EMAIL_PATTERN = re.compile(r'^[\w\-\.]+@([\w-]+\.)+[\w-]{2,4}$')
PHONE_PATTERN = re.compile(r'^\+?[\d\s-]+$')
MIN_PHONE_DIGITS = 10


def validate_email(v):
    if not EMAIL_PATTERN.match(v):
        raise ValueError(f'{v} is not a valid email!')
    return v


def validate_phone_number(v):
    digits = sum(ch.isdigit() for ch in v)
    if not PHONE_PATTERN.match(v) or digits < MIN_PHONE_DIGITS:
        raise ValueError(f'{v} is not a valid phone number!')
    return v


def validate_isbn(v):
    # stored without hyphens so formatted and bare forms collide on uniqueness
    isbn = normalize_isbn(v)
    if not (len(isbn) == 10 or len(isbn) == 13) or not isbn.isdigit():
        raise ValueError('ISBN must be a 10 or 13 digit number (hyphens allowed)')
    return isbn


Email = Annotated[str, AfterValidator(validate_email)]
PhoneNumber = Annotated[str, AfterValidator(validate_phone_number)]
ISBN = Annotated[str, AfterValidator(validate_isbn)]


class RequestModel(BaseModel):
    # accepts the camelCase keys of the public API as well as field names
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class ReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# author schemas
class AuthorCreate(RequestModel):
    name: str = Field(min_length=1)
    email: Email
    phone_number: PhoneNumber = Field(alias='phoneNumber')
    book_ids: Optional[List[int]] = Field(default=None, alias='books')


class AuthorUpdate(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[Email] = None
    phone_number: Optional[PhoneNumber] = Field(default=None, alias='phoneNumber')
    book_ids: Optional[List[int]] = Field(default=None, alias='books')


# book schemas
class BookCreate(RequestModel):
    title: str = Field(min_length=1)
    author_id: int = Field(alias='author')
    isbn: ISBN
    available_copies: int = Field(alias='availableCopies', ge=0)
    borrow_count: int = Field(default=0, alias='borrowCount', ge=0)


class BookUpdate(RequestModel):
    title: Optional[str] = Field(default=None, min_length=1)
    author_id: Optional[int] = Field(default=None, alias='author')
    isbn: Optional[ISBN] = None
    available_copies: Optional[int] = Field(default=None, alias='availableCopies', ge=0)
    borrow_count: Optional[int] = Field(default=None, alias='borrowCount', ge=0)


class BookRead(ReadModel):
    id: int
    title: str
    author_id: int = Field(serialization_alias='author')
    isbn: str
    available_copies: int = Field(serialization_alias='availableCopies')
    borrow_count: int = Field(serialization_alias='borrowCount')


class AuthorRead(ReadModel):
    id: int
    name: str
    email: str
    phone_number: str = Field(serialization_alias='phoneNumber')
    book_ids: List[int] = Field(serialization_alias='books')


class AuthorWithBooks(ReadModel):
    id: int
    name: str
    email: str
    phone_number: str = Field(serialization_alias='phoneNumber')
    books: List[BookRead]


class BookWithAuthor(ReadModel):
    id: int
    title: str
    author: AuthorRead
    isbn: str
    available_copies: int = Field(serialization_alias='availableCopies')
    borrow_count: int = Field(serialization_alias='borrowCount')


# borrower schemas
class BorrowerCreate(RequestModel):
    name: str = Field(min_length=1)
    membership_active: bool = Field(alias='membershipActive')
    membership_type: MembershipType = Field(alias='membershipType')


class BorrowerUpdate(RequestModel):
    name: Optional[str] = Field(default=None, min_length=1)
    membership_active: Optional[bool] = Field(default=None, alias='membershipActive')
    membership_type: Optional[MembershipType] = Field(default=None, alias='membershipType')


class LoanRead(ReadModel):
    book: BookWithAuthor
    borrowed_at: datetime = Field(serialization_alias='borrowDate')
    due_at: datetime = Field(serialization_alias='dueDate')


class BorrowerRead(ReadModel):
    id: int
    name: str
    membership_active: bool = Field(serialization_alias='membershipActive')
    membership_type: MembershipType = Field(serialization_alias='membershipType')
    loans: List[LoanRead] = Field(serialization_alias='borrowedBooks')


# borrowing schemas
class LoanRequest(RequestModel):
    borrower_id: int = Field(alias='borrowerId')
    book_id: int = Field(alias='bookId')


class Message(BaseModel):
    message: str
