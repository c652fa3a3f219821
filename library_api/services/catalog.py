import logging
from ..errors import BusinessRuleViolation, NotFoundError, ValidationFailedError
from ..models import MAX_BOOKS_PER_AUTHOR, POPULAR_BORROW_THRESHOLD, POPULAR_MAX_COPIES, Author, Book, Loan, normalize_isbn
from .base import TransactionalService

logger = logging.getLogger(__name__)

AUTHOR_FIELDS = ("name", "email", "phone_number")
BOOK_FIELDS = ("title", "available_copies", "borrow_count")


class CatalogService(TransactionalService):
    """Keeps authors within their book cap and books within their rules.

    Ownership lives on ``Book.author_id`` only; an author's book list is read
    back through the relationship. Every change to that list touches the
    author row so concurrent cap checks on the same author conflict.
    """

    def _touch(self, author):
        if author is not None:
            author.updated_at = self.clock()

    def _get_author(self, db, author_id):
        author = db.get(Author, author_id)
        if not author:
            raise NotFoundError("Author not found")
        return author

    def _get_book(self, db, book_id):
        book = db.get(Book, book_id)
        if not book:
            raise NotFoundError("Book not found")
        return book

    def _check_isbn_free(self, db, isbn, book_id=None):
        query = db.query(Book).filter(Book.isbn == isbn)
        if book_id is not None:
            query = query.filter(Book.id != book_id)
        if query.first():
            raise ValidationFailedError("Book with this ISBN already exists.")

    def _check_provisioning(self, book):
        if book.is_over_provisioned():
            raise ValidationFailedError(
                f"Books borrowed more than {POPULAR_BORROW_THRESHOLD} times "
                f"cannot exceed {POPULAR_MAX_COPIES} copies"
            )

    def _assign_books(self, db, author, book_ids):
        wanted = list(dict.fromkeys(book_ids))
        if len(wanted) > MAX_BOOKS_PER_AUTHOR:
            raise BusinessRuleViolation(f"An author cannot be linked to more than {MAX_BOOKS_PER_AUTHOR} books")
        books = []
        for book_id in wanted:
            book = db.get(Book, book_id)
            if not book:
                raise NotFoundError(f"Book {book_id} not found")
            books.append(book)

        if author.id is not None:
            dropped = set(author.book_ids) - set(wanted)
            if dropped:
                raise BusinessRuleViolation(
                    "Books cannot be unlinked from an author without reassigning them: "
                    + ", ".join(str(book_id) for book_id in sorted(dropped))
                )

        for book in books:
            if author.id is None or book.author_id != author.id:
                self._touch(book.author)
                book.author = author
        self._touch(author)

    # authors

    def create_author(self, db, *, name, email, phone_number, book_ids=None) -> Author:
        def work(db):
            author = Author(name=name, email=email, phone_number=phone_number)
            db.add(author)
            if book_ids:
                self._assign_books(db, author, book_ids)
            return author

        author = self._run(db, "Create author", work)
        logger.info("Created author %s", author.id)
        return author

    def update_author(self, db, author_id, changes) -> Author:
        def work(db):
            author = self._get_author(db, author_id)
            for field in AUTHOR_FIELDS:
                if changes.get(field) is not None:
                    setattr(author, field, changes[field])
            if changes.get("book_ids") is not None:
                self._assign_books(db, author, changes["book_ids"])
            return author

        return self._run(db, "Update author", work)

    def delete_author(self, db, author_id):
        def work(db):
            author = self._get_author(db, author_id)
            if author.books:
                raise BusinessRuleViolation("Cannot delete author with associated books")
            db.delete(author)

        self._run(db, "Delete author", work)
        logger.info("Deleted author %s", author_id)

    # books

    def create_book(self, db, *, title, author_id, isbn, available_copies, borrow_count=0) -> Book:
        isbn = normalize_isbn(isbn)

        def work(db):
            author = self._get_author(db, author_id)
            if not author.can_own_more():
                raise BusinessRuleViolation("Author has reached maximum book limit")
            self._check_isbn_free(db, isbn)
            book = Book(title=title, isbn=isbn, available_copies=available_copies, borrow_count=borrow_count)
            self._check_provisioning(book)
            book.author = author
            self._touch(author)
            db.add(book)
            return book

        book = self._run(db, "Create book", work)
        logger.info("Created book %s for author %s", book.id, author_id)
        return book

    def update_book(self, db, book_id, changes) -> Book:
        def work(db):
            book = self._get_book(db, book_id)

            new_author_id = changes.get("author_id")
            if new_author_id is not None and new_author_id != book.author_id:
                new_author = self._get_author(db, new_author_id)
                if not new_author.can_own_more():
                    raise BusinessRuleViolation("New author has reached maximum book limit")
                self._touch(book.author)
                book.author = new_author
                self._touch(new_author)

            if changes.get("isbn") is not None:
                isbn = normalize_isbn(changes["isbn"])
                if isbn != book.isbn:
                    self._check_isbn_free(db, isbn, book_id=book.id)
                    book.isbn = isbn

            for field in BOOK_FIELDS:
                if changes.get(field) is not None:
                    setattr(book, field, changes[field])
            self._check_provisioning(book)
            return book

        return self._run(db, "Update book", work)

    def delete_book(self, db, book_id):
        def work(db):
            book = self._get_book(db, book_id)
            if db.query(Loan).filter(Loan.book_id == book.id).first():
                raise BusinessRuleViolation("Cannot delete book that is currently borrowed")
            self._touch(book.author)
            db.delete(book)

        self._run(db, "Delete book", work)
        logger.info("Deleted book %s", book_id)
