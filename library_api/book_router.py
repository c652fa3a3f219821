from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, joinedload, selectinload
from typing import List
from .models import Author, Book
from .schemas import BookCreate, BookRead, BookUpdate, BookWithAuthor, Message
from .services import CatalogService
from .dependencies import get_db, get_catalog


# router
book_router = APIRouter(tags=["books"])


@book_router.post("/book/create", response_model=BookRead, status_code=201)
def create_book(book: BookCreate, db: Session = Depends(get_db), catalog: CatalogService = Depends(get_catalog)):
    return catalog.create_book(
        db,
        title=book.title,
        author_id=book.author_id,
        isbn=book.isbn,
        available_copies=book.available_copies,
        borrow_count=book.borrow_count,
    )


@book_router.get("/books", response_model=List[BookWithAuthor]) # get all the books
def list_books(db: Session = Depends(get_db)):
    return db.query(Book).options(joinedload(Book.author).selectinload(Author.books)).order_by(Book.id).all()


@book_router.get("/books/available", response_model=List[BookWithAuthor]) # books with at least one copy on the shelf
def list_available_books(db: Session = Depends(get_db)):
    return (
        db.query(Book)
        .options(joinedload(Book.author).selectinload(Author.books))
        .filter(Book.available_copies > 0)
        .order_by(Book.id)
        .all()
    )


@book_router.put("/book/{id}", response_model=BookRead) # update book by id
def update_book(id: int, book_update: BookUpdate, db: Session = Depends(get_db), catalog: CatalogService = Depends(get_catalog)):
    return catalog.update_book(db, id, book_update.model_dump(exclude_unset=True))


@book_router.delete("/book/{id}", response_model=Message) # delete book by id
def delete_book(id: int, db: Session = Depends(get_db), catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_book(db, id)
    return {"message": "Book deleted successfully"}
