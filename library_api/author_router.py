from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from typing import List
from .models import Author, Book, MAX_BOOKS_PER_AUTHOR
from .schemas import AuthorCreate, AuthorRead, AuthorUpdate, AuthorWithBooks, Message
from .services import CatalogService
from .dependencies import get_db, get_catalog


# router
author_router = APIRouter(tags=["authors"])


@author_router.post("/author/create", response_model=AuthorRead, status_code=201) # create author
def create_author(author: AuthorCreate, db: Session = Depends(get_db), catalog: CatalogService = Depends(get_catalog)):
    return catalog.create_author(
        db,
        name=author.name,
        email=author.email,
        phone_number=author.phone_number,
        book_ids=author.book_ids,
    )


@author_router.get("/authors", response_model=List[AuthorWithBooks]) # get all the authors with their books
def list_authors(db: Session = Depends(get_db)):
    return db.query(Author).options(selectinload(Author.books)).order_by(Author.id).all()


@author_router.get("/authors/exceeding-limit", response_model=List[AuthorWithBooks]) # authors linked to more than 5 books
def list_authors_exceeding_limit(db: Session = Depends(get_db)):
    return (
        db.query(Author)
        .join(Author.books)
        .group_by(Author.id)
        .having(func.count(Book.id) > MAX_BOOKS_PER_AUTHOR)
        .order_by(Author.id)
        .all()
    )


@author_router.put("/author/{id}", response_model=AuthorRead) # update author by the id
def update_author(id: int, author_update: AuthorUpdate, db: Session = Depends(get_db), catalog: CatalogService = Depends(get_catalog)):
    return catalog.update_author(db, id, author_update.model_dump(exclude_unset=True))


@author_router.delete("/author/{id}", response_model=Message) # delete author by the id
def delete_author(id: int, db: Session = Depends(get_db), catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_author(db, id)
    return {"message": "Author deleted successfully"}
