from fastapi import Request
from .database import Database
from .services import CatalogService, LendingService


def get_database(request: Request) -> Database:
    return request.app.state.database


# get the database session
def get_db(request: Request):
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_lending(request: Request) -> LendingService:
    return request.app.state.lending
