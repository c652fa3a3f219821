from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from .database import Database
from .dependencies import get_database

health_router = APIRouter(tags=["health"])


@health_router.get("/")
def index():
    return {"message": "Library Management System API Running Successfully"}


@health_router.get("/health/live") # process is up
def liveness():
    return {"status": "ok"}


@health_router.get("/health/ready") # record store answers queries
def readiness(database: Database = Depends(get_database)):
    if database.is_ready():
        return {"status": "ready"}
    return JSONResponse(status_code=503, content={"status": "unavailable"})
