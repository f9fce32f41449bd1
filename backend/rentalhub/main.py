from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rentalhub.api import assistant, backups, clients, properties, rentals, settings
from rentalhub.core.errors import (
    ExternalToolFailure,
    InvalidRentalDates,
    NotFound,
    RentalHubError,
    ValidationConflict,
)
from rentalhub.db.database import init_db
from rentalhub.utils.logging_config import configure_logging

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    yield


app = FastAPI(
    title="RentalHub API",
    description="Property rental management: properties, clients, rentals and database backups",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(InvalidRentalDates)
async def invalid_dates_handler(request: Request, exc: InvalidRentalDates):
    return JSONResponse(status_code=422, content={"detail": exc.message})


@app.exception_handler(ValidationConflict)
async def conflict_handler(request: Request, exc: ValidationConflict):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(ExternalToolFailure)
async def tool_failure_handler(request: Request, exc: ExternalToolFailure):
    return JSONResponse(status_code=500, content={"detail": exc.message})


@app.exception_handler(RentalHubError)
async def domain_error_handler(request: Request, exc: RentalHubError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


app.include_router(properties.router, prefix="/api/properties", tags=["properties"])
app.include_router(clients.router, prefix="/api/clients", tags=["clients"])
app.include_router(rentals.router, prefix="/api/rentals", tags=["rentals"])
app.include_router(backups.router, prefix="/api/backups", tags=["backups"])
app.include_router(settings.router, prefix="/api/settings", tags=["settings"])
app.include_router(assistant.router, prefix="/api/assistant", tags=["assistant"])


@app.get("/health")
def health_check():
    return {"status": "ok", "version": VERSION}
