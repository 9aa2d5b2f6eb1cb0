from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from lending.catalog_store import CatalogStore
from lending.config import configure_logging, settings
from lending.database import initialize_database, session
from lending.results import ErrorKind, Result
from lending.services.admin_service import AdminService
from lending.services.catalog_service import CatalogService
from lending.services.loan_service import LoanService
from lending.validators import validate_new_book
from lending.views import ListBooksRequest


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    initialize_database(app.state.db_file)
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.state.db_file = settings.database_file

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency validating the API key for catalog and admin writes."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


def get_catalog_service(request: Request) -> CatalogService:
    return CatalogService(request.app.state.db_file)


def get_loan_service(request: Request) -> LoanService:
    return LoanService(request.app.state.db_file)


def get_admin_service(request: Request) -> AdminService:
    return AdminService(request.app.state.db_file)


def current_user_id(x_user_id: int = Header(..., alias="X-User-Id")) -> int:
    """The acting user; authentication happens in front of this service."""
    return x_user_id


_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 422,
}


def _unwrap(result: Result):
    """Return the value of a successful result or raise the matching HTTP error."""
    if result.ok:
        return result.value
    detail = result.errors if result.error is ErrorKind.VALIDATION else result.message
    raise HTTPException(status_code=_STATUS_BY_KIND[result.error], detail=detail)


# --- Models ---
class BookModel(BaseModel):
    id: str
    name: str
    author: str
    issue_year: int
    isbn: str
    number_of_pieces: int


class BookCreateModel(BaseModel):
    name: Optional[str] = None
    author: Optional[str] = None
    issue_year: Optional[int] = None
    isbn: Optional[str] = None
    number_of_pieces: Optional[int] = Field(default=0, description="Owned copies")


class PaginatedBooksResponse(BaseModel):
    items: List[BookModel]
    total_count: int
    page_number: int
    page_size: int


class BorrowResponse(BaseModel):
    loan_id: str
    book_id: str
    user_id: int
    borrowed_date: str
    message: str


class MessageResponse(BaseModel):
    success: bool
    message: str


class BorrowStatusModel(BaseModel):
    book_id: str
    is_borrowed_by_user: bool
    active_loan_count: int
    available_count: int


class BatchStatusRequest(BaseModel):
    book_ids: Optional[List[str]] = None


class AvailableCountResponse(BaseModel):
    book_id: str
    available_count: int


class LoanHistoryItemModel(BaseModel):
    loan_id: str
    book_id: str
    name: str
    author: str
    issue_year: int
    isbn: str
    borrowed_date: str
    returned_date: Optional[str] = None


class PaginatedLoansResponse(BaseModel):
    items: List[LoanHistoryItemModel]
    total_count: int
    page_number: int
    page_size: int


class UserStatsModel(BaseModel):
    user_id: int
    user_name: str
    borrowed_count: int
    returned_count: int


# --- Health ---
@app.get("/health")
def health(request: Request):
    """Lightweight health endpoint with a database round trip."""
    db_ok = True
    total_books = 0
    try:
        with session(request.app.state.db_file) as conn:
            total_books = CatalogStore(conn).count()
    except Exception:
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "total_books": total_books,
        "db": db_ok,
    }


# --- Catalog ---
@app.get("/api/catalog", response_model=PaginatedBooksResponse)
def list_books(
    page_number: int = Query(1, description="Page number, values below 1 are treated as 1"),
    page_size: int = Query(settings.default_page_size, description="Items per page, clamped to 1..100"),
    search: Optional[str] = Query(None, description="Comma-separated terms matched against name, author or ISBN"),
    name: Optional[str] = Query(None),
    author: Optional[str] = Query(None),
    isbn: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, description="Sort field: name | author"),
    sort_direction: Optional[str] = Query(None, description="Sort direction: asc | desc"),
    only_available: bool = Query(False),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """List books with search, field filters, sorting and paging."""
    page = catalog.list_books(
        ListBooksRequest(
            page_number=page_number,
            page_size=page_size,
            search=search,
            name=name,
            author=author,
            isbn=isbn,
            sort_by=sort_by,
            sort_direction=sort_direction,
            only_available=only_available,
        )
    )
    return page.to_dict()


@app.post("/api/catalog", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def create_book(payload: BookCreateModel, catalog: CatalogService = Depends(get_catalog_service)):
    errors = validate_new_book(
        payload.name, payload.author, payload.issue_year, payload.isbn, payload.number_of_pieces
    )
    if errors:
        _unwrap(Result.invalid(errors))
    view = _unwrap(
        catalog.create_book(
            payload.name.strip(),
            payload.author.strip(),
            payload.issue_year,
            payload.isbn.strip(),
            payload.number_of_pieces,
        )
    )
    return view.to_dict()


@app.get("/api/catalog/suggestions/names", response_model=List[str])
def name_suggestions(prefix: str = Query(""), catalog: CatalogService = Depends(get_catalog_service)):
    return catalog.name_suggestions(prefix)


@app.get("/api/catalog/suggestions/authors", response_model=List[str])
def author_suggestions(prefix: str = Query(""), catalog: CatalogService = Depends(get_catalog_service)):
    return catalog.author_suggestions(prefix)


@app.post("/api/catalog/status/batch", response_model=Dict[str, BorrowStatusModel])
def borrow_status_batch(
    payload: Optional[BatchStatusRequest] = None,
    user_id: int = Depends(current_user_id),
    loans: LoanService = Depends(get_loan_service),
):
    statuses = loans.borrow_status_batch(payload.book_ids if payload else None, user_id)
    return {book_id: status.to_dict() for book_id, status in statuses.items()}


@app.get("/api/catalog/{book_id}", response_model=BookModel)
def get_book(book_id: str, catalog: CatalogService = Depends(get_catalog_service)):
    return _unwrap(catalog.get_book(book_id)).to_dict()


@app.post("/api/catalog/{book_id}/borrow", response_model=BorrowResponse)
def borrow_book(
    book_id: str,
    user_id: int = Depends(current_user_id),
    loans: LoanService = Depends(get_loan_service),
):
    return _unwrap(loans.borrow(book_id, user_id)).to_dict()


@app.post("/api/catalog/{book_id}/return", response_model=MessageResponse)
def return_book(
    book_id: str,
    user_id: int = Depends(current_user_id),
    loans: LoanService = Depends(get_loan_service),
):
    result = loans.return_book(book_id, user_id)
    _unwrap(result)
    return result.to_dict()


@app.get("/api/catalog/{book_id}/status", response_model=BorrowStatusModel)
def borrow_status(
    book_id: str,
    user_id: int = Depends(current_user_id),
    loans: LoanService = Depends(get_loan_service),
):
    return _unwrap(loans.borrow_status(book_id, user_id)).to_dict()


@app.get("/api/catalog/{book_id}/available", response_model=AvailableCountResponse)
def available_count(book_id: str, loans: LoanService = Depends(get_loan_service)):
    return {"book_id": book_id, "available_count": _unwrap(loans.available_count(book_id))}


# --- Current user ---
@app.get("/api/me/borrowed", response_model=List[LoanHistoryItemModel])
def my_borrowed_books(user_id: int = Depends(current_user_id), loans: LoanService = Depends(get_loan_service)):
    return [item.to_dict() for item in loans.user_borrowed_books(user_id)]


@app.get("/api/me/returned", response_model=List[LoanHistoryItemModel])
def my_returned_books(user_id: int = Depends(current_user_id), loans: LoanService = Depends(get_loan_service)):
    return [item.to_dict() for item in loans.user_returned_books(user_id)]


@app.get("/api/me/loan-history", response_model=PaginatedLoansResponse)
def my_loan_history(
    page_number: int = Query(1),
    page_size: int = Query(settings.default_page_size),
    user_id: int = Depends(current_user_id),
    loans: LoanService = Depends(get_loan_service),
):
    return loans.user_loan_history(user_id, page_number, page_size).to_dict()


# --- Admin ---
@app.get("/api/admin/users", response_model=List[UserStatsModel], dependencies=[Depends(get_api_key)])
def admin_user_stats(
    name_filter: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, description="name | borrowedCount"),
    sort_direction: Optional[str] = Query(None, description="asc | desc"),
    admin: AdminService = Depends(get_admin_service),
):
    return [s.to_dict() for s in admin.users_with_stats(name_filter, sort_by, sort_direction)]
