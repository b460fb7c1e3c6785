import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import (
    IdentityProvider,
    IdentityProviderError,
    get_current_user,
    get_identity_provider,
    session_user,
)
from config import get_settings
from csv_utils import export_expenses
from database import SessionLocal
from models import Expense
from schemas import (
    CategoryOut,
    CategoryUsageOut,
    ExpenseIn,
    ExpenseOut,
    ExpenseQuery,
)
from services import (
    CategoryService,
    ExpenseNotFound,
    ExpenseService,
    MetricsService,
)
from sessions import (
    SESSION_COOKIE,
    STATE_COOKIE,
    STATE_MAX_AGE_SECS,
    SessionUser,
    create_session_token,
    generate_state,
    validate_state,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

app = FastAPI(title="Expense Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _issues(errors: list) -> list[dict[str, str]]:
    issues = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("query", "body")]
        issues.append({"field": ".".join(loc), "message": str(err.get("msg", ""))})
    return issues


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"error": exc.detail}, status_code=exc.status_code, headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"error": "Invalid request", "issues": _issues(exc.errors())},
        status_code=400,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        f"unhandled_error: method={request.method} path={request.url.path}",
        exc_info=exc,
    )
    return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"request: method={request.method} path={request.url.path} "
            f"status={status_code} duration_ms={duration_ms:.1f}"
        )


def filters_from_request(request: Request) -> ExpenseQuery:
    try:
        return ExpenseQuery.model_validate(dict(request.query_params))
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


def expense_json(expense: Expense) -> dict:
    return ExpenseOut.model_validate(expense).model_dump(mode="json", by_alias=True)


# Auth


def _set_cookie(response, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key,
        value,
        max_age=max_age,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


def _provider_redirect(provider: IdentityProvider, *, register: bool):
    state = generate_state()
    response = RedirectResponse(
        provider.authorization_url(state, register=register), status_code=302
    )
    _set_cookie(response, STATE_COOKIE, state, STATE_MAX_AGE_SECS)
    return response


@app.get(f"{API_PREFIX}/login")
def login(provider: IdentityProvider = Depends(get_identity_provider)):
    return _provider_redirect(provider, register=False)


@app.get(f"{API_PREFIX}/register")
def register(provider: IdentityProvider = Depends(get_identity_provider)):
    return _provider_redirect(provider, register=True)


@app.get(f"{API_PREFIX}/callback")
def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    provider: IdentityProvider = Depends(get_identity_provider),
):
    if not code:
        return RedirectResponse(f"{API_PREFIX}/login", status_code=302)
    if not validate_state(state, request.cookies.get(STATE_COOKIE)):
        logger.warning("auth_callback: invalid or expired state")
        return RedirectResponse(f"{API_PREFIX}/login", status_code=302)
    try:
        tokens = provider.exchange_code(code)
        user = provider.fetch_profile(tokens.access_token)
    except IdentityProviderError as exc:
        logger.exception("auth_callback: identity provider request failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    logger.info(f"auth_callback: user={user.id} signed in")
    response = RedirectResponse("/", status_code=302)
    _set_cookie(
        response,
        SESSION_COOKIE,
        create_session_token(user),
        settings.session_max_age_hours * 3600,
    )
    response.delete_cookie(STATE_COOKIE, path="/")
    return response


@app.get(f"{API_PREFIX}/logout")
def logout(provider: IdentityProvider = Depends(get_identity_provider)):
    response = RedirectResponse(provider.logout_url(), status_code=302)
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@app.get(f"{API_PREFIX}/me")
def me(request: Request):
    user = session_user(request)
    return {
        "isAuthenticated": user is not None,
        "user": user.to_dict() if user else None,
    }


# Expenses


@app.get(f"{API_PREFIX}/expenses")
def list_expenses(
    request: Request,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(get_current_user),
):
    query = filters_from_request(request)
    page = ExpenseService(db, user.id).list(query)
    return {
        "expenses": [expense_json(expense) for expense in page.items],
        "pagination": {
            "total": page.total,
            "page": page.page,
            "limit": page.limit,
            "pages": page.pages,
        },
    }


@app.get(f"{API_PREFIX}/expenses/stats")
def expense_stats(
    db: Session = Depends(get_db), user: SessionUser = Depends(get_current_user)
):
    metrics = MetricsService(db, user.id)
    return {
        "last30Days": metrics.last_30_days(),
        "categoryBreakdown": metrics.category_breakdown(),
    }


@app.get(f"{API_PREFIX}/expenses/categories")
def list_categories(
    db: Session = Depends(get_db), user: SessionUser = Depends(get_current_user)
):
    categories = CategoryService(db).list_all()
    return {
        "categories": [
            CategoryOut.model_validate(c).model_dump(mode="json", by_alias=True)
            for c in categories
        ]
    }


@app.get(f"{API_PREFIX}/expenses/categories/usage")
def category_usage(
    db: Session = Depends(get_db), user: SessionUser = Depends(get_current_user)
):
    rows = CategoryService(db).usage(user.id)
    return {
        "categories": [
            CategoryUsageOut.model_validate(row).model_dump(mode="json", by_alias=True)
            for row in rows
        ]
    }


@app.get(f"{API_PREFIX}/expenses/total")
@app.get(f"{API_PREFIX}/expenses/total-spent")
def total_spent(
    db: Session = Depends(get_db), user: SessionUser = Depends(get_current_user)
):
    return {"total": MetricsService(db, user.id).total_spent()}


@app.get(f"{API_PREFIX}/expenses/monthly")
def monthly_series(
    months: int = Query(default=12, ge=1, le=60),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(get_current_user),
):
    return {"months": MetricsService(db, user.id).monthly_series(months)}


@app.get(f"{API_PREFIX}/expenses/export.csv")
def export_csv(
    request: Request,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(get_current_user),
):
    query = filters_from_request(request)
    content = export_expenses(ExpenseService(db, user.id).all_matching(query))
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="expenses.csv"'},
    )


@app.get(API_PREFIX + "/expenses/{expense_id:int}")
def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(get_current_user),
):
    try:
        expense = ExpenseService(db, user.id).get(expense_id)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"expense": expense_json(expense)}


@app.post(f"{API_PREFIX}/expenses", status_code=201)
def create_expense(
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(get_current_user),
):
    try:
        expense = ExpenseService(db, user.id).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"expense": expense_json(expense)}


@app.put(API_PREFIX + "/expenses/{expense_id:int}")
def update_expense(
    expense_id: int,
    data: ExpenseIn,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(get_current_user),
):
    service = ExpenseService(db, user.id)
    try:
        expense = service.update(expense_id, data)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"expense": expense_json(expense)}


@app.delete(API_PREFIX + "/expenses/{expense_id:int}")
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(get_current_user),
):
    try:
        ExpenseService(db, user.id).delete(expense_id)
    except ExpenseNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True}


@app.api_route(
    "/api/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"]
)
def api_not_found(path: str):
    raise HTTPException(status_code=404, detail="API endpoint not found")
