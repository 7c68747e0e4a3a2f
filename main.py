import logging
import math
import time
from contextlib import asynccontextmanager
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from csv_utils import cents_to_amount
from database import Database, redacted_url
from errors import AuthenticationFailed, FinanceError
from models import TransactionType, User, utcnow
from reports import render_report
from scheduler import SchedulerManager
from schemas import (
    BudgetIn,
    BudgetOut,
    BudgetUpdateIn,
    CategoryIn,
    CategoryOut,
    CategoryRef,
    CategoryUpdateIn,
    LoginIn,
    PasswordChangeIn,
    PreferencesUpdateIn,
    ProfileIn,
    SignupIn,
    TransactionIn,
    TransactionOut,
    TransactionUpdateIn,
    UserOut,
)
from security import issue_token, read_token
from services import (
    AccountService,
    AuthService,
    BudgetService,
    CategoryService,
    DashboardService,
    ReportService,
    TransactionFilters,
    TransactionService,
)

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "token"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer ") :].strip()
        if token:
            return token
    return request.cookies.get(TOKEN_COOKIE) or None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = token_from_request(request)
    if not token:
        raise AuthenticationFailed("Not authorized to access this route")
    user_id = read_token(token, request.app.state.settings)
    return AuthService(db).get_user(user_id)


def envelope(data: object = None, **extra: object) -> dict[str, object]:
    body: dict[str, object] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def _error_body(message: str, errors: Optional[list[dict]] = None) -> dict:
    body: dict[str, object] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def _field_name(loc: tuple) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or (str(loc[0]) if loc else "")


def set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=settings.cookie_expire_days * 24 * 3600,
        httponly=True,
        samesite="strict",
        secure=not settings.is_development,
    )


def clear_token_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        TOKEN_COOKIE,
        httponly=True,
        samesite="strict",
        secure=not settings.is_development,
    )


def auth_payload(user: User, response: Response, settings: Settings) -> dict:
    token = issue_token(user.id, settings)
    set_token_cookie(response, token, settings)
    return envelope(token=token, user=UserOut.model_validate(user))


def export_filters(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    category_id: Optional[int] = None,
    type: Optional[TransactionType] = None,
) -> TransactionFilters:
    return TransactionFilters(
        type=type,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
    )


router = APIRouter(prefix="/api")


@router.get("/health")
def health():
    return envelope(message="API is running", timestamp=utcnow().isoformat())


# Auth


@router.post("/auth/signup", status_code=201)
def signup(
    payload: SignupIn,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user = AuthService(db).signup(payload)
    return auth_payload(user, response, settings)


@router.post("/auth/login")
def login(
    payload: LoginIn,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    user = AuthService(db).login(payload)
    return auth_payload(user, response, settings)


@router.post("/auth/logout")
def logout(response: Response, settings: Settings = Depends(get_app_settings)):
    clear_token_cookie(response, settings)
    return envelope(message="Logged out successfully")


@router.get("/auth/me")
def me(user: User = Depends(get_current_user)):
    return envelope(UserOut.model_validate(user))


# Transactions


@router.get("/transactions")
def list_transactions(
    type: Optional[TransactionType] = None,
    category_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    sort: Literal["newest", "oldest"] = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters = TransactionFilters(
        type=type,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    items, total = TransactionService(db, user.id).list(
        filters, page=page, limit=limit, sort=sort
    )
    return envelope(
        [TransactionOut.from_model(txn) for txn in items],
        count=len(items),
        total=total,
        page=page,
        pages=math.ceil(total / limit),
    )


@router.post("/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user.id).create(payload)
    return envelope(TransactionOut.from_model(txn))


@router.get("/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user.id).get(transaction_id)
    return envelope(TransactionOut.from_model(txn))


@router.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user.id).update(transaction_id, payload)
    return envelope(TransactionOut.from_model(txn))


@router.delete("/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    TransactionService(db, user.id).delete(transaction_id)
    return envelope({}, message="Transaction deleted")


# Categories


@router.get("/categories")
def list_categories(
    type: Optional[TransactionType] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    categories = CategoryService(db, user.id).list_all(type)
    return envelope(
        [CategoryOut.model_validate(c) for c in categories], count=len(categories)
    )


@router.post("/categories", status_code=201)
def create_category(
    payload: CategoryIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user.id).create(payload)
    return envelope(CategoryOut.model_validate(category))


@router.get("/categories/{category_id}")
def get_category(
    category_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user.id).get(category_id)
    return envelope(CategoryOut.model_validate(category))


@router.put("/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = CategoryService(db, user.id).update(category_id, payload)
    return envelope(CategoryOut.model_validate(category))


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    CategoryService(db, user.id).delete(category_id)
    return envelope({}, message="Category deleted")


# Budgets


@router.get("/budgets")
def list_budgets(
    year: Optional[int] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budgets = BudgetService(db, user.id).list(year=year, month=month)
    return envelope([BudgetOut.from_model(b) for b in budgets], count=len(budgets))


@router.get("/budgets/alerts")
def budget_alerts(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    alerts = BudgetService(db, user.id).alerts()
    return envelope(
        [
            {
                "budget": BudgetOut.from_model(alert.budget),
                "type": alert.type,
                "message": alert.message,
            }
            for alert in alerts
        ],
        count=len(alerts),
    )


@router.post("/budgets", status_code=201)
def create_budget(
    payload: BudgetIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = BudgetService(db, user.id).create(payload)
    return envelope(BudgetOut.from_model(budget))


@router.get("/budgets/{budget_id}")
def get_budget(
    budget_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = BudgetService(db, user.id).get(budget_id)
    return envelope(BudgetOut.from_model(budget))


@router.put("/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    payload: BudgetUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    budget = BudgetService(db, user.id).update(budget_id, payload)
    return envelope(BudgetOut.from_model(budget))


@router.delete("/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    BudgetService(db, user.id).delete(budget_id)
    return envelope({}, message="Budget deleted")


# Dashboard


@router.get("/dashboard/summary")
def dashboard_summary(
    period: Optional[str] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    summary = DashboardService(db, user.id).summary(period)
    return envelope(
        {
            "summary": {
                "income": cents_to_amount(summary.income_cents),
                "income_cents": summary.income_cents,
                "expense": cents_to_amount(summary.expense_cents),
                "expense_cents": summary.expense_cents,
                "balance": cents_to_amount(summary.balance_cents),
                "balance_cents": summary.balance_cents,
                "transaction_count": summary.transaction_count,
            },
            "category_breakdown": [
                {
                    "category": CategoryRef.model_validate(item.category),
                    "total": cents_to_amount(item.total_cents),
                    "total_cents": item.total_cents,
                    "count": item.count,
                    "percentage": round(item.percentage, 2),
                }
                for item in summary.category_breakdown
            ],
            "recent_transactions": [
                TransactionOut.from_model(txn) for txn in summary.recent_transactions
            ],
            "period": {
                "selected": summary.period.slug,
                "month": summary.now.month,
                "year": summary.now.year,
            },
        }
    )


@router.get("/dashboard/trends")
def dashboard_trends(
    months: int = 6,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return envelope(DashboardService(db, user.id).trends(months))


@router.get("/dashboard/insights")
def dashboard_insights(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = DashboardService(db, user.id).insights()
    top = None
    if result.top_category:
        top = {
            "category": CategoryRef.model_validate(result.top_category.category),
            "total": cents_to_amount(result.top_category.total_cents),
            "total_cents": result.top_category.total_cents,
        }
    return envelope(
        {
            "this_month_expense": cents_to_amount(result.this_month_expense_cents),
            "this_month_expense_cents": result.this_month_expense_cents,
            "last_month_expense": cents_to_amount(result.last_month_expense_cents),
            "last_month_expense_cents": result.last_month_expense_cents,
            "change_percentage": result.change_percentage,
            "top_category": top,
            "insights": [
                {"type": insight.type, "message": insight.message}
                for insight in result.insights
            ],
        }
    )


# Export


@router.get("/export/transactions/csv")
def export_csv(
    filters: TransactionFilters = Depends(export_filters),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    csv_text = ReportService(db, user.id).export_csv(filters)
    filename = f"transactions-{utcnow().strftime('%Y%m%d')}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/report/pdf", response_class=HTMLResponse)
def export_report(
    filters: TransactionFilters = Depends(export_filters),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    data = ReportService(db, user.id).gather_data(filters)
    html = render_report(user, data)
    logger.info(
        f"report_generated: user_id={user.id} transactions={data['transaction_count']}"
    )
    return HTMLResponse(html)


# Settings


@router.put("/settings/profile")
def update_profile(
    payload: ProfileIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = AccountService(db, user.id).update_profile(payload)
    return envelope(UserOut.model_validate(updated), message="Profile updated")


@router.put("/settings/password")
def change_password(
    payload: PasswordChangeIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    AccountService(db, user.id).change_password(payload)
    return envelope(message="Password updated successfully")


@router.put("/settings/preferences")
def update_preferences(
    payload: PreferencesUpdateIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = AccountService(db, user.id).update_preferences(payload.preferences)
    return envelope(updated.preferences, message="Preferences updated")


@router.delete("/settings/account")
def delete_account(
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    AccountService(db, user.id).delete_account()
    clear_token_cookie(response, settings)
    return envelope(message="Account deleted successfully")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": _field_name(tuple(err.get("loc", ()))), "message": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400, content=_error_body("Validation failed", errors)
        )

    @app.exception_handler(FinanceError)
    async def finance_error_handler(request: Request, exc: FinanceError):
        errors = [{"field": exc.field, "message": exc.message}] if exc.field else None
        return JSONResponse(
            status_code=exc.status_code, content=_error_body(exc.message, errors)
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"integrity_error: path={request.url.path} error={exc.orig}")
        return JSONResponse(status_code=409, content=_error_body("Duplicate value"))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"unhandled_error: path={request.url.path}")
        settings: Settings = request.app.state.settings
        message = str(exc) if settings.is_development else "Server Error"
        return JSONResponse(status_code=500, content=_error_body(message))


def create_app(
    database: Optional[Database] = None, settings: Optional[Settings] = None
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_database = app.state.database is None
        if owns_database:
            app.state.database = Database.from_settings(settings)
        db = app.state.database
        logger.info(f"database_ready: url={redacted_url(db.url)}")
        if settings.create_schema:
            db.create_all()

        scheduler = None
        if settings.scheduler_enabled:
            scheduler = SchedulerManager(db, settings)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler:
                scheduler.stop()
            if owns_database:
                db.dispose()
                app.state.database = None

    app = FastAPI(title="Finance Tracker API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"request: method={request.method} path={request.url.path} "
            f"status={response.status_code} duration_ms={duration_ms:.1f}"
        )
        return response

    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
