from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from budget_status import budget_status
from csv_utils import cents_to_amount, export_transactions
from errors import AuthenticationFailed, Conflict, InvalidInput, NotFound
from models import (
    DEFAULT_PREFERENCES,
    Budget,
    BudgetPeriod,
    Category,
    Tag,
    Transaction,
    TransactionType,
    User,
    transaction_tags,
    utcnow,
)
from periods import (
    Period,
    add_months,
    day_range,
    month_bounds,
    month_start,
    resolve_dashboard_period,
    year_bounds,
)
from schemas import (
    BudgetIn,
    BudgetUpdateIn,
    CategoryIn,
    CategoryUpdateIn,
    LoginIn,
    PasswordChangeIn,
    PreferencesIn,
    ProfileIn,
    SignupIn,
    TransactionIn,
    TransactionUpdateIn,
)
from security import hash_password, verify_password

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_TREND_MONTHS = 60

DEFAULT_CATEGORIES: list[tuple[str, TransactionType, str, str]] = [
    ("Food & Dining", TransactionType.expense, "🍔", "#ef4444"),
    ("Transportation", TransactionType.expense, "🚗", "#f97316"),
    ("Shopping", TransactionType.expense, "🛍️", "#ec4899"),
    ("Entertainment", TransactionType.expense, "🎬", "#8b5cf6"),
    ("Bills & Utilities", TransactionType.expense, "📱", "#6366f1"),
    ("Healthcare", TransactionType.expense, "🏥", "#10b981"),
    ("Education", TransactionType.expense, "📚", "#14b8a6"),
    ("Other", TransactionType.expense, "📊", "#64748b"),
    ("Salary", TransactionType.income, "💰", "#22c55e"),
    ("Freelance", TransactionType.income, "💼", "#3b82f6"),
    ("Investment", TransactionType.income, "📈", "#06b6d4"),
    ("Other Income", TransactionType.income, "💵", "#84cc16"),
]


def _expense_total(
    session: Session,
    user_id: int,
    category_id: int,
    start: datetime,
    end: datetime,
) -> int:
    return int(
        session.execute(
            select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                Transaction.user_id == user_id,
                Transaction.category_id == category_id,
                Transaction.type == TransactionType.expense,
                Transaction.date >= start,
                Transaction.date < end,
            )
        ).scalar_one()
        or 0
    )


def _budget_bounds(budget: Budget) -> tuple[datetime, datetime]:
    if budget.period == BudgetPeriod.monthly:
        return month_bounds(budget.year, budget.month)
    return year_bounds(budget.year)


def refresh_spent(session: Session, budget: Budget) -> int:
    """Set ``budget.spent_cents`` from the ledger and return the new value."""
    start, end = _budget_bounds(budget)
    budget.spent_cents = _expense_total(
        session, budget.user_id, budget.category_id, start, end
    )
    return budget.spent_cents


def recompute_spent(
    session: Session, user_id: int, category_id: int, reference: datetime
) -> Optional[Budget]:
    budget = session.scalar(
        select(Budget).where(
            Budget.user_id == user_id,
            Budget.category_id == category_id,
            Budget.period == BudgetPeriod.monthly,
            Budget.month == reference.month,
            Budget.year == reference.year,
        )
    )
    if not budget:
        return None
    spent = refresh_spent(session, budget)
    logger.info(
        f"budget_recomputed: budget_id={budget.id} period=monthly "
        f"year={budget.year} month={budget.month} spent_cents={spent}"
    )
    return budget


def recompute_yearly_spent(
    session: Session, user_id: int, category_id: int, reference: datetime
) -> Optional[Budget]:
    budget = session.scalar(
        select(Budget).where(
            Budget.user_id == user_id,
            Budget.category_id == category_id,
            Budget.period == BudgetPeriod.yearly,
            Budget.year == reference.year,
        )
    )
    if not budget:
        return None
    spent = refresh_spent(session, budget)
    logger.info(
        f"budget_recomputed: budget_id={budget.id} period=yearly "
        f"year={budget.year} spent_cents={spent}"
    )
    return budget


@dataclass(frozen=True)
class LedgerState:
    """The budget-relevant part of a transaction at one point in time."""

    type: TransactionType
    category_id: int
    date: datetime

    @classmethod
    def of(cls, txn: Transaction) -> LedgerState:
        return cls(type=txn.type, category_id=txn.category_id, date=txn.date)


def recompute_budgets(
    session: Session, user_id: int, states: Iterable[Optional[LedgerState]]
) -> None:
    monthly: set[tuple[int, int, int]] = set()
    yearly: set[tuple[int, int]] = set()
    for state in states:
        if state is None or state.type != TransactionType.expense:
            continue
        monthly.add((state.category_id, state.date.year, state.date.month))
        yearly.add((state.category_id, state.date.year))
    if not monthly:
        return

    session.flush()
    for category_id, year, month in sorted(monthly):
        recompute_spent(session, user_id, category_id, datetime(year, month, 1))
    for category_id, year in sorted(yearly):
        recompute_yearly_spent(session, user_id, category_id, datetime(year, 1, 1))


def reconcile_budgets(
    session: Session,
    months: Iterable[tuple[int, int]],
    user_id: Optional[int] = None,
) -> int:
    """Recompute every budget whose period covers one of ``(year, month)``.

    Without ``user_id`` this walks the budgets of all users.
    """
    months = set(months)
    years = {year for year, _ in months}
    stmt = select(Budget).where(Budget.year.in_(years))
    if user_id is not None:
        stmt = stmt.where(Budget.user_id == user_id)
    budgets = session.scalars(stmt).all()
    count = 0
    for budget in budgets:
        scope = (budget.year, budget.month)
        if budget.period == BudgetPeriod.monthly and scope not in months:
            continue
        refresh_spent(session, budget)
        count += 1
    session.commit()
    return count


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None


def seed_default_categories(session: Session, user_id: int) -> list[Category]:
    categories = [
        Category(
            user_id=user_id,
            name=name,
            type=txn_type,
            icon=icon,
            color=color,
            is_default=False,
        )
        for name, txn_type, icon, color in DEFAULT_CATEGORIES
    ]
    session.add_all(categories)
    session.flush()
    return categories


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _by_email(self, email: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.email == email.lower()))

    def signup(self, data: SignupIn) -> User:
        email = data.email.lower()
        if self._by_email(email):
            raise Conflict("Email already in use", field="email")

        user = User(
            name=data.name.strip(),
            email=email,
            password_hash=hash_password(data.password),
            currency=data.currency,
            preferences=dict(DEFAULT_PREFERENCES),
        )
        self.session.add(user)
        try:
            self.session.flush()
            seed_default_categories(self.session, user.id)
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict("Email already in use", field="email") from exc
        self.session.refresh(user)
        logger.info(f"user_signup: user_id={user.id}")
        return user

    def login(self, data: LoginIn) -> User:
        user = self._by_email(data.email)
        if not user or not verify_password(data.password, user.password_hash):
            logger.info("login_failed: reason=invalid_credentials")
            raise AuthenticationFailed("Invalid credentials")
        logger.info(f"user_login: user_id={user.id}")
        return user

    def get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise AuthenticationFailed("User no longer exists")
        return user


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _user(self) -> User:
        user = self.session.get(User, self.user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def update_profile(self, data: ProfileIn) -> User:
        user = self._user()
        if data.email is not None and data.email.lower() != user.email:
            taken = self.session.scalar(
                select(User.id).where(
                    User.email == data.email.lower(), User.id != self.user_id
                )
            )
            if taken:
                raise Conflict("Email already in use", field="email")
            user.email = data.email.lower()
        if data.name:
            user.name = data.name.strip()
        if data.currency is not None:
            user.currency = data.currency
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"profile_updated: user_id={self.user_id}")
        return user

    def change_password(self, data: PasswordChangeIn) -> None:
        user = self._user()
        if not verify_password(data.current_password, user.password_hash):
            raise AuthenticationFailed(
                "Current password is incorrect", field="current_password"
            )
        user.password_hash = hash_password(data.new_password)
        self.session.commit()
        logger.info(f"password_changed: user_id={self.user_id}")

    def update_preferences(self, data: PreferencesIn) -> User:
        user = self._user()
        merged = dict(DEFAULT_PREFERENCES)
        merged.update(user.preferences or {})
        merged.update(data.model_dump(exclude_none=True))
        user.preferences = merged
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete_account(self) -> None:
        user = self._user()
        txn_ids = select(Transaction.id).where(Transaction.user_id == self.user_id)
        self.session.execute(
            delete(transaction_tags).where(transaction_tags.c.transaction_id.in_(txn_ids))
        )
        self.session.execute(
            delete(Transaction).where(Transaction.user_id == self.user_id)
        )
        self.session.execute(delete(Tag).where(Tag.user_id == self.user_id))
        self.session.execute(delete(Budget).where(Budget.user_id == self.user_id))
        self.session.execute(
            delete(Category).where(
                Category.user_id == self.user_id, Category.is_default.is_(False)
            )
        )
        self.session.execute(
            update(Category)
            .where(Category.user_id == self.user_id, Category.is_default.is_(True))
            .values(user_id=None)
        )
        self.session.delete(user)
        self.session.commit()
        logger.info(f"account_deleted: user_id={self.user_id}")


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.user_id == self.user_id
            )
        )
        if not category:
            raise NotFound("Category not found")
        return category

    def _ensure_unique(
        self, name: str, type: TransactionType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == type,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise Conflict("Category with this name already exists", field="name")

    def create(self, data: CategoryIn) -> Category:
        self._ensure_unique(data.name, data.type)
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            icon=data.icon,
            color=data.color,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} user_id={self.user_id}")
        return category

    def update(self, category_id: int, data: CategoryUpdateIn) -> Category:
        category = self.get(category_id)
        if data.name is not None:
            name = data.name.strip()
            if not name:
                raise InvalidInput("Category name cannot be empty", field="name")
            self._ensure_unique(name, category.type, exclude_id=category.id)
            category.name = name
        if data.icon is not None:
            category.icon = data.icon
        if data.color is not None:
            category.color = data.color
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_updated: id={category.id} user_id={self.user_id}")
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        in_use = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(
                    Transaction.user_id == self.user_id,
                    Transaction.category_id == category.id,
                )
            ).scalar_one()
            or 0
        )
        if in_use:
            raise Conflict(
                "Category is used by existing transactions", field="category_id"
            )
        self.session.execute(
            delete(Budget).where(
                Budget.user_id == self.user_id, Budget.category_id == category.id
            )
        )
        self.session.delete(category)
        self.session.commit()
        logger.info(f"category_deleted: id={category_id} user_id={self.user_id}")


class TagService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get_or_create(self, name: str) -> Tag:
        clean_name = name.strip()
        if not clean_name:
            raise InvalidInput("Tag name cannot be empty", field="tags")

        stmt = select(Tag).where(
            Tag.user_id == self.user_id, func.lower(Tag.name) == clean_name.lower()
        )
        existing = self.session.scalar(stmt)
        if existing:
            return existing

        tag = Tag(user_id=self.user_id, name=clean_name)
        self.session.add(tag)
        self.session.flush()
        return tag

    def resolve(self, names: Iterable[str]) -> list[Tag]:
        tags: list[Tag] = []
        tag_ids: set[int] = set()
        for name in names:
            tag = self.get_or_create(name)
            if tag.id not in tag_ids:
                tags.append(tag)
                tag_ids.add(tag.id)
        return tags


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _category_for(self, category_id: int, txn_type: TransactionType) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found", field="category_id")
        if category.type != txn_type:
            raise InvalidInput("Category type mismatch", field="category_id")
        return category

    def _base_query(self):
        return (
            select(Transaction)
            .options(joinedload(Transaction.category), selectinload(Transaction.tags))
            .where(Transaction.user_id == self.user_id)
        )

    def _conditions(self, filters: TransactionFilters) -> list:
        conditions = [Transaction.user_id == self.user_id]
        if filters.type:
            conditions.append(Transaction.type == filters.type)
        if filters.category_id:
            conditions.append(Transaction.category_id == filters.category_id)
        if filters.start_date or filters.end_date:
            try:
                window = day_range(filters.start_date, filters.end_date)
            except ValueError as exc:
                raise InvalidInput(str(exc), field="start_date") from exc
            if window.start is not None:
                conditions.append(Transaction.date >= window.start)
            if window.end is not None:
                conditions.append(Transaction.date < window.end)
        if filters.search:
            conditions.append(
                func.lower(func.coalesce(Transaction.description, "")).contains(
                    filters.search.strip().lower(), autoescape=True
                )
            )
        return conditions

    def create(self, data: TransactionIn) -> Transaction:
        category = self._category_for(data.category_id, data.type)
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=data.amount_cents,
            category=category,
            description=(data.description or "").strip() or None,
            date=data.date or utcnow(),
            payment_method=data.payment_method,
        )
        self.session.add(txn)
        if data.tags:
            txn.tags = TagService(self.session, self.user_id).resolve(data.tags)
        self.session.flush()
        recompute_budgets(self.session, self.user_id, [LedgerState.of(txn)])
        self.session.commit()
        logger.info(
            f"transaction_created: id={txn.id} user_id={self.user_id} "
            f"type={txn.type.value} amount_cents={txn.amount_cents}"
        )
        return self.get(txn.id)

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            self._base_query().where(Transaction.id == transaction_id)
        )
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> Transaction:
        txn = self.get(transaction_id)
        old_state = LedgerState.of(txn)
        fields = data.model_fields_set

        new_type = data.type if data.type is not None else txn.type
        new_category_id = (
            data.category_id if data.category_id is not None else txn.category_id
        )
        if new_type != txn.type or new_category_id != txn.category_id:
            txn.category = self._category_for(new_category_id, new_type)
        txn.type = new_type

        if data.amount_cents is not None:
            txn.amount_cents = data.amount_cents
        if "description" in fields:
            txn.description = (data.description or "").strip() or None
        if data.date is not None:
            txn.date = data.date
        if data.payment_method is not None:
            txn.payment_method = data.payment_method
        if data.tags is not None:
            txn.tags = TagService(self.session, self.user_id).resolve(data.tags)

        self.session.flush()
        recompute_budgets(
            self.session, self.user_id, [old_state, LedgerState.of(txn)]
        )
        self.session.commit()
        logger.info(f"transaction_updated: id={txn.id} user_id={self.user_id}")
        return self.get(txn.id)

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        old_state = LedgerState.of(txn)
        self.session.delete(txn)
        self.session.flush()
        recompute_budgets(self.session, self.user_id, [old_state])
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id} user_id={self.user_id}")

    def list(
        self,
        filters: TransactionFilters,
        *,
        page: int = 1,
        limit: int = 20,
        sort: str = "newest",
    ) -> tuple[list[Transaction], int]:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        conditions = self._conditions(filters)
        total = int(
            self.session.execute(
                select(func.count(Transaction.id)).where(*conditions)
            ).scalar_one()
            or 0
        )
        if sort == "oldest":
            ordering = (Transaction.date.asc(), Transaction.id.asc())
        else:
            ordering = (Transaction.date.desc(), Transaction.id.desc())
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), selectinload(Transaction.tags))
            .where(*conditions)
            .order_by(*ordering)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all()), total

    def all_matching(self, filters: TransactionFilters) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category), selectinload(Transaction.tags))
            .where(*self._conditions(filters))
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return list(self.session.scalars(stmt).all())

    def recent(self, limit: int = 5) -> list[Transaction]:
        stmt = (
            self._base_query()
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())


@dataclass(frozen=True)
class BudgetAlert:
    budget: Budget
    type: str
    message: str


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(
        self, *, year: Optional[int] = None, month: Optional[int] = None
    ) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.year.desc(), Budget.month.desc(), Budget.id.asc())
        )
        if year:
            stmt = stmt.where(Budget.year == year)
        if month:
            stmt = stmt.where(Budget.month == month)
        return list(self.session.scalars(stmt).all())

    def get(self, budget_id: int) -> Budget:
        budget = self.session.scalar(
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.id == budget_id, Budget.user_id == self.user_id)
        )
        if not budget:
            raise NotFound("Budget not found")
        return budget

    def create(self, data: BudgetIn) -> Budget:
        category = self.session.get(Category, data.category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found", field="category_id")
        if category.type != TransactionType.expense:
            raise InvalidInput(
                "Budgets can only be set for expense categories", field="category_id"
            )

        month = data.month if data.period == BudgetPeriod.monthly else None
        stmt = select(Budget.id).where(
            Budget.user_id == self.user_id,
            Budget.category_id == data.category_id,
            Budget.period == data.period,
            Budget.year == data.year,
        )
        if month is None:
            stmt = stmt.where(Budget.month.is_(None))
        else:
            stmt = stmt.where(Budget.month == month)
        if self.session.scalar(stmt):
            raise Conflict(
                "Budget already exists for this category and period",
                field="category_id",
            )

        budget = Budget(
            user_id=self.user_id,
            category_id=data.category_id,
            amount_cents=data.amount_cents,
            period=data.period,
            month=month,
            year=data.year,
            alert_threshold=data.alert_threshold,
        )
        refresh_spent(self.session, budget)
        self.session.add(budget)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise Conflict(
                "Budget already exists for this category and period",
                field="category_id",
            ) from exc
        logger.info(
            f"budget_created: id={budget.id} user_id={self.user_id} "
            f"period={budget.period.value} spent_cents={budget.spent_cents}"
        )
        return self.get(budget.id)

    def update(self, budget_id: int, data: BudgetUpdateIn) -> Budget:
        budget = self.get(budget_id)
        if data.amount_cents is not None:
            budget.amount_cents = data.amount_cents
        if data.alert_threshold is not None:
            budget.alert_threshold = data.alert_threshold
        self.session.commit()
        logger.info(f"budget_updated: id={budget.id} user_id={self.user_id}")
        return self.get(budget.id)

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()
        logger.info(f"budget_deleted: id={budget_id} user_id={self.user_id}")

    def reconcile(self, months: Iterable[tuple[int, int]]) -> int:
        return reconcile_budgets(self.session, months, user_id=self.user_id)

    def alerts(self, *, now: Optional[datetime] = None) -> list[BudgetAlert]:
        now = now or utcnow()
        alerts: list[BudgetAlert] = []
        for budget in self.list(year=now.year, month=now.month):
            status = budget_status(budget)
            if status.is_over_budget:
                alerts.append(
                    BudgetAlert(
                        budget=budget,
                        type="over",
                        message=(
                            "You've exceeded your budget for "
                            f"{budget.category.name}"
                        ),
                    )
                )
            elif status.is_near_limit:
                alerts.append(
                    BudgetAlert(
                        budget=budget,
                        type="warning",
                        message=(
                            f"You've used {status.percentage_used}% of your "
                            f"budget for {budget.category.name}"
                        ),
                    )
                )
        return alerts


@dataclass
class CategoryTotal:
    category: Category
    total_cents: int
    count: int
    percentage: float


@dataclass
class DashboardSummary:
    period: Period
    now: datetime
    income_cents: int
    expense_cents: int
    transaction_count: int
    category_breakdown: list[CategoryTotal] = field(default_factory=list)
    recent_transactions: list[Transaction] = field(default_factory=list)

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents


@dataclass
class Insight:
    type: str
    message: str


@dataclass
class DashboardInsights:
    this_month_expense_cents: int
    last_month_expense_cents: int
    change_percentage: float
    top_category: Optional[CategoryTotal]
    insights: list[Insight] = field(default_factory=list)


class DashboardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _period_conditions(self, period: Period) -> list:
        conditions = [Transaction.user_id == self.user_id]
        if period.start is not None:
            conditions.append(Transaction.date >= period.start)
        if period.end is not None:
            conditions.append(Transaction.date < period.end)
        return conditions

    def _category_totals(self, conditions: list) -> list[tuple[Category, int, int]]:
        total = func.coalesce(func.sum(Transaction.amount_cents), 0)
        stmt = (
            select(
                Category,
                total.label("total"),
                func.count(Transaction.id).label("count"),
            )
            .select_from(Transaction)
            .join(Category, Category.id == Transaction.category_id)
            .where(*conditions, Transaction.type == TransactionType.expense)
            .group_by(Category.id)
            .order_by(total.desc(), Category.name.asc())
        )
        return [
            (row[0], int(row.total or 0), int(row.count or 0))
            for row in self.session.execute(stmt)
        ]

    def summary(
        self, period: Optional[str] = None, *, now: Optional[datetime] = None
    ) -> DashboardSummary:
        now = now or utcnow()
        try:
            resolved = resolve_dashboard_period(period, now=now)
        except ValueError as exc:
            raise InvalidInput(f"Invalid period '{period}'", field="period") from exc

        # Totals and breakdown must share this exact filter.
        conditions = self._period_conditions(resolved)

        totals = self.session.execute(
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (
                                Transaction.type == TransactionType.income,
                                Transaction.amount_cents,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("income"),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                Transaction.type == TransactionType.expense,
                                Transaction.amount_cents,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("expense"),
                func.count(Transaction.id).label("count"),
            ).where(*conditions)
        ).one()
        income = int(totals.income or 0)
        expense = int(totals.expense or 0)

        breakdown = [
            CategoryTotal(
                category=category,
                total_cents=amount,
                count=count,
                percentage=(amount / expense * 100) if expense else 0,
            )
            for category, amount, count in self._category_totals(conditions)
        ]
        recent = TransactionService(self.session, self.user_id).recent(5)
        return DashboardSummary(
            period=resolved,
            now=now,
            income_cents=income,
            expense_cents=expense,
            transaction_count=int(totals.count or 0),
            category_breakdown=breakdown,
            recent_transactions=recent,
        )

    def trends(
        self, months: int = 6, *, now: Optional[datetime] = None
    ) -> list[dict[str, object]]:
        if months < 1 or months > MAX_TREND_MONTHS:
            raise InvalidInput(
                f"Months must be between 1 and {MAX_TREND_MONTHS}", field="months"
            )
        now = now or utcnow()
        first = month_start(now)
        oldest = add_months(first, -(months - 1))
        end = add_months(first, 1)

        year_col = func.extract("year", Transaction.date)
        month_col = func.extract("month", Transaction.date)
        stmt = (
            select(
                year_col.label("year"),
                month_col.label("month"),
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date >= oldest,
                Transaction.date < end,
            )
            .group_by(year_col, month_col, Transaction.type)
        )
        totals: dict[tuple[int, int, TransactionType], int] = {}
        for row in self.session.execute(stmt):
            totals[(int(row.year), int(row.month), row.type)] = int(row.total or 0)

        series: list[dict[str, object]] = []
        for offset in range(months):
            current = add_months(oldest, offset)
            income = totals.get((current.year, current.month, TransactionType.income), 0)
            expense = totals.get(
                (current.year, current.month, TransactionType.expense), 0
            )
            series.append(
                {
                    "month": current.month,
                    "year": current.year,
                    "month_name": calendar.month_abbr[current.month],
                    "income": cents_to_amount(income),
                    "income_cents": income,
                    "expense": cents_to_amount(expense),
                    "expense_cents": expense,
                    "balance": cents_to_amount(income - expense),
                    "balance_cents": income - expense,
                }
            )
        return series

    def _expense_between(self, start: datetime, end: datetime) -> int:
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
                    Transaction.user_id == self.user_id,
                    Transaction.type == TransactionType.expense,
                    Transaction.date >= start,
                    Transaction.date < end,
                )
            ).scalar_one()
            or 0
        )

    def insights(self, *, now: Optional[datetime] = None) -> DashboardInsights:
        now = now or utcnow()
        this_start = month_start(now)
        next_start = add_months(this_start, 1)
        last_start = add_months(this_start, -1)

        this_month = self._expense_between(this_start, next_start)
        last_month = self._expense_between(last_start, this_start)
        change = ((this_month - last_month) / last_month * 100) if last_month > 0 else 0.0

        insights: list[Insight] = []
        if change > 10:
            insights.append(
                Insight(
                    type="warning",
                    message=(
                        f"Your spending increased by {change:.1f}% "
                        "compared to last month"
                    ),
                )
            )
        elif change < -10:
            insights.append(
                Insight(
                    type="success",
                    message=(
                        f"Great job! Your spending decreased by {abs(change):.1f}% "
                        "compared to last month"
                    ),
                )
            )

        top_rows = self._category_totals(
            [
                Transaction.user_id == self.user_id,
                Transaction.date >= this_start,
                Transaction.date < next_start,
            ]
        )
        top_category = None
        if top_rows:
            category, amount, count = top_rows[0]
            top_category = CategoryTotal(
                category=category,
                total_cents=amount,
                count=count,
                percentage=(amount / this_month * 100) if this_month else 0,
            )
            insights.append(
                Insight(
                    type="info",
                    message=(
                        "Your highest spending category this month is "
                        f"{category.name}"
                    ),
                )
            )

        return DashboardInsights(
            this_month_expense_cents=this_month,
            last_month_expense_cents=last_month,
            change_percentage=round(change, 2),
            top_category=top_category,
            insights=insights,
        )


class ReportService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id
        self.txn_service = TransactionService(session, user_id)

    def export_csv(self, filters: TransactionFilters) -> str:
        transactions = self.txn_service.all_matching(filters)
        logger.info(
            f"csv_exported: user_id={self.user_id} rows={len(transactions)}"
        )
        return export_transactions(transactions)

    def gather_data(self, filters: TransactionFilters) -> dict[str, object]:
        transactions = self.txn_service.all_matching(filters)
        income = sum(
            t.amount_cents for t in transactions if t.type == TransactionType.income
        )
        expense = sum(
            t.amount_cents for t in transactions if t.type == TransactionType.expense
        )
        return {
            "transactions": transactions,
            "income_cents": income,
            "expense_cents": expense,
            "balance_cents": income - expense,
            "transaction_count": len(transactions),
            "start_date": filters.start_date,
            "end_date": filters.end_date,
        }
