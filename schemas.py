from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from budget_status import budget_status
from csv_utils import amount_to_cents, cents_to_amount
from models import (
    Budget,
    BudgetPeriod,
    CurrencyCode,
    PaymentMethod,
    Transaction,
    TransactionType,
)

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _clean_tags(value: list[str]) -> list[str]:
    return [tag.strip() for tag in value if tag and tag.strip()]


def _at_least_one_cent(value: Decimal) -> Decimal:
    if amount_to_cents(value) <= 0:
        raise ValueError("Amount must be at least 0.01")
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]
TagList = Annotated[list[str], AfterValidator(_clean_tags)]
# Client amounts are decimals in major units; storage is integer cents.
PositiveAmount = Annotated[
    Decimal, Field(gt=0), AfterValidator(_at_least_one_cent)
]
BudgetAmount = Annotated[Decimal, Field(ge=0)]


class SignupIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    currency: CurrencyCode = CurrencyCode.usd


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    currency: Optional[CurrencyCode] = None


class PasswordChangeIn(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class PreferencesIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email_notifications: Optional[bool] = None
    budget_alerts: Optional[bool] = None
    weekly_reports: Optional[bool] = None
    theme: Optional[Literal["dark", "light", "system"]] = None


class PreferencesUpdateIn(BaseModel):
    preferences: PreferencesIn


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    currency: CurrencyCode
    preferences: dict
    created_at: datetime


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=30)
    type: TransactionType
    icon: str = Field(default="📊", max_length=16)
    color: str = Field(default="#6366f1", pattern=HEX_COLOR)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name cannot be empty")
        return value


class CategoryUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=30)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: TransactionType
    icon: str
    color: str
    is_default: bool


class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    icon: str
    color: str


class TransactionIn(BaseModel):
    type: TransactionType
    amount: PositiveAmount
    category_id: int
    description: Optional[str] = Field(default=None, max_length=200)
    date: Optional[UtcDatetime] = None
    payment_method: PaymentMethod = PaymentMethod.cash
    tags: TagList = Field(default_factory=list)

    @property
    def amount_cents(self) -> int:
        return amount_to_cents(self.amount)


class TransactionUpdateIn(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[PositiveAmount] = None
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=200)
    date: Optional[UtcDatetime] = None
    payment_method: Optional[PaymentMethod] = None
    tags: Optional[TagList] = None

    @property
    def amount_cents(self) -> Optional[int]:
        return None if self.amount is None else amount_to_cents(self.amount)


class TransactionOut(BaseModel):
    id: int
    type: TransactionType
    amount: float
    amount_cents: int
    category: CategoryRef
    description: Optional[str]
    date: datetime
    payment_method: PaymentMethod
    tags: list[str]
    created_at: datetime

    @classmethod
    def from_model(cls, txn: Transaction) -> "TransactionOut":
        return cls(
            id=txn.id,
            type=txn.type,
            amount=cents_to_amount(txn.amount_cents),
            amount_cents=txn.amount_cents,
            category=CategoryRef.model_validate(txn.category),
            description=txn.description,
            date=txn.date,
            payment_method=txn.payment_method,
            tags=txn.tag_names,
            created_at=txn.created_at,
        )


class BudgetIn(BaseModel):
    category_id: int
    amount: BudgetAmount
    period: BudgetPeriod = BudgetPeriod.monthly
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    alert_threshold: int = Field(default=80, ge=0, le=100)

    @model_validator(mode="after")
    def _month_matches_period(self) -> "BudgetIn":
        if self.period == BudgetPeriod.monthly and self.month is None:
            raise ValueError("Month is required for monthly budgets")
        if self.period == BudgetPeriod.yearly:
            self.month = None
        return self

    @property
    def amount_cents(self) -> int:
        return amount_to_cents(self.amount)


class BudgetUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Optional[BudgetAmount] = None
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)

    @property
    def amount_cents(self) -> Optional[int]:
        return None if self.amount is None else amount_to_cents(self.amount)


class BudgetOut(BaseModel):
    id: int
    category: CategoryRef
    amount: float
    amount_cents: int
    period: BudgetPeriod
    month: Optional[int]
    year: int
    spent: float
    spent_cents: int
    alert_threshold: int
    remaining: float
    remaining_cents: int
    percentage_used: int
    is_over_budget: bool
    is_near_limit: bool

    @classmethod
    def from_model(cls, budget: Budget) -> "BudgetOut":
        status = budget_status(budget)
        return cls(
            id=budget.id,
            category=CategoryRef.model_validate(budget.category),
            amount=cents_to_amount(budget.amount_cents),
            amount_cents=budget.amount_cents,
            period=budget.period,
            month=budget.month,
            year=budget.year,
            spent=cents_to_amount(budget.spent_cents),
            spent_cents=budget.spent_cents,
            alert_threshold=budget.alert_threshold,
            remaining=cents_to_amount(status.remaining_cents),
            remaining_cents=status.remaining_cents,
            percentage_used=status.percentage_used,
            is_over_budget=status.is_over_budget,
            is_near_limit=status.is_near_limit,
        )
