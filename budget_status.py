from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from models import Budget


@dataclass(frozen=True)
class BudgetStatus:
    remaining_cents: int
    percentage_used: int
    is_over_budget: bool
    is_near_limit: bool


def remaining_cents(amount_cents: int, spent_cents: int) -> int:
    return max(0, amount_cents - spent_cents)


def percentage_used(amount_cents: int, spent_cents: int) -> int:
    if amount_cents <= 0:
        return 0
    ratio = Decimal(spent_cents) * 100 / Decimal(amount_cents)
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_over_budget(amount_cents: int, spent_cents: int) -> bool:
    return spent_cents > amount_cents


def is_near_limit(amount_cents: int, spent_cents: int, alert_threshold: int) -> bool:
    if is_over_budget(amount_cents, spent_cents):
        return False
    return percentage_used(amount_cents, spent_cents) >= alert_threshold


def budget_status(budget: Budget) -> BudgetStatus:
    amount = budget.amount_cents
    spent = budget.spent_cents or 0
    return BudgetStatus(
        remaining_cents=remaining_cents(amount, spent),
        percentage_used=percentage_used(amount, spent),
        is_over_budget=is_over_budget(amount, spent),
        is_near_limit=is_near_limit(amount, spent, budget.alert_threshold),
    )
