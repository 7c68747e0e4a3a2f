from budget_status import (
    budget_status,
    is_near_limit,
    is_over_budget,
    percentage_used,
    remaining_cents,
)
from models import Budget, BudgetPeriod


def test_percentage_rounds_half_up() -> None:
    assert percentage_used(200, 1) == 1
    assert percentage_used(300, 100) == 33
    assert percentage_used(300, 200) == 67
    assert percentage_used(10_000, 12_345) == 123


def test_zero_amount_budget_reports_zero_percent() -> None:
    assert percentage_used(0, 500) == 0
    assert is_over_budget(0, 500) is True
    assert remaining_cents(0, 500) == 0


def test_remaining_never_negative() -> None:
    assert remaining_cents(50_000, 20_000) == 30_000
    assert remaining_cents(50_000, 55_000) == 0


def test_near_limit_excludes_over_budget() -> None:
    assert is_near_limit(10_000, 8_000, 80) is True
    assert is_near_limit(10_000, 7_949, 80) is False
    assert is_near_limit(10_000, 10_000, 80) is True
    assert is_near_limit(10_000, 10_001, 80) is False


def test_budget_status_reads_model_fields() -> None:
    budget = Budget(
        amount_cents=50_000,
        spent_cents=45_000,
        alert_threshold=90,
        period=BudgetPeriod.monthly,
        month=6,
        year=2024,
    )
    status = budget_status(budget)
    assert status.remaining_cents == 5_000
    assert status.percentage_used == 90
    assert status.is_over_budget is False
    assert status.is_near_limit is True
