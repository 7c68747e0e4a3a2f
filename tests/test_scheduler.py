from datetime import datetime

from apscheduler.triggers.date import DateTrigger
from sqlalchemy import select

from config import Settings
from database import Database
from models import Budget, BudgetPeriod, Category, Transaction, TransactionType, User
from scheduler import SchedulerManager, months_to_reconcile


def _settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        environment="development",
        token_secret="test-secret",
        token_expire_days=7,
        cookie_expire_days=7,
        cors_origins=[],
        db_connect_timeout_secs=5,
        db_pool_timeout_secs=5,
        timezone="UTC",
        scheduler_enabled=True,
        create_schema=True,
        log_level="INFO",
    )


def test_months_to_reconcile_covers_previous_and_current() -> None:
    assert months_to_reconcile(datetime(2024, 1, 20)) == [(2023, 12), (2024, 1)]
    assert months_to_reconcile(datetime(2024, 7, 1)) == [(2024, 6), (2024, 7)]


def test_job_repairs_current_month_budgets() -> None:
    database = Database("sqlite://")
    database.create_all()
    first = months_to_reconcile()[1]

    with database.session_scope() as session:
        user = User(name="Alice", email="alice@example.com", password_hash="x")
        session.add(user)
        session.flush()
        food = Category(user_id=user.id, name="Food", type=TransactionType.expense)
        session.add(food)
        session.flush()
        session.add(
            Transaction(
                user_id=user.id,
                type=TransactionType.expense,
                amount_cents=4_200,
                category_id=food.id,
                date=datetime(first[0], first[1], 1, 9, 0),
            )
        )
        session.add(
            Budget(
                user_id=user.id,
                category_id=food.id,
                amount_cents=10_000,
                period=BudgetPeriod.monthly,
                month=first[1],
                year=first[0],
                spent_cents=0,
            )
        )

    manager = SchedulerManager(database, _settings())
    assert manager._run_job("test") == 1

    with database.session_scope() as session:
        budget = session.scalars(select(Budget)).one()
        assert budget.spent_cents == 4_200


def test_startup_run_is_scheduled_not_run_inline() -> None:
    database = Database("sqlite://")
    database.create_all()
    manager = SchedulerManager(database, _settings())
    calls = []
    manager._run_job = lambda source="manual": calls.append(source)

    manager._add_jobs()

    assert calls == []
    jobs = {job.id: job for job in manager.scheduler.get_jobs()}
    assert set(jobs) == {"budgets_startup", "budgets_daily", "budgets_hourly_safety"}
    assert isinstance(jobs["budgets_startup"].trigger, DateTrigger)
    assert jobs["budgets_startup"].args == ("startup",)
