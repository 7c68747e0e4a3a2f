from datetime import datetime
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from budget_status import budget_status
from database import Base
from models import BudgetPeriod, TransactionType
from schemas import BudgetIn, CategoryIn, SignupIn, TransactionIn, TransactionUpdateIn
from services import (
    AuthService,
    BudgetService,
    CategoryService,
    TransactionService,
    reconcile_budgets,
)


def _setup(session: Session):
    user = AuthService(session).signup(
        SignupIn(name="Alice", email="alice@example.com", password="secret1")
    )
    food = CategoryService(session, user.id).create(
        CategoryIn(name="Food", type=TransactionType.expense)
    )
    return user, food


def _expense(service: TransactionService, category_id: int, amount: int, when: datetime):
    return service.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=Decimal(amount) / 100,
            category_id=category_id,
            date=when,
        )
    )


def _monthly(session: Session, user_id: int, category_id: int, amount: int, month: int):
    return BudgetService(session, user_id).create(
        BudgetIn(
            category_id=category_id,
            amount=Decimal(amount) / 100,
            period=BudgetPeriod.monthly,
            month=month,
            year=2024,
        )
    )


def test_spent_follows_ledger_as_expenses_are_added() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _setup(session)
        budget = _monthly(session, user.id, food.id, 50_000, 6)
        txns = TransactionService(session, user.id)

        _expense(txns, food.id, 20_000, datetime(2024, 6, 5))
        budget = BudgetService(session, user.id).get(budget.id)
        status = budget_status(budget)
        assert budget.spent_cents == 20_000
        assert status.remaining_cents == 30_000
        assert status.percentage_used == 40
        assert status.is_over_budget is False

        _expense(txns, food.id, 35_000, datetime(2024, 6, 20))
        budget = BudgetService(session, user.id).get(budget.id)
        status = budget_status(budget)
        assert budget.spent_cents == 55_000
        assert status.is_over_budget is True
        assert status.remaining_cents == 0


def test_new_budget_counts_existing_expenses() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _setup(session)
        txns = TransactionService(session, user.id)
        _expense(txns, food.id, 1_500, datetime(2024, 6, 1, 0, 0))
        _expense(txns, food.id, 2_500, datetime(2024, 6, 30, 23, 59))
        _expense(txns, food.id, 9_999, datetime(2024, 7, 1, 0, 0))

        budget = _monthly(session, user.id, food.id, 10_000, 6)
        assert budget.spent_cents == 4_000


def test_income_does_not_touch_budgets() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _setup(session)
        budget = _monthly(session, user.id, food.id, 10_000, 6)
        salary = CategoryService(session, user.id).create(
            CategoryIn(name="Bonus", type=TransactionType.income)
        )
        TransactionService(session, user.id).create(
            TransactionIn(
                type=TransactionType.income,
                amount=Decimal("700.00"),
                category_id=salary.id,
                date=datetime(2024, 6, 10),
            )
        )
        assert BudgetService(session, user.id).get(budget.id).spent_cents == 0


def test_update_recomputes_old_and_new_budgets() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _setup(session)
        fun = CategoryService(session, user.id).create(
            CategoryIn(name="Fun", type=TransactionType.expense)
        )
        june_food = _monthly(session, user.id, food.id, 10_000, 6)
        july_food = _monthly(session, user.id, food.id, 10_000, 7)
        june_fun = _monthly(session, user.id, fun.id, 10_000, 6)

        txns = TransactionService(session, user.id)
        txn = _expense(txns, food.id, 3_000, datetime(2024, 6, 15))

        txns.update(txn.id, TransactionUpdateIn(date=datetime(2024, 7, 2)))
        budgets = BudgetService(session, user.id)
        assert budgets.get(june_food.id).spent_cents == 0
        assert budgets.get(july_food.id).spent_cents == 3_000

        txns.update(
            txn.id,
            TransactionUpdateIn(category_id=fun.id, date=datetime(2024, 6, 3)),
        )
        assert budgets.get(july_food.id).spent_cents == 0
        assert budgets.get(june_fun.id).spent_cents == 3_000

        txns.update(txn.id, TransactionUpdateIn(amount=Decimal("42.00")))
        assert budgets.get(june_fun.id).spent_cents == 4_200


def test_delete_recomputes_budget() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _setup(session)
        budget = _monthly(session, user.id, food.id, 10_000, 6)
        txns = TransactionService(session, user.id)
        keep = _expense(txns, food.id, 1_000, datetime(2024, 6, 2))
        drop = _expense(txns, food.id, 2_000, datetime(2024, 6, 3))
        assert BudgetService(session, user.id).get(budget.id).spent_cents == 3_000

        txns.delete(drop.id)
        assert BudgetService(session, user.id).get(budget.id).spent_cents == 1_000

        txns.delete(keep.id)
        assert BudgetService(session, user.id).get(budget.id).spent_cents == 0


def test_yearly_budget_sums_whole_year() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _setup(session)
        yearly = BudgetService(session, user.id).create(
            BudgetIn(
                category_id=food.id,
                amount=Decimal("5000.00"),
                period=BudgetPeriod.yearly,
                year=2024,
            )
        )
        assert yearly.month is None

        txns = TransactionService(session, user.id)
        _expense(txns, food.id, 1_000, datetime(2024, 1, 1))
        _expense(txns, food.id, 2_000, datetime(2024, 12, 31, 23, 0))
        _expense(txns, food.id, 4_000, datetime(2025, 1, 1))

        assert BudgetService(session, user.id).get(yearly.id).spent_cents == 3_000


def test_reconcile_repairs_drifted_spent() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _setup(session)
        budget = _monthly(session, user.id, food.id, 10_000, 6)
        _expense(TransactionService(session, user.id), food.id, 2_500, datetime(2024, 6, 9))

        budget.spent_cents = 7
        session.commit()

        count = reconcile_budgets(session, [(2024, 6)])
        assert count == 1
        assert BudgetService(session, user.id).get(budget.id).spent_cents == 2_500


def test_recompute_is_scoped_per_user() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, alice_food = _setup(session)
        bob = AuthService(session).signup(
            SignupIn(name="Bob", email="bob@example.com", password="secret1")
        )
        bob_food = CategoryService(session, bob.id).create(
            CategoryIn(name="Food", type=TransactionType.expense)
        )
        alice_budget = _monthly(session, alice.id, alice_food.id, 10_000, 6)

        _expense(TransactionService(session, bob.id), bob_food.id, 5_000, datetime(2024, 6, 4))
        assert BudgetService(session, alice.id).get(alice_budget.id).spent_cents == 0
