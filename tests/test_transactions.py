import warnings
from datetime import date, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.exc import SAWarning
from sqlalchemy.orm import Session

from database import Base
from errors import Conflict, InvalidInput, NotFound
from models import PaymentMethod, TransactionType
from schemas import CategoryIn, SignupIn, TransactionIn, TransactionUpdateIn
from services import (
    AuthService,
    CategoryService,
    TransactionFilters,
    TransactionService,
)


def _setup(session: Session, email: str = "alice@example.com"):
    user = AuthService(session).signup(
        SignupIn(name="Alice", email=email, password="secret1")
    )
    categories = CategoryService(session, user.id)
    food = categories.create(CategoryIn(name="Food", type=TransactionType.expense))
    pay = categories.create(CategoryIn(name="Pay", type=TransactionType.income))
    return user, food, pay


def _add(service, category, amount, when, description=None, type=TransactionType.expense):
    return service.create(
        TransactionIn(
            type=type,
            amount=Decimal(amount) / 100,
            category_id=category.id,
            date=when,
            description=description,
        )
    )


def test_category_type_must_match() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food, pay = _setup(session)
        with pytest.raises(InvalidInput) as exc_info:
            _add(TransactionService(session, user.id), pay, 100, datetime(2024, 6, 1))
        assert str(exc_info.value) == "Category type mismatch"


def test_other_users_records_are_not_found() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        alice, alice_food, _ = _setup(session)
        bob, _, _ = _setup(session, email="bob@example.com")
        txn = _add(TransactionService(session, alice.id), alice_food, 500, datetime(2024, 6, 1))

        bob_txns = TransactionService(session, bob.id)
        with pytest.raises(NotFound):
            bob_txns.get(txn.id)
        with pytest.raises(NotFound):
            bob_txns.update(txn.id, TransactionUpdateIn(amount=Decimal("0.01")))
        with pytest.raises(NotFound):
            bob_txns.delete(txn.id)
        with pytest.raises(NotFound):
            _add(bob_txns, alice_food, 100, datetime(2024, 6, 1))

        items, total = bob_txns.list(TransactionFilters())
        assert total == 0
        assert TransactionService(session, alice.id).get(txn.id).amount_cents == 500


def test_create_defaults_and_tags() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food, _ = _setup(session)
        txn = TransactionService(session, user.id).create(
            TransactionIn(
                type=TransactionType.expense,
                amount=Decimal("12.99"),
                category_id=food.id,
                description="  Lunch  ",
                tags=["Dining", "dining", " DINING ", "work"],
            )
        )
        assert txn.description == "Lunch"
        assert txn.payment_method == PaymentMethod.cash
        assert txn.date is not None
        assert txn.tag_names == ["Dining", "work"]
        assert txn.category.name == "Food"


def test_partial_update_keeps_other_fields() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food, pay = _setup(session)
        service = TransactionService(session, user.id)
        txn = _add(service, food, 800, datetime(2024, 6, 1), "Pizza")

        updated = service.update(txn.id, TransactionUpdateIn(amount=Decimal("9.00")))
        assert updated.amount_cents == 900
        assert updated.description == "Pizza"
        assert updated.date == datetime(2024, 6, 1)

        with pytest.raises(InvalidInput):
            service.update(txn.id, TransactionUpdateIn(type=TransactionType.income))

        switched = service.update(
            txn.id,
            TransactionUpdateIn(type=TransactionType.income, category_id=pay.id),
        )
        assert switched.type == TransactionType.income
        assert switched.category.name == "Pay"

        cleared = service.update(txn.id, TransactionUpdateIn(description=None))
        assert cleared.description is None


def test_list_filters_and_pagination() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food, pay = _setup(session)
        service = TransactionService(session, user.id)
        for day in range(1, 26):
            _add(service, food, 100 * day, datetime(2024, 6, day, 12), f"Meal {day}")
        _add(service, pay, 50_000, datetime(2024, 6, 30, 23, 30), "Salary", TransactionType.income)

        items, total = service.list(TransactionFilters(), page=1, limit=20)
        assert total == 26
        assert len(items) == 20
        assert items[0].description == "Salary"

        page_two, _ = service.list(TransactionFilters(), page=2, limit=20)
        assert len(page_two) == 6

        oldest, _ = service.list(TransactionFilters(), sort="oldest", limit=1)
        assert oldest[0].description == "Meal 1"

        _, income_total = service.list(TransactionFilters(type=TransactionType.income))
        assert income_total == 1

        _, food_total = service.list(TransactionFilters(category_id=food.id))
        assert food_total == 25

        june_end, june_total = service.list(
            TransactionFilters(start_date=date(2024, 6, 25), end_date=date(2024, 6, 30))
        )
        assert june_total == 2
        assert {t.description for t in june_end} == {"Meal 25", "Salary"}

        _, search_total = service.list(TransactionFilters(search="meal 1"))
        assert search_total == 11

        _, none_total = service.list(TransactionFilters(search="100%"))
        assert none_total == 0


def test_inverted_date_range_is_invalid() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, _, _ = _setup(session)
        with pytest.raises(InvalidInput):
            TransactionService(session, user.id).list(
                TransactionFilters(start_date=date(2024, 6, 2), end_date=date(2024, 6, 1))
            )


def test_recent_returns_five_newest() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food, _ = _setup(session)
        service = TransactionService(session, user.id)
        for day in range(1, 9):
            _add(service, food, 100, datetime(2024, 5, day), f"Day {day}")

        recent = service.recent()
        assert [t.description for t in recent] == [f"Day {d}" for d in range(8, 3, -1)]


def test_category_in_use_cannot_be_deleted() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food, _ = _setup(session)
        categories = CategoryService(session, user.id)
        _add(TransactionService(session, user.id), food, 100, datetime(2024, 6, 1))

        with pytest.raises(Conflict):
            categories.delete(food.id)
        with pytest.raises(Conflict):
            categories.create(CategoryIn(name="FOOD", type=TransactionType.expense))

        spare = categories.create(CategoryIn(name="Spare", type=TransactionType.expense))
        categories.delete(spare.id)
        with pytest.raises(NotFound):
            categories.get(spare.id)


def test_create_with_tags_emits_no_sqlalchemy_warning() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food, _ = _setup(session)
        with warnings.catch_warnings():
            warnings.simplefilter("error", SAWarning)
            txn = TransactionService(session, user.id).create(
                TransactionIn(
                    type=TransactionType.expense,
                    amount=Decimal("4.50"),
                    category_id=food.id,
                    tags=["coffee", "Coffee", "work"],
                )
            )
        assert sorted(txn.tag_names) == ["coffee", "work"]
        assert txn.category.name == "Food"


def test_amounts_convert_to_cents_half_up() -> None:
    assert TransactionIn(
        type=TransactionType.expense, amount=Decimal("19.995"), category_id=1
    ).amount_cents == 2_000
    assert TransactionIn(
        type=TransactionType.expense, amount=200, category_id=1
    ).amount_cents == 20_000
    assert TransactionUpdateIn().amount_cents is None
    assert TransactionUpdateIn(amount="0.01").amount_cents == 1

    with pytest.raises(ValidationError):
        TransactionIn(type=TransactionType.expense, amount=0, category_id=1)
    with pytest.raises(ValidationError):
        TransactionIn(type=TransactionType.expense, amount="0.004", category_id=1)
