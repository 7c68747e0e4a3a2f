from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from csv_utils import export_transactions, format_amount, sanitize_csv_value
from database import Base
from models import CurrencyCode, PaymentMethod, TransactionType
from reports import format_currency, render_report
from schemas import CategoryIn, SignupIn, TransactionIn
from services import (
    AuthService,
    CategoryService,
    ReportService,
    TransactionFilters,
    TransactionService,
)


def _seed(session: Session):
    user = AuthService(session).signup(
        SignupIn(
            name="Alice",
            email="alice@example.com",
            password="secret1",
            currency=CurrencyCode.eur,
        )
    )
    categories = CategoryService(session, user.id)
    food = categories.create(CategoryIn(name="Food, Drinks", type=TransactionType.expense))
    pay = categories.create(CategoryIn(name="Pay", type=TransactionType.income))
    txns = TransactionService(session, user.id)
    txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=Decimal("12.50"),
            category_id=food.id,
            description='Dinner at "Luigi\'s"',
            date=datetime(2024, 6, 2, 19, 30),
            payment_method=PaymentMethod.card,
        )
    )
    txns.create(
        TransactionIn(
            type=TransactionType.income,
            amount=Decimal("3000.00"),
            category_id=pay.id,
            description="=HYPERLINK(\"x\")",
            date=datetime(2024, 6, 28),
            payment_method=PaymentMethod.bank_transfer,
        )
    )
    txns.create(
        TransactionIn(
            type=TransactionType.expense,
            amount=Decimal("0.99"),
            category_id=food.id,
            date=datetime(2024, 5, 1),
        )
    )
    return user, food


def test_csv_layout() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, _ = _seed(session)
        csv_text = ReportService(session, user.id).export_csv(
            TransactionFilters(start_date=date(2024, 6, 1), end_date=date(2024, 6, 30))
        )

    lines = csv_text.splitlines()
    assert lines[0] == "Date,Type,Category,Description,Amount,Payment Method"
    assert len(lines) == 3
    assert lines[1] == '2024-06-28,income,Pay,"\t=HYPERLINK(""x"")",3000.00,bank_transfer'
    assert lines[2] == (
        '2024-06-02,expense,"Food, Drinks","Dinner at ""Luigi\'s""",12.50,card'
    )


def test_csv_filters_by_type_and_quotes_empty_description() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, food = _seed(session)
        csv_text = ReportService(session, user.id).export_csv(
            TransactionFilters(type=TransactionType.expense, category_id=food.id)
        )

    lines = csv_text.splitlines()
    assert len(lines) == 3
    assert lines[-1] == '2024-05-01,expense,"Food, Drinks","",0.99,cash'


def test_csv_helpers() -> None:
    assert format_amount(5) == "0.05"
    assert format_amount(123_456) == "1234.56"
    assert sanitize_csv_value("+1 555") == "\t+1 555"
    assert sanitize_csv_value("  plain  ") == "plain"
    assert export_transactions([]) == "Date,Type,Category,Description,Amount,Payment Method\n"


def test_html_report_contains_totals() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, _ = _seed(session)
        data = ReportService(session, user.id).gather_data(
            TransactionFilters(start_date=date(2024, 6, 1), end_date=date(2024, 6, 30))
        )
        html = render_report(user, data, generated_at=datetime(2024, 7, 1, 8, 0))

    assert data["transaction_count"] == 2
    assert data["balance_cents"] == 298_750
    assert "Financial Report" in html
    assert "Alice" in html
    assert "€2,987.50" in html
    assert "Dinner at &#34;Luigi&#39;s&#34;" in html
    assert "2024-06-01 to 2024-06-30" in html


def test_format_currency_symbols() -> None:
    assert format_currency(1_250) == "$12.50"
    assert format_currency(-99, CurrencyCode.gbp) == "-£0.99"
    assert format_currency(1_000_000, CurrencyCode.inr) == "₹10,000.00"
