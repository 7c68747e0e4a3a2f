import re
from decimal import ROUND_HALF_UP, Decimal
from io import StringIO
from typing import Sequence

from models import Transaction

CSV_HEADER = ["Date", "Type", "Category", "Description", "Amount", "Payment Method"]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^\.",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def quote_csv_value(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _csv_cell(value: str) -> str:
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return quote_csv_value(value)
    return value


def amount_to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_amount(cents: int) -> float:
    return float(Decimal(cents) / 100)


def format_amount(cents: int) -> str:
    return f"{cents / 100:.2f}"


def export_transactions(transactions: Sequence[Transaction]) -> str:
    # Description is always quoted; other cells only when they need it.
    output = StringIO()
    output.write(",".join(CSV_HEADER) + "\n")
    for txn in transactions:
        row = [
            txn.date.date().isoformat(),
            txn.type.value,
            _csv_cell(sanitize_csv_value(txn.category.name if txn.category else "")),
            quote_csv_value(sanitize_csv_value(txn.description or "")),
            format_amount(txn.amount_cents),
            txn.payment_method.value if txn.payment_method else "",
        ]
        output.write(",".join(row) + "\n")
    return output.getvalue()
