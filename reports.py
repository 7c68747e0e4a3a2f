from datetime import datetime
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from models import CurrencyCode, User, utcnow

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

CURRENCY_SYMBOLS = {
    CurrencyCode.usd: "$",
    CurrencyCode.eur: "€",
    CurrencyCode.gbp: "£",
    CurrencyCode.inr: "₹",
    CurrencyCode.jpy: "¥",
    CurrencyCode.cad: "C$",
    CurrencyCode.aud: "A$",
}


def format_currency(cents: int, currency: Optional[CurrencyCode] = None) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency or CurrencyCode.usd, "$")
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{abs(cents) / 100:,.2f}"


_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)
_env.filters["currency"] = format_currency


def render_report(
    user: User, data: dict[str, object], *, generated_at: Optional[datetime] = None
) -> str:
    template = _env.get_template("report.html")
    return template.render(
        user=user,
        currency=user.currency,
        generated_at=generated_at or utcnow(),
        **data,
    )
