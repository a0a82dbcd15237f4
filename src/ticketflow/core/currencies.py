from __future__ import annotations

from dataclasses import dataclass

from ticketflow.core.decimals import DISPLAY_PLACES, Number, round_to
from ticketflow.core.errors import UnsupportedCurrency


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    symbol: str
    name: str
    locale: str
    group_separator: str
    decimal_separator: str
    symbol_after: bool


SUPPORTED_CURRENCIES: dict[str, CurrencyInfo] = {
    "EUR": CurrencyInfo(
        code="EUR",
        symbol="€",
        name="Euro",
        locale="es-ES",
        group_separator=".",
        decimal_separator=",",
        symbol_after=True,
    ),
    "USD": CurrencyInfo(
        code="USD",
        symbol="$",
        name="US Dollar",
        locale="en-US",
        group_separator=",",
        decimal_separator=".",
        symbol_after=False,
    ),
    "GBP": CurrencyInfo(
        code="GBP",
        symbol="£",
        name="British Pound",
        locale="en-GB",
        group_separator=",",
        decimal_separator=".",
        symbol_after=False,
    ),
}


def is_valid_currency_code(code: object) -> bool:
    return isinstance(code, str) and code in SUPPORTED_CURRENCIES


def normalize_currency(raw: str | None) -> str | None:
    if not raw:
        return None
    code = raw.strip().upper()
    return code if is_valid_currency_code(code) else None


def _info(code: str) -> CurrencyInfo:
    info = SUPPORTED_CURRENCIES.get(code) if isinstance(code, str) else None
    if info is None:
        raise UnsupportedCurrency(f"Unsupported currency: {code!r}")
    return info


def currency_symbol(code: str) -> str:
    return _info(code).symbol


def currency_name(code: str) -> str:
    return _info(code).name


def _group_digits(digits: str, separator: str) -> str:
    out: list[str] = []
    while len(digits) > 3:
        out.insert(0, digits[-3:])
        digits = digits[:-3]
    out.insert(0, digits)
    return separator.join(out)


def _render_number(amount: Number, info: CurrencyInfo, decimals: int) -> tuple[bool, str]:
    value = round_to(amount, decimals)
    negative = value < 0
    text = format(abs(value), "f")
    whole, _, frac = text.partition(".")
    rendered = _group_digits(whole, info.group_separator)
    if decimals > 0:
        rendered += info.decimal_separator + frac.ljust(decimals, "0")[:decimals]
    return negative, rendered


def format_amount(amount: Number, code: str) -> str:
    """
    Render an amount for display with exactly two fractional digits.

    Callers holding untrusted codes must check `is_valid_currency_code` first;
    anything outside the table raises `UnsupportedCurrency`.
    """
    info = _info(code)
    negative, number = _render_number(amount, info, DISPLAY_PLACES)
    sign = "-" if negative else ""
    if info.symbol_after:
        return f"{sign}{number} {info.symbol}"
    return f"{sign}{info.symbol}{number}"


def format_decimal(amount: Number, *, decimals: int = DISPLAY_PLACES, code: str = "EUR") -> str:
    negative, number = _render_number(amount, _info(code), decimals)
    return f"-{number}" if negative else number
