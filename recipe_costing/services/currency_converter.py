"""
Currency conversion against a base-currency rate table.

A rate table maps a currency code to "units of that currency per 1 unit of
the base currency". Converting normalises the amount into the base currency
(amount / rate[from]) and then into the target (* rate[to]).

Invariant: the base currency's own rate is 1. A table that states anything
else for the base is rejected; moving to another base means remapping every
rate (see rebase_rate_table), never overriding one entry.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from recipe_costing.services.exceptions import MissingExchangeRateError, ValidationError
from recipe_costing.utils.constants import CURRENCIES, CURRENCY_DECIMAL_PLACES

ONE = Decimal("1")


def normalize_currency_code(code: str) -> str:
    """Upper-case and trim a currency code ("eur " -> "EUR")."""
    return code.strip().upper()


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number to Decimal without float artefacts.

    Floats go through str() so 0.92 becomes Decimal("0.92"), not its binary
    expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def normalize_rate_table(base_currency: str, rates: Mapping[str, Any]) -> Dict[str, Decimal]:
    """
    Build a clean rate table relative to base_currency.

    Args:
        base_currency: Currency the rates are expressed against
        rates: Mapping of currency code to rate (numbers or numeric strings)

    Returns:
        Dict of upper-cased code to Decimal rate, with the base at 1

    Raises:
        ValidationError: If a rate is not a positive number, or the table
            states a base rate other than 1
    """
    base = normalize_currency_code(base_currency)
    errors = []
    table: Dict[str, Decimal] = {}

    for code, raw_rate in rates.items():
        norm = normalize_currency_code(code)
        try:
            rate = to_decimal(raw_rate)
        except (InvalidOperation, TypeError, ValueError):
            errors.append(f"Exchange rate for {norm} is not a number: {raw_rate!r}")
            continue
        if rate <= 0:
            errors.append(f"Exchange rate for {norm} must be greater than zero")
            continue
        if norm == base and rate != ONE:
            errors.append(
                f"Base currency {base} must have rate 1 (got {rate}); "
                f"rebase the whole table instead"
            )
            continue
        table[norm] = rate

    if errors:
        raise ValidationError(errors)

    table[base] = ONE
    return table


def _lookup_rate(
    code: str, rates: Mapping[str, Any], base_currency: Optional[str]
) -> Decimal:
    if base_currency is not None and code == normalize_currency_code(base_currency):
        return ONE
    for key in (code, code.lower()):
        if key in rates and rates[key] is not None:
            return to_decimal(rates[key])
    raise MissingExchangeRateError(code, base_currency)


def convert_currency(
    amount: Any,
    from_currency: str,
    to_currency: str,
    rates: Mapping[str, Any],
    base_currency: Optional[str] = None,
) -> Decimal:
    """
    Convert an amount between two currencies.

    Args:
        amount: Amount in from_currency
        from_currency: Source currency code
        to_currency: Target currency code
        rates: Mapping of code to units per 1 base unit
        base_currency: Base of the table. When given, its rate is taken as 1
            even if the table omits it.

    Returns:
        Amount in to_currency as Decimal. When the codes are equal the amount
        is returned unchanged and the table is not consulted.

    Raises:
        MissingExchangeRateError: If either currency has no rate

    Example:
        >>> convert_currency(Decimal("50"), "EUR", "USD", {"EUR": Decimal("0.92")}, "USD")
        Decimal('54.34782608695652173913043478')
    """
    from_code = normalize_currency_code(from_currency)
    to_code = normalize_currency_code(to_currency)

    if from_code == to_code:
        return to_decimal(amount)

    from_rate = _lookup_rate(from_code, rates, base_currency)
    to_rate = _lookup_rate(to_code, rates, base_currency)

    amount_in_base = to_decimal(amount) / from_rate
    return amount_in_base * to_rate


def rebase_rate_table(
    rates: Mapping[str, Any], old_base: str, new_base: str
) -> Dict[str, Decimal]:
    """
    Remap a whole rate table onto a new base currency.

    Every rate is divided by the new base's old rate, so the new base ends
    up at exactly 1 and all cross rates are preserved.

    Raises:
        MissingExchangeRateError: If the new base has no rate in the table
    """
    table = normalize_rate_table(old_base, rates)
    new_code = normalize_currency_code(new_base)
    if new_code not in table:
        raise MissingExchangeRateError(new_code, old_base)
    pivot = table[new_code]
    rebased = {code: rate / pivot for code, rate in table.items()}
    rebased[new_code] = ONE
    return rebased


def default_rate_table() -> Dict[str, Decimal]:
    """Built-in USD-based rates from the currency catalogue."""
    return {code: Decimal(str(info["rate"])) for code, info in CURRENCIES.items()}


def format_currency_amount(amount: Any, currency: str) -> str:
    """
    Format an amount with the currency symbol, e.g. "$12.50" or "12.50 GBP".
    """
    code = normalize_currency_code(currency)
    value = to_decimal(amount)
    info = CURRENCIES.get(code)
    if info is None:
        return f"{value:.{CURRENCY_DECIMAL_PLACES}f} {code}"
    places = info.get("decimal_places", CURRENCY_DECIMAL_PLACES)
    return f"{info['symbol']}{value:,.{places}f}"
