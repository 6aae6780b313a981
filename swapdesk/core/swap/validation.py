"""Typed-amount parsing and the inline input errors of the swap form."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Optional

from ...services.address import is_valid_evm_address
from .constants import (
    ERROR_ENTER_AMOUNT,
    ERROR_INSUFFICIENT_BALANCE_TEMPLATE,
    ERROR_INVALID_RECIPIENT,
    ERROR_SELECT_TOKEN,
)
from .models import SwapEnvironment, TokenAmount

# Digits with at most one decimal point; a bare "." parses as zero
_AMOUNT_PATTERN = re.compile(r"\d*\.?\d*")


def parse_amount(value: Optional[str], decimals: Optional[int] = None) -> Optional[Decimal]:
    """
    Parse what the user typed into an amount field.

    A comma is read as the decimal separator, so "1,5" is 1.5. Returns None
    for empty or malformed input (signs, exponents, grouping, more than one
    separator) and for amounts finer than ``decimals`` fractional digits.
    """
    if value is None:
        return None
    cleaned = value.strip().replace(",", ".")
    if not cleaned or not _AMOUNT_PATTERN.fullmatch(cleaned):
        return None
    amount = Decimal(cleaned if cleaned != "." else "0")
    if decimals is not None and amount.normalize().as_tuple().exponent < -decimals:
        return None
    return amount


def derive_input_error(
    environment: SwapEnvironment,
    parsed_amount: Optional[Decimal],
    amount_in: Optional[TokenAmount],
) -> Optional[str]:
    """
    First user-correctable problem with the form, or None.

    ``amount_in`` is what the swap will actually spend (the slippage-adjusted
    maximum when the trade has one) and is checked against the balance.
    """
    if environment.input_token is None or environment.output_token is None:
        return ERROR_SELECT_TOKEN

    if parsed_amount is None or parsed_amount <= 0:
        return ERROR_ENTER_AMOUNT

    if environment.recipient is not None:
        resolved = environment.recipient_address or environment.recipient
        if not is_valid_evm_address(resolved):
            return ERROR_INVALID_RECIPIENT

    if (
        environment.input_balance is not None
        and amount_in is not None
        and amount_in.amount > environment.input_balance
    ):
        return ERROR_INSUFFICIENT_BALANCE_TEMPLATE.format(symbol=amount_in.token.symbol)

    return None


def max_amount_spend(balance: Optional[TokenAmount], native_reserve: Decimal) -> Optional[Decimal]:
    """Largest amount worth typing in: the full balance, less a gas reserve for native tokens."""
    if balance is None:
        return None
    if not balance.token.is_native:
        return balance.amount
    if balance.amount > native_reserve:
        return balance.amount - native_reserve
    return Decimal("0")
