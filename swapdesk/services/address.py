"""Helpers for validating and comparing wallet addresses."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


@lru_cache(maxsize=256)
def is_valid_evm_address(address: str) -> bool:
    if not address:
        return False
    return bool(_EVM_ADDRESS_RE.fullmatch(address.strip()))


def normalize_address(address: Optional[str]) -> Optional[str]:
    """Lowercase an EVM address for comparisons; None for anything invalid."""

    if not address or not is_valid_evm_address(address):
        return None
    return address.strip().lower()


def addresses_equal(left: Optional[str], right: Optional[str]) -> bool:
    normalized_left = normalize_address(left)
    return normalized_left is not None and normalized_left == normalize_address(right)


__all__ = [
    "is_valid_evm_address",
    "normalize_address",
    "addresses_equal",
]
