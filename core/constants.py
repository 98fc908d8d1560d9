"""Amount and address helpers shared across the custody core.


- Amounts are decimal strings of smallest-unit integers; parse_amount turns
  them into Python ints (arbitrary precision, never float).
- SUPPORTED_TOKENS is the ERC-20 allow-list from settings.
"""

import re

from django.conf import settings
from web3 import Web3

from .exceptions import RequestValidationError, UnsupportedToken

_UINT_RE = re.compile(r"^[0-9]+$")

UINT256_MAX = 2 ** 256 - 1


def parse_amount(amount, field: str = "amount") -> int:
    """
    Parse a smallest-unit amount ("1000000") into an int. Rejects decimals,
    exponents, negatives, zero and anything above uint256.
    """
    if isinstance(amount, bool) or amount is None:
        raise RequestValidationError(f"{field} is required")
    if isinstance(amount, int):
        value = amount
    else:
        text = str(amount).strip()
        if not _UINT_RE.match(text):
            raise RequestValidationError(f"{field} must be a decimal integer string in the token's smallest unit")
        value = int(text)
    if value <= 0 or value > UINT256_MAX:
        raise RequestValidationError(f"{field} must be between 1 and 2^256-1")
    return value


def normalize_address(address, field: str = "address") -> str:
    """
    Validate a 0x address and return it lower-cased for storage and comparison.
    """
    if not address or not isinstance(address, str) or not Web3.is_address(address):
        raise RequestValidationError(f"Invalid {field}")
    return address.lower()


def supported_tokens() -> dict:
    return {addr.lower(): info for addr, info in settings.SUPPORTED_TOKENS.items()}


def token_info_for(token_contract: str) -> dict:
    """
    Allow-list lookup; raises UnsupportedToken for anything not configured.
    """
    info = supported_tokens().get((token_contract or "").lower())
    if info is None:
        raise UnsupportedToken(details={"tokenContract": token_contract})
    return info
