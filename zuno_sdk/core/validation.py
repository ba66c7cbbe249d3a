"""Input checks run before any network access, plus ether/wei helpers."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence, Union

from eth_utils import from_wei, is_address, to_checksum_address, to_wei

from .errors import ErrorCode, ValidationError

Amount = Union[str, int, float, Decimal]

UINT256_MAX = 2**256 - 1
ETHER_DECIMALS = 18

_HEX_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_DECIMAL_RE = re.compile(r"^[0-9]+$")
_HEX_QUANTITY_RE = re.compile(r"^0x[0-9a-fA-F]+$")
_BYTES32_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def validate_address(value: Any, name: str = "address") -> str:
    """Return the checksummed form of ``value`` or raise ``ValidationError``."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{name} is required", field_name=name, code=ErrorCode.INVALID_ADDRESS)
    if not _HEX_ADDRESS_RE.fullmatch(value) or not is_address(value):
        raise ValidationError(
            f"{name} is not a valid address: {value!r}",
            field_name=name,
            code=ErrorCode.INVALID_ADDRESS,
        )
    return to_checksum_address(value)


def validate_uint256(value: Any, name: str, code: ErrorCode = ErrorCode.INVALID_PARAMETER) -> str:
    """
    A uint256 given as an int, a decimal string or a 0x-hex string.

    Returns the decimal string form, e.g. ``"0x10"`` becomes ``"16"``.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required", field_name=name, code=code)
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(f"{name} must be a string or integer", field_name=name, code=code)

    if isinstance(value, int):
        number = value
    else:
        text = value.strip()
        if _DECIMAL_RE.fullmatch(text):
            number = int(text)
        elif _HEX_QUANTITY_RE.fullmatch(text):
            number = int(text, 16)
        else:
            raise ValidationError(
                f"{name} must be a decimal or 0x-hex integer: {value!r}",
                field_name=name,
                code=code,
            )

    if number < 0 or number > UINT256_MAX:
        raise ValidationError(f"{name} is outside the uint256 range", field_name=name, code=code)
    return str(number)


def validate_token_id(value: Any, name: str = "token_id") -> str:
    return validate_uint256(value, name, ErrorCode.INVALID_TOKEN_ID)


def validate_auction_id(value: Any, name: str = "auction_id") -> str:
    return validate_uint256(value, name)


def validate_listing_id(value: Any, name: str = "listing_id") -> str:
    """A bytes32 listing id as 0x-hex, at most 32 bytes."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", field_name=name)
    text = value.strip()
    if not _BYTES32_RE.fullmatch(text):
        raise ValidationError(
            f"{name} must be 0x-prefixed hex of at most 32 bytes: {value!r}",
            field_name=name,
        )
    return text


def validate_listing_ids(values: Sequence[Any], name: str = "listing_ids") -> list:
    if not values:
        raise ValidationError(f"{name} cannot be empty", field_name=name)
    return [validate_listing_id(v, name) for v in values]


def check_wei_precision(amount: Decimal, name: str) -> None:
    """Reject ether amounts finer than one wei, which would be truncated."""
    if amount.normalize().as_tuple().exponent < -ETHER_DECIMALS:
        raise ValidationError(
            f"{name} has more than {ETHER_DECIMALS} decimal places",
            field_name=name,
            code=ErrorCode.INVALID_AMOUNT,
        )


def validate_amount(value: Any, name: str = "amount") -> Decimal:
    """A strictly positive decimal amount in ether units, at least one wei."""
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError(f"{name} is required", field_name=name, code=ErrorCode.INVALID_AMOUNT)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} is not a number: {value!r}", field_name=name, code=ErrorCode.INVALID_AMOUNT)
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{name} must be greater than 0", field_name=name, code=ErrorCode.INVALID_AMOUNT)
    check_wei_precision(amount, name)
    try:
        wei = parse_ether(amount)
    except ValueError as e:
        raise ValidationError(f"{name} is out of range: {e}", field_name=name, code=ErrorCode.INVALID_AMOUNT) from e
    if wei <= 0:
        raise ValidationError(f"{name} is less than one wei", field_name=name, code=ErrorCode.INVALID_AMOUNT)
    return amount


def validate_duration(value: Any, name: str = "duration") -> int:
    """A positive whole number of seconds."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer number of seconds", field_name=name, code=ErrorCode.INVALID_DURATION)
    if value <= 0:
        raise ValidationError(f"{name} must be greater than 0", field_name=name, code=ErrorCode.INVALID_DURATION)
    return value


def validate_positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer", field_name=name)
    return value


def parse_ether(value: Amount) -> int:
    """Ether amount to wei."""
    return int(to_wei(Decimal(str(value)), "ether"))


def format_ether(wei: int) -> str:
    """Wei to an ether string without trailing zeros, e.g. ``"1.5"``."""
    amount = Decimal(from_wei(int(wei), "ether"))
    text = format(amount.normalize(), "f")
    return text if "." in text else f"{text}.0"
