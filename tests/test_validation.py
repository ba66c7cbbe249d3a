from decimal import Decimal

import pytest

from zuno_sdk.core.errors import ErrorCode, ValidationError
from zuno_sdk.core.validation import (
    format_ether,
    parse_ether,
    validate_address,
    validate_amount,
    validate_auction_id,
    validate_duration,
    validate_listing_id,
    validate_listing_ids,
    validate_token_id,
)


def test_address_is_checksummed():
    lower = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
    assert validate_address(lower) == "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


@pytest.mark.parametrize("value", ["", None, "0x123", "not-an-address", "5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"])
def test_bad_addresses_are_rejected(value):
    with pytest.raises(ValidationError) as excinfo:
        validate_address(value, "collection_address")
    assert excinfo.value.code == ErrorCode.INVALID_ADDRESS
    assert excinfo.value.field_name == "collection_address"


def test_bad_checksum_is_rejected():
    with pytest.raises(ValidationError):
        validate_address("0x5AAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")


@pytest.mark.parametrize("value", ["0", 0, "-1", "abc", None, "", True, "NaN"])
def test_amount_must_be_positive_number(value):
    with pytest.raises(ValidationError) as excinfo:
        validate_amount(value, "price")
    assert excinfo.value.code == ErrorCode.INVALID_AMOUNT


def test_amount_accepts_strings_and_numbers():
    assert validate_amount("1.5") == Decimal("1.5")
    assert validate_amount(2) == Decimal("2")
    assert validate_amount("0.000000000000000001") == Decimal("1E-18")


@pytest.mark.parametrize("value", ["0.0000000000000000001", "1.0000000000000000001", Decimal("1E-19")])
def test_amount_finer_than_one_wei_is_rejected(value):
    with pytest.raises(ValidationError) as excinfo:
        validate_amount(value, "price")
    assert excinfo.value.field_name == "price"


@pytest.mark.parametrize("value", [0, -5, 1.5, "86400", True, None])
def test_duration_must_be_positive_int(value):
    with pytest.raises(ValidationError) as excinfo:
        validate_duration(value)
    assert excinfo.value.code == ErrorCode.INVALID_DURATION


def test_token_id_normalized_to_decimal_string():
    assert validate_token_id(7) == "7"
    assert validate_token_id(" 42 ") == "42"
    assert validate_token_id("0x10") == "16"
    assert validate_token_id(2**256 - 1) == str(2**256 - 1)


@pytest.mark.parametrize("value", ["", "   ", None, -1, "-1", 1.0, "1.5", "abc", "0x", "0xzz", 2**256, hex(2**256)])
def test_token_id_must_be_uint256(value):
    with pytest.raises(ValidationError) as excinfo:
        validate_token_id(value)
    assert excinfo.value.code == ErrorCode.INVALID_TOKEN_ID


def test_auction_id_is_uint256():
    assert validate_auction_id("3") == "3"
    with pytest.raises(ValidationError) as excinfo:
        validate_auction_id("three")
    assert excinfo.value.field_name == "auction_id"


def test_listing_id_is_short_hex():
    assert validate_listing_id("0x" + "ab" * 32) == "0x" + "ab" * 32
    assert validate_listing_id("0x01") == "0x01"
    for bad in ("", None, 7, "01", "0x", "0x" + "ab" * 33, "0xnothex"):
        with pytest.raises(ValidationError):
            validate_listing_id(bad)


def test_listing_id_list_must_not_be_empty():
    with pytest.raises(ValidationError):
        validate_listing_ids([])
    with pytest.raises(ValidationError):
        validate_listing_ids(["0x01", 2])
    assert validate_listing_ids(["0x01", "0x02"]) == ["0x01", "0x02"]


def test_ether_conversion():
    assert parse_ether("1.0") == 10**18
    assert parse_ether("0.000000000000000001") == 1
    assert format_ether(1_500_000_000_000_000_000) == "1.5"
    assert format_ether(10 * 10**18) == "10.0"
    assert format_ether(0) == "0.0"
