import pytest

from exceptions import InvalidFormatError, InvalidURLError
from utils.validators import (
    extract_main_domain,
    is_ipv4,
    is_valid_domain,
    is_valid_phone,
    is_valid_url,
    require_phone,
    require_url
)


@pytest.mark.parametrize("value, expected", [
    ("https://www.blog.example.co.uk/path?x=1", "example.co.uk"),
    ("example.com", "example.com"),
    ("203.0.113.5", "203.0.113.5"),
    ("https://shop.example.com:8443/cart", "example.com"),
    ("WWW.Example.COM.", "example.com"),
    ("http://user@api.eu.example.org#top", "example.org"),
    ("localhost", "localhost"),
])
def test_extract_main_domain(value, expected):
    assert extract_main_domain(value) == expected


def test_url_validation():
    assert is_valid_url("https://example.com")
    assert is_valid_url("http://example.com/health?full=1")
    assert not is_valid_url("example.com")
    assert not is_valid_url("ftp://example.com")
    assert not is_valid_url("")


def test_require_url_reports_missing_scheme():
    with pytest.raises(InvalidURLError) as exc_info:
        require_url("example.com")
    assert exc_info.value.details["reason"] == "no_scheme"


def test_domain_and_ip_validation():
    assert is_valid_domain("example.com")
    assert is_valid_domain("blog.example.co.uk")
    assert not is_valid_domain("https://example.com")
    assert not is_valid_domain("example")
    assert is_ipv4("203.0.113.5")
    assert not is_ipv4("203.0.113.256")


@pytest.mark.parametrize("phone, valid", [
    ("+919876543210", True),
    ("+14155550123", True),
    ("919876543210", False),
    ("+0123456789", False),
    ("+1234567890123456", False),
])
def test_phone_validation(phone, valid):
    assert is_valid_phone(phone) is valid


def test_require_phone_raises_with_example():
    with pytest.raises(InvalidFormatError) as exc_info:
        require_phone("12345")
    assert "E.164" in exc_info.value.message
    assert exc_info.value.http_status == 400
