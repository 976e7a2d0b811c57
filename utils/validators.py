"""
============================================================================
DOMAIN HEALTH MONITOR - VALIDATORS UTILITY
============================================================================
Validation for uptime URLs, bare hosts, IPv4 literals, phone numbers and
email recipients, plus apex-domain extraction for WHOIS lookups.
============================================================================
"""

import ipaddress
import re
from typing import Optional
from urllib.parse import urlparse

import validators as external_validators

from config.constants import MULTI_LABEL_SUFFIXES, Patterns
from exceptions import InvalidDomainError, InvalidFormatError, InvalidURLError
from utils.logger import get_logger


logger = get_logger("Validators")


# ============================================================================
# URL VALIDATORS
# ============================================================================

class URLValidator:
    """
    URL and host validation.
    """

    URL_PATTERN = re.compile(Patterns.URL, re.IGNORECASE)
    DOMAIN_PATTERN = re.compile(Patterns.DOMAIN)
    IPV4_PATTERN = re.compile(Patterns.IP_ADDRESS)

    @staticmethod
    def is_valid_url(url: str) -> bool:
        """
        Check that ``url`` is an absolute http(s) URL with a host.

        Args:
            url: URL to validate

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(url, str) or not URLValidator.URL_PATTERN.match(url.strip()):
            return False

        # validators returns a falsy ValidationError instead of raising
        return external_validators.url(url.strip()) is True

    @staticmethod
    def is_valid_domain(domain: str) -> bool:
        """Check that ``domain`` is a bare host (no scheme, path or port)."""
        if not isinstance(domain, str) or not domain:
            return False
        if URLValidator.is_ipv4(domain):
            return True
        if not URLValidator.DOMAIN_PATTERN.match(domain):
            return False
        return external_validators.domain(domain) is True

    @staticmethod
    def is_ipv4(value: str) -> bool:
        if not isinstance(value, str) or not URLValidator.IPV4_PATTERN.match(value):
            return False
        try:
            ipaddress.IPv4Address(value)
        except ValueError:
            return False
        return True

    @staticmethod
    def hostname(url: str) -> Optional[str]:
        """Host part of a URL, lower-cased."""
        parsed = urlparse(url if "://" in url else f"//{url}")
        return parsed.hostname


def is_valid_url(url: str) -> bool:
    return URLValidator.is_valid_url(url)


def is_valid_domain(domain: str) -> bool:
    return URLValidator.is_valid_domain(domain)


def is_ipv4(value: str) -> bool:
    return URLValidator.is_ipv4(value)


# ============================================================================
# RECIPIENT VALIDATORS
# ============================================================================

E164_PATTERN = re.compile(Patterns.E164_PHONE)


def is_valid_phone(phone: str) -> bool:
    """E.164 format: a leading +, then up to 15 digits."""
    return isinstance(phone, str) and bool(E164_PATTERN.match(phone))


def is_valid_email(email: str) -> bool:
    return isinstance(email, str) and external_validators.email(email) is True


# ============================================================================
# GUARDS (raise instead of returning bool)
# ============================================================================

def require_url(url: str) -> str:
    if not isinstance(url, str) or not url.strip():
        raise InvalidURLError(url=url, reason="no_host")
    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        raise InvalidURLError(url=url, reason="no_scheme")
    if not is_valid_url(url):
        raise InvalidURLError(url=url)
    return url


def require_domain(domain: str) -> str:
    if not is_valid_domain(domain):
        logger.debug(f"[Validators] Rejected domain {domain!r}")
        raise InvalidDomainError(domain=domain)
    return domain.lower()


def require_phone(phone: str) -> str:
    if not is_valid_phone(phone):
        raise InvalidFormatError(
            "Invalid phone number format. Must be in E.164 format (e.g., +919876543210)",
            field="phoneNumber",
            expected_format="E.164",
            example="+919876543210",
        )
    return phone


def require_email(email: str) -> str:
    if not is_valid_email(email):
        raise InvalidFormatError(
            "Invalid email address",
            field="email",
            expected_format="name@example.com",
        )
    return email.strip().lower()


# ============================================================================
# APEX DOMAIN EXTRACTION
# ============================================================================

SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.-]*://")


def extract_main_domain(value: str) -> str:
    """
    Collapse a URL or host to the registrable (apex) domain.

    Scheme, leading ``www.``, path/query/fragment and port are removed.
    IPv4 literals and names with at most two labels are returned as-is;
    otherwise the last two labels are kept, or three when the last two
    form a known multi-label suffix such as ``co.uk``.

    >>> extract_main_domain("https://www.blog.example.co.uk/path?x=1")
    'example.co.uk'
    """
    host = value.strip().lower()
    host = SCHEME_PATTERN.sub("", host)
    host = re.split(r"[/?#]", host, maxsplit=1)[0]
    host = host.split("@")[-1]
    host = host.split(":")[0]
    host = host.rstrip(".")

    if host.startswith("www."):
        host = host[4:]

    if is_ipv4(host):
        return host

    labels = host.split(".")
    if len(labels) <= 2:
        return host

    suffix = ".".join(labels[-2:])
    if suffix in MULTI_LABEL_SUFFIXES:
        return ".".join(labels[-3:])

    return suffix
