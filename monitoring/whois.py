"""
WHOIS-over-HTTP probe.

The input is collapsed to its apex domain first, then looked up through
an HTTP WHOIS API keyed by ``apikey``. The response comes in one of three
shapes and is searched in this order:

1. structured ``result.expiration_date``
2. top-level ``expiration_date``
3. a raw WHOIS text blob in ``result``, searched with a regex
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from dateutil import parser as date_parser

from config.constants import Defaults, Patterns
from config.settings import Settings, get_settings
from exceptions import ConfigurationError, ProbeError
from utils.helpers import ensure_aware
from utils.logger import get_logger
from utils.validators import extract_main_domain


logger = get_logger("Whois")

EXPIRY_PATTERN = re.compile(Patterns.WHOIS_EXPIRY, re.IGNORECASE)
REGISTRAR_PATTERN = re.compile(Patterns.WHOIS_REGISTRAR, re.IGNORECASE)


@dataclass(frozen=True)
class WhoisInfo:
    domain: str
    expiry_date: datetime
    registrar: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "expiry_date": self.expiry_date.isoformat(),
            "registrar": self.registrar,
        }


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def extract_expiry(data: Dict[str, Any]) -> Optional[str]:
    """Raw expiry value from a WHOIS API payload, first shape that matches."""
    result = data.get("result")

    if isinstance(result, dict) and result.get("expiration_date"):
        return _first(result["expiration_date"])

    if data.get("expiration_date"):
        return _first(data["expiration_date"])

    if isinstance(result, str):
        match = EXPIRY_PATTERN.search(result)
        if match:
            return match.group(1).strip()

    return None


def extract_registrar(data: Dict[str, Any]) -> str:
    result = data.get("result")

    if isinstance(result, dict) and result.get("registrar"):
        return str(_first(result["registrar"]))

    if data.get("registrar"):
        return str(_first(data["registrar"]))

    if isinstance(result, str):
        match = REGISTRAR_PATTERN.search(result)
        if match and match.group(1).strip():
            return match.group(1).strip()

    return Defaults.UNKNOWN_REGISTRAR


def parse_expiry(value: Any) -> datetime:
    """Parse a WHOIS date; naive values are taken as UTC."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    return ensure_aware(date_parser.parse(str(value)))


class WhoisChecker:
    """
    Looks up registration expiry and registrar for a domain.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client
        self.api_url = self.settings.whois.api_url

    def _api_key(self) -> str:
        key = self.settings.whois.api_key
        if key is None or not key.get_secret_value():
            raise ConfigurationError(
                "WHOIS API key is not set (WHOIS_API_KEY / API_LAYER_KEY)",
                config_key="WHOIS_API_KEY",
            )
        return key.get_secret_value()

    async def lookup_whois(self, domain: str) -> WhoisInfo:
        apex = extract_main_domain(domain)
        api_key = self._api_key()

        logger.debug(f"[WHOIS] Looking up {apex} (from {domain})")

        try:
            response = await self.client.get(
                self.api_url,
                params={"domain": apex},
                headers={"apikey": api_key, "Cache-Control": "no-store"},
            )
        except httpx.HTTPError as e:
            raise ProbeError(
                str(e) or e.__class__.__name__, probe="whois", target=apex, cause=e
            ) from e

        if not response.is_success:
            body = response.text
            logger.warning(f"[WHOIS] {apex} → HTTP {response.status_code}")
            raise ProbeError(
                f"API request failed with status {response.status_code}: {body}",
                probe="whois",
                target=apex,
                details={"status_code": response.status_code, "body": body},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProbeError(
                "WHOIS API returned invalid JSON",
                probe="whois",
                target=apex,
                details={"body": response.text},
            ) from e

        if not isinstance(data, dict):
            data = {"result": data}

        raw_expiry = extract_expiry(data)
        if not raw_expiry:
            raise ProbeError(
                "Could not extract expiry date from WHOIS response",
                probe="whois",
                target=apex,
            )

        try:
            expiry_date = parse_expiry(raw_expiry)
        except (ValueError, OverflowError) as e:
            raise ProbeError(
                f"Invalid date format in WHOIS response: {raw_expiry}",
                probe="whois",
                target=apex,
            ) from e

        registrar = extract_registrar(data)
        logger.debug(f"[WHOIS] {apex} expires {expiry_date.isoformat()} ({registrar})")

        return WhoisInfo(domain=apex, expiry_date=expiry_date, registrar=registrar)
