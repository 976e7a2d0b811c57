"""
============================================================================
DOMAIN HEALTH MONITOR - PROBE LAYER
============================================================================
Low-level network probes. Each performs exactly one kind of observation
and knows nothing about persistence or alerting.

Architecture
------------
Probes                      ← bundle handed to the check orchestrators
├── HTTPChecker             ← HEAD (GET fallback) via httpx, timed
├── SSLChecker              ← ordered certificate strategies
│   ├── tls-handshake       ← raw TLS, verification off, DER via cryptography
│   └── ssl-info-api        ← HTTPS certificate-info API
├── DNSChecker              ← dnspython async resolver: A, MX, NS
└── WhoisChecker            ← WHOIS-over-HTTP (monitoring/whois.py)

Every probe is bounded by MONITOR_REQUEST_TIMEOUT.
============================================================================
"""

import asyncio
import ssl
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import dns.asyncresolver
import dns.exception
import dns.resolver
import httpx
from cryptography import x509
from cryptography.x509.oid import NameOID
from dateutil import parser as date_parser

from config.constants import Defaults, SslStrategy
from config.settings import Settings, get_settings
from exceptions import ProbeError
from monitoring.whois import WhoisChecker
from utils.helpers import ensure_aware
from utils.logger import get_logger


logger = get_logger("Probes")


# ============================================================================
# PROBE RESULT OBJECTS
# ============================================================================

@dataclass(frozen=True)
class UptimeProbe:
    """Outcome of one HTTP availability probe."""

    up: bool
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    method: str = "HEAD"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "up": self.up,
            "response_time_ms": self.response_time_ms,
            "status_code": self.status_code,
            "error": self.error,
            "method": self.method,
        }


@dataclass(frozen=True)
class CertificateInfo:
    """Expiry and issuer of a TLS certificate, plus the strategy that read it."""

    valid_to: datetime
    issuer: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid_to": self.valid_to.isoformat(),
            "issuer": self.issuer,
            "source": self.source,
        }


@dataclass(frozen=True)
class DnsRecords:
    """Resolved A, MX and NS records. ``ipv4`` is never empty."""

    ipv4: List[str]
    mx: List[Dict[str, Any]] = field(default_factory=list)
    ns: List[str] = field(default_factory=list)

    @property
    def primary_ip(self) -> Optional[str]:
        return self.ipv4[0] if self.ipv4 else None

    def to_dict(self) -> Dict[str, Any]:
        return {"ipv4": list(self.ipv4), "mx": list(self.mx), "ns": list(self.ns)}


def _error_text(exc: BaseException) -> str:
    """Exception message verbatim, or its class name when the message is empty."""
    return str(exc) or exc.__class__.__name__


# ============================================================================
# HTTP CHECKER
# ============================================================================

class HTTPChecker:
    """
    Measures HTTP availability of a URL.

    A HEAD request follows redirects and bypasses caches; the target is
    up iff the final status is below 400. Targets answering HEAD with
    405/501 get a single GET when the fallback is enabled.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client
        self.fallback_to_get = self.settings.monitoring.head_fallback_to_get
        self.headers = {
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "User-Agent": self.settings.monitoring.user_agent,
        }

    async def _timed_request(self, method: str, url: str) -> Tuple[int, int]:
        """Return (status, elapsed ms) measured until response headers arrive."""
        start_time = time.perf_counter()
        async with self.client.stream(
            method,
            url,
            headers=self.headers,
            follow_redirects=True,
        ) as response:
            elapsed_ms = int(round((time.perf_counter() - start_time) * 1000))
            return response.status_code, elapsed_ms

    async def check_uptime(self, url: str) -> UptimeProbe:
        method = "HEAD"
        try:
            status, elapsed_ms = await self._timed_request(method, url)

            if status in Defaults.HEAD_FALLBACK_STATUSES and self.fallback_to_get:
                logger.debug(f"[HTTP] {url} rejected HEAD ({status}), retrying with GET")
                method = "GET"
                status, elapsed_ms = await self._timed_request(method, url)

        except httpx.HTTPError as e:
            logger.debug(f"[HTTP] {url} → {e.__class__.__name__}: {e}")
            return UptimeProbe(up=False, error=_error_text(e), method=method)

        up = status < 400
        logger.debug(f"[HTTP] {url} → {status} in {elapsed_ms}ms")

        return UptimeProbe(
            up=up,
            response_time_ms=elapsed_ms,
            status_code=status,
            error=None if up else f"Status code: {status}",
            method=method,
        )


# ============================================================================
# SSL CHECKER
# ============================================================================

def parse_certificate(der: bytes) -> Tuple[datetime, str]:
    """
    Decode a DER certificate into (notAfter, issuer organisation).

    Issuer falls back to the common name, then to "Unknown".
    """
    cert = x509.load_der_x509_certificate(der)

    issuer = Defaults.UNKNOWN_ISSUER
    for oid in (NameOID.ORGANIZATION_NAME, NameOID.COMMON_NAME):
        attributes = cert.issuer.get_attributes_for_oid(oid)
        if attributes:
            issuer = str(attributes[0].value)
            break

    return cert.not_valid_after_utc, issuer


class SSLChecker:
    """
    Reads the certificate a host presents on port 443.

    Strategies run in order; the first success wins. Each failure is
    kept as a (strategy, reason) pair so the final ProbeError explains
    every attempt.
    """

    def __init__(self, client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client
        self.timeout = self.settings.monitoring.request_timeout
        self.api_url = self.settings.whois.ssl_info_api_url

        self.strategies: List[Tuple[str, Callable[[str], Awaitable[CertificateInfo]]]] = [
            (SslStrategy.TLS_HANDSHAKE.value, self._from_tls_handshake),
            (SslStrategy.SSL_INFO_API.value, self._from_ssl_info_api),
        ]

    async def _fetch_der(self, host: str) -> Optional[bytes]:
        # Verification is off on purpose: expired and self-signed certs must be readable
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        _, writer = await asyncio.wait_for(
            asyncio.open_connection(
                host,
                Defaults.TLS_PORT,
                ssl=context,
                server_hostname=host,
            ),
            timeout=self.timeout,
        )
        try:
            ssl_object = writer.get_extra_info("ssl_object")
            return ssl_object.getpeercert(binary_form=True) if ssl_object else None
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (OSError, ssl.SSLError):
                logger.debug(f"[SSL] {host} close after handshake was not clean")

    async def _from_tls_handshake(self, host: str) -> CertificateInfo:
        try:
            der = await self._fetch_der(host)
        except asyncio.TimeoutError:
            raise ProbeError("Connection timeout", probe="ssl", target=host) from None
        except (OSError, ssl.SSLError) as e:
            raise ProbeError(_error_text(e), probe="ssl", target=host, cause=e) from e

        if not der:
            raise ProbeError(
                "Could not get certificate expiry date", probe="ssl", target=host
            )

        try:
            valid_to, issuer = parse_certificate(der)
        except ValueError as e:
            raise ProbeError(
                f"Could not parse certificate: {e}", probe="ssl", target=host, cause=e
            ) from e

        return CertificateInfo(
            valid_to=valid_to,
            issuer=issuer,
            source=SslStrategy.TLS_HANDSHAKE.value,
        )

    async def _from_ssl_info_api(self, host: str) -> CertificateInfo:
        try:
            response = await self.client.get(self.api_url, params={"host": host})
        except httpx.HTTPError as e:
            raise ProbeError(_error_text(e), probe="ssl", target=host, cause=e) from e

        if not response.is_success:
            raise ProbeError(
                f"API request failed with status {response.status_code}",
                probe="ssl",
                target=host,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProbeError("SSL info API returned invalid JSON", probe="ssl", target=host) from e

        if not isinstance(data, dict) or not data.get("valid") or not data.get("expiry"):
            raise ProbeError(
                "Invalid SSL certificate or missing expiry data", probe="ssl", target=host
            )

        try:
            valid_to = ensure_aware(date_parser.parse(str(data["expiry"])))
        except (ValueError, OverflowError) as e:
            raise ProbeError(
                f"Invalid expiry date from SSL info API: {data['expiry']}",
                probe="ssl",
                target=host,
            ) from e

        return CertificateInfo(
            valid_to=valid_to,
            issuer=str(data.get("issuer") or Defaults.UNKNOWN_ISSUER),
            source=SslStrategy.SSL_INFO_API.value,
        )

    async def check_certificate(self, host: str) -> CertificateInfo:
        failures: List[Tuple[str, str]] = []
        last_error: Optional[ProbeError] = None

        for name, strategy in self.strategies:
            try:
                info = await strategy(host)
            except ProbeError as e:
                logger.debug(f"[SSL] {host} strategy {name} failed: {e.message}")
                failures.append((name, e.message))
                last_error = e
                continue

            logger.debug(f"[SSL] {host} → expires {info.valid_to.isoformat()} via {name}")
            return info

        raise ProbeError(
            last_error.message if last_error else "No certificate strategy configured",
            probe="ssl",
            target=host,
            strategy_errors=failures,
        )


# ============================================================================
# DNS CHECKER
# ============================================================================

class DNSChecker:
    """
    Resolves A records (required) plus MX and NS (best effort).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        resolver: Optional[dns.asyncresolver.Resolver] = None
    ):
        self.settings = settings or get_settings()
        self._resolver = resolver

    @property
    def resolver(self) -> dns.asyncresolver.Resolver:
        # Built lazily: reading resolv.conf fails on hosts without one
        if self._resolver is None:
            self._resolver = dns.asyncresolver.Resolver()
        self._resolver.lifetime = self.settings.monitoring.request_timeout
        return self._resolver

    async def resolve_dns(self, host: str) -> DnsRecords:
        try:
            answer = await self.resolver.resolve(host, "A")
        except dns.resolver.NXDOMAIN:
            raise ProbeError(f"Domain {host} does not exist (NXDOMAIN)", probe="dns", target=host) from None
        except dns.resolver.NoAnswer:
            raise ProbeError(f"No A record for {host}", probe="dns", target=host) from None
        except dns.exception.Timeout:
            raise ProbeError(f"DNS resolution for {host} timed out", probe="dns", target=host) from None
        except dns.exception.DNSException as e:
            raise ProbeError(_error_text(e), probe="dns", target=host, cause=e) from e

        ipv4 = [rdata.address for rdata in answer]
        if not ipv4:
            raise ProbeError(f"No A record for {host}", probe="dns", target=host)

        mx: List[Dict[str, Any]] = []
        try:
            mx_answer = await self.resolver.resolve(host, "MX")
            mx = [
                {"priority": int(rdata.preference), "host": rdata.exchange.to_text().rstrip(".")}
                for rdata in mx_answer
            ]
        except dns.exception.DNSException as e:
            logger.debug(f"[DNS] {host} has no MX records ({e.__class__.__name__})")

        ns: List[str] = []
        try:
            ns_answer = await self.resolver.resolve(host, "NS")
            ns = [rdata.target.to_text().rstrip(".") for rdata in ns_answer]
        except dns.exception.DNSException as e:
            logger.debug(f"[DNS] {host} has no NS records ({e.__class__.__name__})")

        logger.debug(f"[DNS] {host} → {ipv4} (mx={len(mx)}, ns={len(ns)})")
        return DnsRecords(ipv4=ipv4, mx=mx, ns=ns)


# ============================================================================
# PROBE BUNDLE
# ============================================================================

class Probes:
    """
    The set of probes used by the check orchestrators.

    Owns the shared httpx client unless one is injected.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        resolver: Optional[dns.asyncresolver.Resolver] = None
    ):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.monitoring.request_timeout),
        )

        self.http = HTTPChecker(self.client, self.settings)
        self.ssl = SSLChecker(self.client, self.settings)
        self.dns = DNSChecker(self.settings, resolver)
        self.whois = WhoisChecker(self.client, self.settings)

    async def check_uptime(self, url: str) -> UptimeProbe:
        return await self.http.check_uptime(url)

    async def check_certificate(self, host: str) -> CertificateInfo:
        return await self.ssl.check_certificate(host)

    async def resolve_dns(self, host: str) -> DnsRecords:
        return await self.dns.resolve_dns(host)

    async def lookup_whois(self, domain: str):
        return await self.whois.lookup_whois(domain)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
