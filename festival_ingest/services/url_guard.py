"""
URL guard for Festival Ingest.

Provides:
- UrlGuard: SSRF-safe validation of user-supplied and crawled URLs
- canonicalize_url: lower-cased host, default port and fragment removed
- same_origin: scheme + host + port comparison

Security features:
- Scheme allowlist (http/https) and script-pattern rejection
- Private/loopback/link-local literal and hostname blocking
- Port allowlist, embedded-credential rejection
- Optional domain allowlist (exact or subdomain)
- DNS resolution check via ip.is_global (off-thread)
"""

import asyncio
import ipaddress
import socket
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

import structlog

from festival_ingest.core.exceptions import SecurityError
from festival_ingest.core.sanitize import contains_dangerous_content

logger = structlog.get_logger()


# =============================================================================
# Constants
# =============================================================================

ALLOWED_SCHEMES = ("http", "https")

DEFAULT_ALLOWED_PORTS = {80, 443}

DEFAULT_PORTS = {"http": 80, "https": 443}

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}

BLOCKED_SUFFIXES = (".local", ".localhost", ".internal")


# =============================================================================
# URL helpers
# =============================================================================


def _effective_port(scheme: str, port: int | None) -> int:
    return port if port is not None else DEFAULT_PORTS.get(scheme, 0)


def canonicalize_url(url: str) -> str:
    """Lower-case scheme and host, drop default port and fragment."""
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"

    port = parsed.port
    netloc = host if port is None or port == DEFAULT_PORTS.get(scheme) else f"{host}:{port}"

    return urlunparse((scheme, netloc, parsed.path or "/", parsed.params, parsed.query, ""))


def origin_of(url: str) -> tuple[str, str, int]:
    """(scheme, host, port) of a URL, with default ports filled in."""
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    return scheme, (parsed.hostname or "").lower(), _effective_port(scheme, parsed.port)


def same_origin(url: str, other: str) -> bool:
    try:
        return origin_of(url) == origin_of(other)
    except ValueError:
        return False


# =============================================================================
# URL Guard
# =============================================================================


@dataclass
class UrlCheck:
    """Outcome of a URL check."""
    is_safe: bool
    url: str | None = None  # Canonical URL when safe
    reason: str | None = None  # Rejection reason when unsafe


class UrlGuard:
    """SSRF-safe URL validation.

    Runs before any network access for the user-supplied URL and for every
    link the crawler follows.
    """

    def __init__(
        self,
        allowed_domains: set[str] | None = None,
        allowed_ports: set[int] | None = None,
        resolve_dns: bool = True,
    ):
        self.allowed_domains = {d.lower() for d in (allowed_domains or set())}
        self.allowed_ports = set(allowed_ports or DEFAULT_ALLOWED_PORTS)
        self.resolve_dns = resolve_dns
        self.log = logger.bind(component="UrlGuard")

    @classmethod
    def from_settings(cls, settings) -> "UrlGuard":
        return cls(
            allowed_domains=set(settings.allowed_domains),
            allowed_ports=set(settings.allowed_ports),
            resolve_dns=settings.resolve_dns,
        )

    async def check(self, url: str) -> UrlCheck:
        """Validate a URL, returning the canonical form or a rejection reason."""
        result = self.check_structure(url)
        if not result.is_safe:
            self.log.warning("url_rejected", url=url[:120], reason=result.reason)
            return result

        host = urlparse(result.url).hostname
        if self.resolve_dns and not await self._resolves_to_safe_ip(host):
            self.log.warning("url_rejected", url=url[:120], reason="non_global_address")
            return UrlCheck(False, reason=f"Host {host} does not resolve to a public address")

        return result

    async def ensure_safe(self, url: str) -> str:
        """Like check() but raises SecurityError on rejection."""
        result = await self.check(url)
        if not result.is_safe:
            raise SecurityError(result.reason or "URL rejected", details={"url": url[:200]})
        return result.url

    def check_structure(self, url: str) -> UrlCheck:
        """Checks that need no network access."""
        if not isinstance(url, str) or not url.strip():
            return UrlCheck(False, reason="URL is empty")

        url = url.strip()

        if contains_dangerous_content(url):
            return UrlCheck(False, reason="URL contains a dangerous pattern")

        try:
            parsed = urlparse(url)
            port = parsed.port
        except ValueError:
            return UrlCheck(False, reason="Invalid port or malformed URL")

        scheme = parsed.scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            return UrlCheck(False, reason=f"Scheme '{scheme or 'none'}' is not allowed")

        if parsed.username or parsed.password:
            return UrlCheck(False, reason="Credentials in URL are not allowed")

        host = (parsed.hostname or "").lower()
        if not host:
            return UrlCheck(False, reason="URL has no host")

        if port is not None and not 1 <= port <= 65535:
            return UrlCheck(False, reason=f"Invalid port {port}")
        if _effective_port(scheme, port) not in self.allowed_ports:
            return UrlCheck(False, reason=f"Port {_effective_port(scheme, port)} is not allowed")

        reason = self._blocked_host_reason(host)
        if reason:
            return UrlCheck(False, reason=reason)

        if self.allowed_domains and not self._is_allowed_domain(host):
            return UrlCheck(False, reason=f"Domain {host} is not in the allowlist")

        return UrlCheck(True, url=canonicalize_url(url))

    def _blocked_host_reason(self, host: str) -> str | None:
        if host in BLOCKED_HOSTNAMES or host.endswith(BLOCKED_SUFFIXES):
            return f"Host {host} is internal"

        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            return None

        if not ip.is_global or ip.is_multicast:
            return f"Address {host} is not public"
        return None

    def _is_allowed_domain(self, host: str) -> bool:
        """Check if host matches allowed domains (exact or subdomain)."""
        for domain in self.allowed_domains:
            if host == domain or host.endswith("." + domain):
                return True
        return False

    async def _resolves_to_safe_ip(self, host: str) -> bool:
        """Check if host resolves only to global (public) IPs.

        Blocks: private, loopback, link-local, multicast, reserved, unspecified.
        """
        def _check():
            try:
                infos = socket.getaddrinfo(host, None, socket.AF_UNSPEC)
            except (socket.gaierror, UnicodeError):
                return False
            if not infos:
                return False

            for _, _, _, _, addr in infos:
                try:
                    ip = ipaddress.ip_address(addr[0])
                except ValueError:
                    return False
                if not ip.is_global or ip.is_multicast:
                    return False
            return True

        return await asyncio.to_thread(_check)
