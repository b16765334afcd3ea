"""
Page explorer for Festival Ingest.

Fetches a festival's main page, ranks its same-origin links by how likely
they are to hold programme, lineup, pricing or venue details, and fetches
the best of them concurrently.
Features:
- One shared deadline for the whole exploration
- Keyword priority table with href bonuses
- SSRF check on every followed link and redirect hop
- Per-page failures logged and dropped
"""

import asyncio
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from festival_ingest.core.exceptions import FetchError, FetchTimeoutError
from festival_ingest.services.circuit_breaker import CircuitBreaker
from festival_ingest.services.url_guard import UrlGuard, same_origin

logger = structlog.get_logger()


# =============================================================================
# Constants
# =============================================================================

MAX_PAGES = 15

MIN_CONTENT_LENGTH = 100

MAX_REDIRECTS = 5

PAGE_SEPARATOR = "\n\n=== PAGE SEPARATOR ===\n\n"

SKIP_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "#")

DEFAULT_PRIORITY = 1

# (keywords, priority); a link takes the highest tier any keyword matches
KEYWORD_PRIORITIES: list[tuple[tuple[str, ...], int]] = [
    (("program", "schedule", "timetable"), 10),
    (("teacher", "instructor", "artist", "lineup"), 9),
    (("register", "ticket", "booking", "price"), 8),
    (("venue", "location", "accommodation"), 7),
    (("about", "info", "information"), 6),
    (("workshop", "class", "lesson"), 5),
]

# Additive bonuses on the href alone
HREF_BONUSES: list[tuple[tuple[str, ...], int]] = [
    (("program", "schedule"), 2),
    (("teacher", "artist"), 2),
    (("register", "ticket"), 1),
]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class LinkCandidate:
    url: str
    text: str
    priority: int


@dataclass
class ExplorationResult:
    """Concatenated content of the main page and every fetched link."""
    content: str
    pages_explored: int
    page_urls: list[str] = field(default_factory=list)


# =============================================================================
# Link scoring
# =============================================================================


def score_link(href: str, text: str) -> int:
    """Priority of a link from its text and href."""
    href_lower = href.lower()
    haystacks = (text.lower(), href_lower)

    priority = DEFAULT_PRIORITY
    for keywords, tier in KEYWORD_PRIORITIES:
        if tier > priority and any(kw in h for kw in keywords for h in haystacks):
            priority = tier

    for keywords, bonus in HREF_BONUSES:
        if any(kw in href_lower for kw in keywords):
            priority += bonus

    return priority


# =============================================================================
# Web Crawler
# =============================================================================


class WebCrawler:
    """Bounded multi-page fetcher.

    Fetches the main page plus at most ``max_pages - 1`` linked pages,
    all under one deadline.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url_guard: UrlGuard,
        breaker: CircuitBreaker | None = None,
        max_pages: int = MAX_PAGES,
        timeout: float = 30.0,
        user_agent: str | None = None,
    ):
        """Initialize crawler.

        Args:
            client: httpx AsyncClient for requests
            url_guard: SSRF checks for followed links
            breaker: Optional breaker wrapping each page fetch
            max_pages: Page budget including the main page
            timeout: Deadline in seconds for the whole exploration
            user_agent: User-Agent header sent with every request
        """
        self.client = client
        self.url_guard = url_guard
        self.breaker = breaker
        self.max_pages = max_pages
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent} if user_agent else {}
        self.log = logger.bind(component="WebCrawler")

    async def fetch_with_exploration(self, url: str) -> ExplorationResult:
        """Fetch ``url`` and its highest-priority same-origin links.

        Raises:
            FetchError: Main page unreachable or without usable content
            FetchTimeoutError: Deadline expired (in-flight requests are cancelled)
            SecurityError: Main page redirects to an unsafe URL
        """
        try:
            async with asyncio.timeout(self.timeout):
                return await self._explore(url)
        except TimeoutError as e:
            self.log.warning("exploration_timeout", url=url[:120], timeout=self.timeout)
            raise FetchTimeoutError(
                f"Fetching {url} exceeded {self.timeout}s",
                details={"url": url},
            ) from e

    async def _explore(self, url: str) -> ExplorationResult:
        main_html = await self._fetch_page(url)
        if len(main_html.strip()) < MIN_CONTENT_LENGTH:
            raise FetchError("Insufficient content found", url=url)

        candidates = self.extract_links(main_html, url)
        selected = candidates[: max(self.max_pages - 1, 0)]

        self.log.info(
            "exploration_links_selected",
            url=url[:120],
            candidates=len(candidates),
            selected=len(selected),
        )

        results = await asyncio.gather(
            *(self._fetch_guarded(c.url) for c in selected),
            return_exceptions=True,
        )

        pages = [main_html]
        page_urls = [url]
        for candidate, result in zip(selected, results):
            if isinstance(result, BaseException):
                self.log.info("page_fetch_failed", url=candidate.url[:120], error=str(result))
                continue
            pages.append(result)
            page_urls.append(candidate.url)

        self.log.info("exploration_complete", url=url[:120], pages_explored=len(pages))

        return ExplorationResult(
            content=PAGE_SEPARATOR.join(pages),
            pages_explored=len(pages),
            page_urls=page_urls,
        )

    async def _fetch_guarded(self, url: str) -> str:
        # Same origin is not enough against DNS rebinding
        safe_url = await self.url_guard.ensure_safe(url)
        return await self._fetch_page(safe_url)

    async def _fetch_page(self, url: str) -> str:
        # Redirects are followed by hand so every hop passes the SSRF check
        current_url = url
        for _ in range(MAX_REDIRECTS + 1):
            response = await self._request(current_url)
            if not response.is_redirect:
                break

            next_url = urljoin(str(response.url), response.headers["location"])
            self.log.debug("following_redirect", url=current_url[:120], location=next_url[:120])
            current_url = await self.url_guard.ensure_safe(next_url)
        else:
            raise FetchError(f"Too many redirects (max {MAX_REDIRECTS})", url=url)

        if not response.is_success:
            raise FetchError(f"HTTP {response.status_code}: {response.reason_phrase}", url=current_url)
        return response.text

    async def _request(self, url: str) -> httpx.Response:
        async def _get() -> httpx.Response:
            try:
                return await self.client.get(url, headers=self.headers, follow_redirects=False)
            except httpx.RequestError as e:
                raise FetchError(f"Request failed: {e}", url=url) from e

        if self.breaker is None:
            return await _get()
        return await self.breaker.call(_get)

    def extract_links(self, html: str, base_url: str) -> list[LinkCandidate]:
        """Same-origin links of a page, de-duplicated and sorted by priority."""
        soup = BeautifulSoup(html, "lxml")
        base = urldefrag(base_url).url
        seen: set[str] = {base}
        candidates: list[LinkCandidate] = []

        for tag in soup.find_all("a", href=True):
            href = tag["href"].strip()

            # Skip empty, anchor and script links
            if not href or href.lower().startswith(SKIP_PREFIXES):
                continue

            full_url = urldefrag(urljoin(base_url, href)).url
            if urlparse(full_url).scheme not in ("http", "https"):
                continue
            if not same_origin(full_url, base_url):
                continue
            if full_url in seen:
                continue
            seen.add(full_url)

            text = tag.get_text(" ", strip=True)
            candidates.append(LinkCandidate(full_url, text, score_link(href, text)))

        # sort() is stable, so equal priorities keep document order
        candidates.sort(key=lambda c: c.priority, reverse=True)
        return candidates
