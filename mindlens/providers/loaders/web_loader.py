"""Source loader for web pages and GitHub repositories.

# ─── DESIGN ────────────────────────────────────────────────────────────
#
# WebLoader has two strategies, picked from the URL:
#
#   1. GitHub repositories (https://github.com/<owner>/<repo>): a shallow
#      listing of the repository root on one branch through the GitHub
#      contents API.  Each text file becomes one page; files matching the
#      ignore patterns (*.md by default) and binary files are skipped.
#
#   2. Everything else: a breadth-first crawl from the root URL.
#      - follows links on the same origin whose path sits below the root
#      - stops at max_depth link-levels and max_pages pages
#      - skips excluded directories (node_modules, .git) and non-HTML
#      - extracts text with trafilatura, BeautifulSoup when that is empty
#
# The root fetch failing is a LoadError.  After the root, HTTP error
# statuses skip that page and transport errors / timeouts end the crawl;
# pages already collected are kept.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import fnmatch
import re
from collections import deque
from collections.abc import AsyncIterator
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
import structlog
import trafilatura
from bs4 import BeautifulSoup

from mindlens.interfaces.source_loader import ISourceLoader
from mindlens.models.library import SourceKind
from mindlens.models.rag import SourcePage
from mindlens.utils.errors import LoadError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; MindLens/0.1; +https://github.com/mindlens)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

_GITHUB_REPO_URL = re.compile(
    r"^https?://(?:www\.)?github\.com/(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
)
_GITHUB_API = "https://api.github.com"

_HTML_TYPES = ("text/html", "application/xhtml+xml")
_BINARY_SUFFIXES = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp", ".pdf", ".zip",
        ".gz", ".tar", ".jar", ".exe", ".dll", ".so", ".woff", ".woff2",
        ".ttf", ".mp3", ".mp4", ".lock",
    }
)


class WebLoader(ISourceLoader):
    """Loads a URL (or GitHub repository) into :class:`SourcePage` objects.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    max_depth:
        How many link-levels deep the crawl follows (0 = root only).
    max_pages:
        Maximum number of pages produced by one load.
    github_branch:
        Branch listed for GitHub repository URLs.
    exclude_dirs:
        Path segments that are never crawled.
    github_ignore_patterns:
        Glob patterns of repository files that are skipped.
    transport:
        Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_depth: int = 2,
        max_pages: int = 50,
        github_branch: str = "main",
        exclude_dirs: list[str] | None = None,
        github_ignore_patterns: list[str] | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_depth = max(0, max_depth)
        self._max_pages = max(1, max_pages)
        self._github_branch = github_branch
        self._exclude_dirs = frozenset(exclude_dirs or ["node_modules", ".git"])
        self._ignore_patterns = list(github_ignore_patterns or ["*.md"])
        self._headers = dict(_DEFAULT_HEADERS)
        if user_agent:
            self._headers["User-Agent"] = user_agent
        self._transport = transport

    # ------------------------------------------------------------------
    # ISourceLoader implementation
    # ------------------------------------------------------------------

    async def load(self, locator: str) -> AsyncIterator[SourcePage]:
        url = self._validate_url(locator)

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            headers=self._headers,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            match = _GITHUB_REPO_URL.match(url)
            if match:
                pages = self._load_github(client, match["owner"], match["repo"])
            else:
                pages = self._crawl(client, url)
            async for page in pages:
                yield page

    def get_source_kind(self) -> SourceKind:
        return SourceKind.WEB_PAGE

    def get_provider_name(self) -> str:
        return "web_loader"

    # ------------------------------------------------------------------
    # Crawl strategy
    # ------------------------------------------------------------------

    async def _crawl(self, client: httpx.AsyncClient, root_url: str) -> AsyncIterator[SourcePage]:
        scope_prefix = self._scope_prefix(root_url)
        visited: set[str] = set()
        queue: deque[tuple[str, int]] = deque([(root_url, 0)])
        produced = 0

        while queue and produced < self._max_pages:
            url, depth = queue.popleft()
            if url in visited:
                continue
            visited.add(url)
            is_root = depth == 0

            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if is_root:
                    raise LoadError(
                        message=f"HTTP {exc.response.status_code} for {url}",
                        provider_name=self.get_provider_name(),
                    ) from exc
                logger.warning("web_page_skipped", url=url, status=exc.response.status_code)
                continue
            except httpx.HTTPError as exc:
                if is_root:
                    raise LoadError(
                        message=f"Could not fetch {url}: {exc}",
                        provider_name=self.get_provider_name(),
                    ) from exc
                logger.warning("web_crawl_stopped", url=url, error=str(exc), pages=produced)
                break

            content_type = response.headers.get("content-type", "").lower()
            if content_type.startswith("text/plain") and is_root:
                text, title, links = response.text, "", []
            elif any(content_type.startswith(t) for t in _HTML_TYPES) or not content_type:
                text, title, links = await asyncio.to_thread(self._extract, response.text)
            else:
                if is_root:
                    raise LoadError(
                        message=f"Unsupported content type {content_type!r} at {url}",
                        provider_name=self.get_provider_name(),
                    )
                logger.debug("web_page_not_html", url=url, content_type=content_type)
                continue

            if text.strip():
                produced += 1
                yield SourcePage(
                    text=text.strip(),
                    metadata={"source": url, "title": title, "depth": depth},
                )

            if depth < self._max_depth:
                for link in links:
                    absolute = self._normalize_link(str(response.url), link)
                    if (
                        absolute
                        and absolute not in visited
                        and absolute.startswith(scope_prefix)
                        and not self._is_excluded(absolute)
                    ):
                        queue.append((absolute, depth + 1))

        logger.info("web_crawl_complete", root=root_url, pages=produced, visited=len(visited))

    @staticmethod
    def _extract(html: str) -> tuple[str, str, list[str]]:
        """Return (text, title, hrefs) for an HTML document."""
        soup = BeautifulSoup(html, "html.parser")
        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        links = [
            a["href"]
            for a in soup.find_all("a", href=True)
            if a["href"] and not a["href"].startswith(("#", "javascript:", "mailto:"))
        ]

        text = trafilatura.extract(html, include_comments=False, include_tables=True) or ""
        if not text.strip():
            for tag in soup(["script", "style", "noscript"]):
                tag.decompose()
            text = soup.get_text(separator="\n", strip=True)
        return text, title, links

    # ------------------------------------------------------------------
    # GitHub strategy
    # ------------------------------------------------------------------

    async def _load_github(
        self, client: httpx.AsyncClient, owner: str, repo: str
    ) -> AsyncIterator[SourcePage]:
        listing_url = f"{_GITHUB_API}/repos/{owner}/{repo}/contents"
        try:
            response = await client.get(
                listing_url,
                params={"ref": self._github_branch},
                headers={"Accept": "application/vnd.github+json"},
            )
            response.raise_for_status()
            entries = response.json()
        except httpx.HTTPStatusError as exc:
            raise LoadError(
                message=(
                    f"GitHub repository {owner}/{repo} (branch {self._github_branch}) "
                    f"returned HTTP {exc.response.status_code}"
                ),
                provider_name=self.get_provider_name(),
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise LoadError(
                message=f"Could not list GitHub repository {owner}/{repo}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not isinstance(entries, list):
            raise LoadError(
                message=f"Unexpected GitHub listing for {owner}/{repo}",
                provider_name=self.get_provider_name(),
            )

        produced = 0
        for entry in entries:
            if produced >= self._max_pages:
                break
            name = entry.get("name", "")
            download_url = entry.get("download_url")
            if entry.get("type") != "file" or not download_url or self._is_ignored(name):
                continue

            try:
                file_response = await client.get(download_url)
                file_response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("github_file_skipped", path=entry.get("path"), error=str(exc))
                continue

            raw = file_response.content
            if b"\x00" in raw[:8000]:
                continue
            text = raw.decode("utf-8", errors="replace").strip()
            if not text:
                continue

            produced += 1
            yield SourcePage(
                text=text,
                metadata={
                    "source": entry.get("html_url") or download_url,
                    "title": entry.get("path", name),
                    "repository": f"{owner}/{repo}",
                    "branch": self._github_branch,
                },
            )

        logger.info("github_repo_loaded", repository=f"{owner}/{repo}", files=produced)

    def _is_ignored(self, name: str) -> bool:
        lowered = name.lower()
        if any(lowered.endswith(suffix) for suffix in _BINARY_SUFFIXES):
            return True
        return any(fnmatch.fnmatch(name, pattern) for pattern in self._ignore_patterns)

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    def _validate_url(self, locator: str) -> str:
        parsed = urlparse((locator or "").strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise LoadError(
                message=f"Invalid URL: {locator!r}",
                provider_name=self.get_provider_name(),
            )
        return parsed.geturl()

    @staticmethod
    def _scope_prefix(root_url: str) -> str:
        """Return the URL prefix every crawled link must start with."""
        parsed = urlparse(root_url)
        path = parsed.path or "/"
        if not path.endswith("/"):
            path = path.rsplit("/", 1)[0] + "/"
        return f"{parsed.scheme}://{parsed.netloc}{path}"

    @staticmethod
    def _normalize_link(base_url: str, href: str) -> str | None:
        absolute, _fragment = urldefrag(urljoin(base_url, href.strip()))
        if urlparse(absolute).scheme not in ("http", "https"):
            return None
        return absolute

    def _is_excluded(self, url: str) -> bool:
        segments = [s for s in urlparse(url).path.split("/") if s]
        return any(segment in self._exclude_dirs for segment in segments)
