import aiohttp
import asyncio
import json
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from core.config import settings
from core import constants
from core.logger import get_logger
from core.exceptions import (
    AntiBotException,
    NetworkException,
    ParsingException,
    ResponseTooLargeException,
    ScraperException,
)
from models.target import ApiConfig, FlareSolverrConfig

if TYPE_CHECKING:
    from services.scraper.browser import BrowserSession

logger = get_logger(__name__)


class TransportChoice(str, Enum):
    """Per-fetch backend, derived from feed flags and never stored."""

    HTTP = "http"
    BROWSER = "browser"
    FLARESOLVERR = "flaresolverr"


def resolve_flaresolverr(feed_config: Optional[FlareSolverrConfig] = None) -> Optional[FlareSolverrConfig]:
    """
    A feed's own anti-bot block wins; otherwise fall back to the global
    FLARESOLVERR_* settings. Returns None when no proxy is usable.
    """
    if feed_config is not None:
        resolved = FlareSolverrConfig(
            enabled=feed_config.enabled,
            server_url=feed_config.server_url or settings.FLARESOLVERR_URL,
            timeout=feed_config.timeout or settings.FLARESOLVERR_TIMEOUT,
        )
        return resolved if resolved.is_active else None

    if settings.FLARESOLVERR_ENABLED and settings.FLARESOLVERR_URL:
        return FlareSolverrConfig(
            enabled=True,
            server_url=settings.FLARESOLVERR_URL,
            timeout=settings.FLARESOLVERR_TIMEOUT,
        )
    return None


def choose_transport(use_advanced: bool, flaresolverr: Optional[FlareSolverrConfig] = None) -> TransportChoice:
    if flaresolverr is not None and flaresolverr.is_active:
        return TransportChoice.FLARESOLVERR
    if use_advanced:
        return TransportChoice.BROWSER
    return TransportChoice.HTTP


def cookie_header(cookies: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    if not cookies:
        return None
    return "; ".join(f"{c['name']}={c['value']}" for c in cookies if c.get("name"))


class DocumentFetcher:
    """
    Handles network operations for fetching documents, API data and
    enclosure metadata.
    """
    def __init__(self, max_bytes: Optional[int] = None):
        self.max_bytes = max_bytes or settings.MAX_RESPONSE_BYTES
        self.timeout = aiohttp.ClientTimeout(total=60, connect=10, sock_read=30)
        self.headers = {
            "User-Agent": settings.USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
            **settings.DEFAULT_HEADERS,
        }

    async def create_session(self) -> aiohttp.ClientSession:
        """Creates and returns a new aiohttp session."""
        connector = aiohttp.TCPConnector(limit=10, limit_per_host=5)
        return aiohttp.ClientSession(
            timeout=self.timeout,
            connector=connector,
            headers=self.headers
        )

    async def _read_capped(self, resp: aiohttp.ClientResponse, url: str) -> bytes:
        declared = resp.content_length
        if declared is not None and declared > self.max_bytes:
            raise ResponseTooLargeException(
                f"Response too large for {url}", {"url": url, "content_length": declared, "limit": self.max_bytes}
            )

        chunks = []
        size = 0
        async for chunk in resp.content.iter_chunked(64 * 1024):
            size += len(chunk)
            if size > self.max_bytes:
                raise ResponseTooLargeException(
                    f"Response too large for {url}", {"url": url, "read": size, "limit": self.max_bytes}
                )
            chunks.append(chunk)
        return b"".join(chunks)

    @staticmethod
    def _decode(body: bytes, charset: Optional[str]) -> str:
        try:
            return body.decode(charset or "utf-8", errors="replace")
        except LookupError:
            return body.decode("utf-8", errors="replace")

    async def fetch_url(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """
        Direct GET capped at max_bytes. Oversized bodies abort the fetch.
        """
        request_headers = dict(headers or {})
        cookie_value = cookie_header(cookies)
        if cookie_value:
            request_headers["Cookie"] = cookie_value

        try:
            async with session.get(
                url,
                headers=request_headers or None,
                timeout=aiohttp.ClientTimeout(total=settings.FETCH_TIMEOUT),
            ) as resp:
                resp.raise_for_status()
                body = await self._read_capped(resp, url)
                return self._decode(body, resp.charset)
        except ResponseTooLargeException:
            raise
        except asyncio.TimeoutError:
            raise NetworkException(f"Timeout fetching {url}", {"url": url})
        except aiohttp.ClientError as e:
            raise NetworkException(f"HTTP error fetching {url}", {"url": url, "error": str(e)})
        except Exception as e:
            raise ScraperException(f"Unexpected error fetching {url}", {"url": url, "error": str(e)})

    async def fetch_via_flaresolverr(
        self,
        session: aiohttp.ClientSession,
        url: str,
        server_url: str,
        timeout_ms: Optional[int] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """
        Delegates the fetch to a FlareSolverr server.

        Anything but an HTTP 200 reply whose solution.status is 200 with a
        non-empty solution.response is a hard failure for this fetch.
        """
        timeout_ms = timeout_ms or settings.FLARESOLVERR_TIMEOUT
        payload: Dict[str, Any] = {
            "cmd": "request.get",
            "url": url,
            "maxTimeout": timeout_ms,
        }
        if cookies:
            payload["cookies"] = [{"name": c["name"], "value": c["value"]} for c in cookies]

        endpoint = f"{server_url.rstrip('/')}/v1"
        try:
            async with session.post(
                endpoint,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(
                    total=timeout_ms / 1000 + constants.FLARESOLVERR_TIMEOUT_PADDING
                ),
            ) as resp:
                status = resp.status
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise AntiBotException(
                        "FlareSolverr returned a malformed response", {"url": url, "error": str(e)}
                    )
        except AntiBotException:
            raise
        except asyncio.TimeoutError:
            raise AntiBotException(f"FlareSolverr timed out fetching {url}", {"url": url})
        except aiohttp.ClientError as e:
            raise AntiBotException(f"FlareSolverr request failed for {url}", {"url": url, "error": str(e)})

        solution = data.get("solution") if isinstance(data, dict) else None
        if (
            status == 200
            and isinstance(solution, dict)
            and solution.get("status") == 200
            and solution.get("response")
        ):
            return solution["response"]

        message = data.get("message") if isinstance(data, dict) else None
        raise AntiBotException(
            f"FlareSolverr failed: {message or 'Unknown error'}",
            {"url": url, "status": status, "solution_status": solution.get("status") if isinstance(solution, dict) else None},
        )

    async def fetch_document(
        self,
        session: Optional[aiohttp.ClientSession],
        url: str,
        transport: TransportChoice,
        browser: Optional["BrowserSession"] = None,
        flaresolverr: Optional[FlareSolverrConfig] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """Fetches one document with the chosen backend. Raises on failure."""
        if transport is TransportChoice.FLARESOLVERR:
            logger.debug(f"[FETCHER] FlareSolverr fetch: {url}")
            return await self.fetch_via_flaresolverr(
                session, url, flaresolverr.server_url, flaresolverr.timeout, cookies
            )
        if transport is TransportChoice.BROWSER:
            if browser is None:
                raise ScraperException("Browser transport selected without a browser session", {"url": url})
            logger.debug(f"[FETCHER] Browser fetch: {url}")
            return await browser.fetch(url)
        logger.debug(f"[FETCHER] HTTP fetch: {url}")
        return await self.fetch_url(session, url, headers=headers, cookies=cookies)

    async def fetch_json(self, session: aiohttp.ClientSession, api_config: ApiConfig) -> Any:
        """Calls a JSON API with the configured method, params, headers and body."""
        url = api_config.request_url
        if not url:
            raise ScraperException("API feed has no baseUrl")

        request_headers = {"Accept": "application/json", **api_config.headers}
        cookie_value = cookie_header([c.model_dump() for c in api_config.cookies])
        if cookie_value:
            request_headers["Cookie"] = cookie_value

        kwargs: Dict[str, Any] = {
            "params": api_config.params or None,
            "headers": request_headers,
            "timeout": aiohttp.ClientTimeout(total=settings.FETCH_TIMEOUT),
        }
        if api_config.body is not None and api_config.method.upper() not in ("GET", "HEAD"):
            if isinstance(api_config.body, (dict, list)):
                kwargs["json"] = api_config.body
            else:
                kwargs["data"] = str(api_config.body)

        try:
            async with session.request(api_config.method.upper(), url, **kwargs) as resp:
                resp.raise_for_status()
                body = await self._read_capped(resp, url)
        except ResponseTooLargeException:
            raise
        except asyncio.TimeoutError:
            raise NetworkException(f"Timeout fetching {url}", {"url": url})
        except aiohttp.ClientError as e:
            raise NetworkException(f"HTTP error fetching {url}", {"url": url, "error": str(e)})

        try:
            return json.loads(self._decode(body, "utf-8"))
        except ValueError as e:
            raise ParsingException(f"API response is not JSON: {url}", {"url": url, "error": str(e)})

    async def fetch_file_head(self, session: aiohttp.ClientSession, url: str, referer: Optional[str] = None) -> Dict[str, Any]:
        """
        Performs a HEAD request to get enclosure metadata.
        """
        headers = {"User-Agent": settings.USER_AGENT}
        if referer:
            headers["Referer"] = referer
        try:
            async with session.head(
                url,
                headers=headers,
                allow_redirects=True,
                timeout=aiohttp.ClientTimeout(total=settings.ENCLOSURE_PROBE_TIMEOUT),
            ) as resp:
                try:
                    length = int(resp.headers.get("Content-Length", 0))
                except (TypeError, ValueError):
                    length = 0
                return {
                    "status": resp.status,
                    "content_length": length,
                    "content_type": resp.headers.get("Content-Type"),
                }
        except Exception as e:
            logger.warning(f"[FETCHER] HEAD request failed for {url}: {e}")
            return {"status": 0, "content_length": 0, "content_type": None}
