"""HTTP client for the backend's historical series endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import aiohttp

LOGGER = logging.getLogger(__name__)


class HistoryFetchError(RuntimeError):
    """Raised when a historical series cannot be fetched or decoded."""


class HistoryApiClient:
    """Non-blocking GET helper for the pull API."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def fetch_records(self, path: str) -> List[Any]:
        """Fetch a JSON array from ``path``.

        Raises:
            HistoryFetchError: On timeouts, transport errors, HTTP status
                >= 400, or a body that is not a JSON array.
        """

        session = await self._ensure_session()
        url = f"{self._base_url}/{path.lstrip('/')}"

        try:
            async with asyncio.timeout(self._timeout):
                async with session.get(url) as response:
                    if response.status >= 400:
                        detail = await response.text()
                        raise HistoryFetchError(
                            f"GET {path} failed with status {response.status}: {detail.strip()[:200]}"
                        )
                    body = await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            LOGGER.warning("History fetch timed out after %.1fs (url=%s)", self._timeout, url)
            raise HistoryFetchError(f"GET {path} timed out") from exc
        except aiohttp.ClientError as exc:
            raise HistoryFetchError(f"GET {path} failed: {exc}") from exc
        except ValueError as exc:
            raise HistoryFetchError(f"GET {path} returned invalid JSON") from exc

        if not isinstance(body, list):
            raise HistoryFetchError(
                f"GET {path} returned {type(body).__name__}, expected a list"
            )
        return body

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session
