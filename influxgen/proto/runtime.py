"""Runtime support for writing measurements to an InfluxDB server."""

import asyncio
import logging
from collections.abc import Coroutine, Iterable
from typing import Any, Literal, overload
from urllib.parse import urlencode, urljoin, urlsplit

import requests

from .serialization import to_lines

logger = logging.getLogger(__name__)


class ClientError(RuntimeError):
    """Base exception for write failures."""


class UrlError(ClientError):
    """Raised when the server URL cannot be used."""


class RequestError(ClientError):
    """Raised when the HTTP request itself fails."""


class BadRequest(ClientError):
    """Raised when the server rejects a write with a client error status."""

    def __init__(self, what: str, status_code: int) -> None:
        super().__init__(f"The InfluxDB server responded with an error: {what}")
        self.what = what
        self.status_code = status_code


class Database:
    """Writes batches of measurements to one InfluxDB database.

    Supports both synchronous and asynchronous use. Async writes run the
    HTTP request in a worker thread so the event loop is never blocked.

    Example (sync):
        db = Database("http://localhost:8086/", "my_database")
        db.add_data([Reading(region="us-east", count=3, when=now)])

    Example (async):
        await db.add_data(batch, async_=True)
    """

    def __init__(
        self,
        base_url: str,
        name: str,
        *,
        session: requests.Session | None = None,
        timeout: float | None = 10.0,
    ) -> None:
        parts = urlsplit(base_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise UrlError(f"Unable to parse URL: {base_url!r}")

        self.name = name
        self.write_endpoint = f"{urljoin(base_url, '/write')}?{urlencode({'db': name})}"
        self._session = session or requests.Session()
        self._timeout = timeout

    def _post(self, body: str) -> requests.Response:
        """Send one write request (shared by sync and async)."""
        try:
            response = self._session.post(
                self.write_endpoint, data=body.encode("utf-8"), timeout=self._timeout
            )
        except requests.RequestException as e:
            logger.error("Write to %s failed: %s", self.write_endpoint, e)
            raise RequestError(f"Unable to perform HTTP request: {e}") from e

        if 400 <= response.status_code < 500:
            logger.error(
                "Write to %s rejected with %d: %s",
                self.write_endpoint,
                response.status_code,
                response.text,
            )
            raise BadRequest(response.text, response.status_code)

        return response

    @overload
    def add_data(
        self, batch: Any | Iterable[Any], *, async_: Literal[False] = False
    ) -> requests.Response: ...

    @overload
    def add_data(
        self, batch: Any | Iterable[Any], *, async_: Literal[True]
    ) -> Coroutine[Any, Any, requests.Response]: ...

    def add_data(
        self, batch: Any | Iterable[Any], *, async_: bool = False
    ) -> requests.Response | Coroutine[Any, Any, requests.Response]:
        """Write a measurement or a batch of measurements.

        The batch is serialized before anything is sent, one line per
        measurement.

        Args:
            batch: A measurement instance or an iterable of them.
            async_: If True, returns a coroutine for async writing.

        Returns:
            The server response for sync, or a coroutine for async.
        """
        body = to_lines(batch)
        if async_:
            return self._add_data_async(body)
        return self._post(body)

    async def _add_data_async(self, body: str) -> requests.Response:
        """Async implementation of add_data."""
        return await asyncio.to_thread(self._post, body)
