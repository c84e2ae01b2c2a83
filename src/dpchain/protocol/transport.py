"""HTTPS transport for the XML management interface."""
import logging
import time
from typing import Optional

import httpx

from ..chain.cancel import CancelToken
from ..chain.errors import TransportError
from ..config.credentials import Credentials
from ..utils.connection import with_retry
from ..utils.logging_config import PostTimings, timed_section
from .xmlutil import http_error_response

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/xml; charset=utf-8"


class XmlManagementTransport:
    """Posts request documents to one appliance.

    Connection-level failures are retried with backoff, then turned into an
    ``HttpErrorResponse`` document so they flow through response
    classification like any other reply.
    """

    def __init__(
        self,
        host: str,
        port: int,
        credentials: Optional[Credentials] = None,
        verify_ssl: bool = False,
        timeout: float = 60.0,
        retries: int = 3,
        retry_wait: float = 1.0,
        cancel_token: Optional[CancelToken] = None,
        client: Optional[httpx.AsyncClient] = None,
        timings: Optional[PostTimings] = None,
    ):
        self.host = host
        self.port = port
        self.credentials = credentials
        self.retries = max(1, retries)
        self.retry_wait = retry_wait
        self.cancel_token = cancel_token or CancelToken()
        self.timings = timings or PostTimings()
        self._auth = httpx.BasicAuth(*credentials.as_tuple()) if credentials else None
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(verify=verify_ssl, timeout=timeout)
        if not verify_ssl:
            logger.debug(f"TLS certificate verification disabled for {host}")

    async def __aenter__(self) -> "XmlManagementTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return f"https://{self.host}:{self.port}{endpoint}"

    async def _send(self, url: str, payload: str) -> httpx.Response:
        kwargs = {"auth": self._auth} if self._auth is not None else {}
        return await self._client.post(
            url,
            content=payload.encode("utf-8"),
            headers={"Content-Type": CONTENT_TYPE},
            **kwargs,
        )

    async def post(self, endpoint: str, payload: str, operation_name: Optional[str] = None) -> str:
        """Post a request document and return the raw response text.

        Raises:
            ChainCancelled: if the session is cancelled before or during the post
        """
        url = self.url(endpoint)
        name = operation_name or "post"
        self.cancel_token.raise_if_cancelled(name)

        send = with_retry(
            max_attempts=self.retries,
            min_wait=self.retry_wait,
            max_wait=self.retry_wait * 10,
        )(self._send)

        start = time.perf_counter()
        try:
            async with timed_section(name, host=self.host, endpoint=endpoint):
                response = await self.cancel_token.guard(send(url, payload), name)
        except httpx.HTTPError as e:
            error = TransportError(f"Failed to connect to {url}: {e}", operation=name)
            logger.error(f"{name}: {error.message}")
            return http_error_response(error.message)
        finally:
            self.timings.record(name, (time.perf_counter() - start) * 1000)

        self.cancel_token.raise_if_cancelled(name)
        body = response.text
        if body.strip():
            return body
        if response.is_error:
            logger.error(f"{name}: HTTP {response.status_code} from {url}")
            return http_error_response(
                f"HTTP {response.status_code} {response.reason_phrase} from {url}"
            )
        return body
