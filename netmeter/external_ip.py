"""External IP lookup with fallback across several services."""

import asyncio
import json
import logging
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import Lock, Thread
from typing import Callable, Optional

import httpx

from netmeter.errors import ExternalIPFetchFailed
from netmeter.models import IPService, ResponseFormat
from netmeter.utils import is_valid_ip

logger = logging.getLogger(__name__)

UNAVAILABLE = "Unavailable"

ResultCallback = Callable[[str, Optional[ExternalIPFetchFailed]], None]


def parse_ip_response(service: IPService, body: str) -> Optional[str]:
    """Extract the IP address from a service response body.

    Args:
        service: Service that produced the body
        body: Raw response text

    Returns:
        IP address or None if the body is empty or unparseable
    """
    body = body.strip()
    if not body:
        return None

    if service.format == ResponseFormat.JSON:
        try:
            data = json.loads(body)
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        value = data.get(service.json_key or 'ip')
        if not isinstance(value, str):
            return None
        # httpbin may list proxies: "client, proxy"
        candidate = value.split(',')[0].strip()
    else:
        candidate = body.splitlines()[0].strip()

    return candidate if is_valid_ip(candidate) else None


class ExternalIPResolver:
    """Resolves the public IP address, trying services in order.

    Requests run on a private asyncio loop thread, so superseding a lookup
    cancels its HTTP request instead of letting it finish in the background.
    """

    def __init__(
        self,
        services: list[IPService],
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not services:
            raise ValueError("At least one external IP service is required")
        self.services = list(services)
        self.timeout = timeout
        self.last_error: Optional[ExternalIPFetchFailed] = None
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[Thread] = None
        self._lock = Lock()
        self._inflight: Optional[tuple[object, Future]] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get HTTP client (lazy init)."""
        with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=self.timeout,
                    transport=self._transport,
                    headers={"User-Agent": "netmeter/1.0"},
                    follow_redirects=True,
                )
            return self._client

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        # Caller holds the lock
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._loop_thread = Thread(
                target=self._loop.run_forever,
                daemon=True,
                name='external-ip'
            )
            self._loop_thread.start()
        return self._loop

    def fetch(self) -> str:
        """Query services in order and return the first parseable IP.

        Raises:
            ExternalIPFetchFailed: every service failed
        """
        with self._lock:
            loop = self._ensure_loop()
        return asyncio.run_coroutine_threadsafe(self._fetch(), loop).result()

    async def _fetch(self) -> str:
        client = self.client
        for service in self.services:
            try:
                response = await client.get(service.url)
                response.raise_for_status()
            except httpx.InvalidURL as e:
                logger.warning(f"Invalid URL for {service.name}: {e}")
                continue
            except httpx.HTTPStatusError as e:
                logger.warning(f"{service.name}: HTTP error {e.response.status_code}")
                continue
            except httpx.HTTPError as e:
                logger.warning(f"{service.name}: request error: {e!r}")
                continue

            ip = parse_ip_response(service, response.text)
            if ip is None:
                logger.warning(f"{service.name}: unparseable response")
                continue

            logger.info(f"External IP {ip} from {service.name}")
            return ip

        raise ExternalIPFetchFailed(
            f"All {len(self.services)} external IP services failed"
        )

    def resolve(self, on_done: Optional[ResultCallback] = None) -> Future:
        """Resolve in the background.

        A newer call cancels the one still in flight, aborting its HTTP
        request. The returned future yields the IP or UNAVAILABLE;
        on_done(ip, error) runs first.

        Args:
            on_done: Optional result callback

        Returns:
            Future with the IP string
        """
        token = object()
        with self._lock:
            self._cancel_inflight()
            future = asyncio.run_coroutine_threadsafe(
                self._resolve(token, on_done), self._ensure_loop()
            )
            self._inflight = (token, future)
        return future

    async def _resolve(self, token: object, on_done: Optional[ResultCallback]) -> str:
        error: Optional[ExternalIPFetchFailed] = None
        try:
            ip = await self._fetch()
        except ExternalIPFetchFailed as e:
            logger.error(f"External IP unavailable: {e}")
            ip, error = UNAVAILABLE, e

        with self._lock:
            if self._inflight is None or self._inflight[0] is not token:
                raise asyncio.CancelledError()
            self._inflight = None
            self.last_error = error

        if on_done is not None:
            try:
                on_done(ip, error)
            except Exception as e:
                logger.error(f"External IP callback error: {e}")
        return ip

    def _cancel_inflight(self) -> None:
        # Caller holds the lock
        if self._inflight is not None:
            _, future = self._inflight
            future.cancel()
            self._inflight = None
            logger.debug("Cancelled in-flight external IP request")

    def cancel(self) -> None:
        """Cancel the request in flight, if any."""
        with self._lock:
            self._cancel_inflight()

    def close(self) -> None:
        """Cancel pending work, close the HTTP client and stop the loop."""
        with self._lock:
            self._cancel_inflight()
            loop, thread, client = self._loop, self._loop_thread, self._client
            self._loop = self._loop_thread = self._client = None

        if loop is None:
            if client is not None:
                asyncio.run(client.aclose())
            return
        if client is not None:
            try:
                asyncio.run_coroutine_threadsafe(client.aclose(), loop).result(timeout=self.timeout)
            except (httpx.HTTPError, FutureTimeoutError) as e:
                logger.warning(f"Failed to close HTTP client: {e!r}")
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=self.timeout)
        if not loop.is_running():
            loop.close()
