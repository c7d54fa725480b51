import asyncio
import contextlib
import logging
from typing import Protocol, runtime_checkable

from .cancel import CancelToken
from .errors import TransportError
from .pool import ClientPool
from .types import RawResponse, RequestDescriptor

DEFAULT_TIMEOUT = 300.0

logger = logging.getLogger("apiexec")


def join_url(endpoint: str, resource: str) -> str:
    if resource.startswith(("http://", "https://")):
        return resource
    return f"{endpoint.rstrip('/')}/{resource.lstrip('/')}"


@runtime_checkable
class Transport(Protocol):
    """Send a prepared request to a base endpoint; raise TransportError on network failure."""

    async def send(
        self,
        base_endpoint: str,
        descriptor: RequestDescriptor,
        cancel: CancelToken | None = None,
    ) -> RawResponse: ...

    async def aclose(self) -> None: ...


# ---------- httpx (async, default) ----------
class HttpxTransport:
    def __init__(self, timeout: float = DEFAULT_TIMEOUT, **client_kwargs):
        import httpx  # noqa: PLC0415

        self.timeout = timeout
        self._client_kwargs = client_kwargs
        self._pool: ClientPool[httpx.AsyncClient] = ClientPool(self._create_client)

    def _create_client(self, endpoint: str):
        import httpx  # noqa: PLC0415

        return httpx.AsyncClient(base_url=endpoint, timeout=self.timeout, **self._client_kwargs)

    def client_for(self, endpoint: str):
        return self._pool.get(endpoint)

    async def send(
        self,
        base_endpoint: str,
        descriptor: RequestDescriptor,
        cancel: CancelToken | None = None,
    ) -> RawResponse:
        import httpx  # noqa: PLC0415

        client = self._pool.get(base_endpoint)
        try:
            resp = await client.request(
                descriptor.method,
                descriptor.resource.lstrip("/"),
                headers=list(descriptor.headers),
                params=list(descriptor.query),
                content=descriptor.body,
            )
        except httpx.RequestError as e:
            logger.warning(f"transport error endpoint={base_endpoint} resource={descriptor.resource}: {e}")
            raise TransportError(str(e) or type(e).__name__, e) from e
        return RawResponse(resp.status_code, dict(resp.headers), resp.content)

    async def aclose(self) -> None:
        for client in self._pool.drain():
            with contextlib.suppress(Exception):
                await client.aclose()


# ---------- aiohttp (async) ----------
class AiohttpTransport:
    def __init__(self, timeout: float = DEFAULT_TIMEOUT, **session_kwargs):
        self.timeout = timeout
        self._session_kwargs = session_kwargs
        self._pool = ClientPool(self._create_session)

    def _create_session(self, endpoint: str):
        import aiohttp  # noqa: PLC0415

        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout), **self._session_kwargs
        )

    def session_for(self, endpoint: str):
        return self._pool.get(endpoint)

    async def send(
        self,
        base_endpoint: str,
        descriptor: RequestDescriptor,
        cancel: CancelToken | None = None,
    ) -> RawResponse:
        import aiohttp  # noqa: PLC0415

        session = self._pool.get(base_endpoint)
        url = join_url(base_endpoint, descriptor.resource)
        try:
            async with session.request(
                descriptor.method,
                url,
                headers=list(descriptor.headers),
                params=list(descriptor.query),
                data=descriptor.body,
            ) as resp:
                body = await resp.read()
                return RawResponse(resp.status, dict(resp.headers), body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"transport error endpoint={base_endpoint} resource={descriptor.resource}: {e}")
            raise TransportError(str(e) or type(e).__name__, e) from e

    async def aclose(self) -> None:
        for session in self._pool.drain():
            with contextlib.suppress(Exception):
                await session.close()


# ---------- requests (sync, run in a worker thread) ----------
class RequestsTransport:
    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session_factory=None):
        self.timeout = timeout
        self._session_factory = session_factory
        self._pool = ClientPool(self._create_session)

    def _create_session(self, endpoint: str):
        if self._session_factory is not None:
            return self._session_factory()
        import requests  # noqa: PLC0415

        return requests.Session()

    def session_for(self, endpoint: str):
        return self._pool.get(endpoint)

    def _send_sync(self, session, url: str, descriptor: RequestDescriptor) -> RawResponse:
        import requests  # noqa: PLC0415

        headers: dict[str, str] = {}
        for name, value in descriptor.headers:
            headers[name] = f"{headers[name]}, {value}" if name in headers else value
        try:
            resp = session.request(
                descriptor.method,
                url,
                headers=headers,
                params=list(descriptor.query),
                data=descriptor.body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"transport error url={url}: {e}")
            raise TransportError(str(e) or type(e).__name__, e) from e
        return RawResponse(resp.status_code, dict(resp.headers), resp.content)

    async def send(
        self,
        base_endpoint: str,
        descriptor: RequestDescriptor,
        cancel: CancelToken | None = None,
    ) -> RawResponse:
        session = self._pool.get(base_endpoint)
        url = join_url(base_endpoint, descriptor.resource)
        return await asyncio.to_thread(self._send_sync, session, url, descriptor)

    async def aclose(self) -> None:
        for session in self._pool.drain():
            with contextlib.suppress(Exception):
                session.close()


def coerce_transport(transport) -> Transport:
    """Turn None | "httpx" | "aiohttp" | "requests" | Transport into a Transport."""
    if transport is None:
        return HttpxTransport()
    if isinstance(transport, str):
        name = transport.lower()
        if name == "httpx":
            return HttpxTransport()
        if name == "aiohttp":
            return AiohttpTransport()
        if name == "requests":
            return RequestsTransport()
        raise ValueError("Unknown transport string. Use 'httpx', 'aiohttp' or 'requests'.")
    if isinstance(transport, Transport):
        return transport
    raise TypeError("transport must be None, 'httpx'|'aiohttp'|'requests', or a Transport")
