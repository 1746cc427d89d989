"""HTTP interception for httpx: feeds requests and responses to a session."""

from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from .session import SnapshotSession

SendRequest = Callable[[httpx.Request], Awaitable[httpx.Response]]


async def read_wire_bytes(response: httpx.Response) -> bytes:
    """Raw body bytes of a response, still content-encoded."""
    if isinstance(response.stream, httpx.ByteStream):
        return b"".join(response.stream)
    return b"".join([part async for part in response.aiter_raw()])


def unread_copy(response: httpx.Response, raw: bytes) -> httpx.Response:
    """A response over ``raw`` that the client reads, decodes and times itself."""
    return httpx.Response(
        status_code=response.status_code,
        headers=response.headers,
        stream=httpx.ByteStream(raw),
        extensions=response.extensions,
    )


async def exchange(
    session: SnapshotSession, request: httpx.Request, send: SendRequest
) -> httpx.Response:
    """Run one request through the session.

    The request event may answer from a snapshot; otherwise ``send`` performs
    the live exchange. The session observes a decoded copy of the response,
    the caller gets a fresh unread one over the same bytes.
    """
    context = await session.on_request(request)
    response = context.replayed
    if response is None:
        response = await send(request)
    raw = await read_wire_bytes(response)

    observed = unread_copy(response, raw)
    await observed.aread()
    await session.on_response(context, observed)
    return unread_copy(response, raw)


class SnapshotTransport(httpx.AsyncBaseTransport):
    """Transport that replays and records exchanges of one client.

    Example:
        client = httpx.AsyncClient(transport=SnapshotTransport(session))
    """

    def __init__(
        self,
        session: SnapshotSession,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await exchange(
            self.session, request, self._transport.handle_async_request
        )

    async def aclose(self) -> None:
        await self._transport.aclose()


class HTTPInterceptor:
    """Patches httpx.AsyncHTTPTransport so every async client is intercepted."""

    _active: "HTTPInterceptor | None" = None

    def __init__(self, session: SnapshotSession):
        self.session = session
        self.original_handle: Any = None

    def __enter__(self) -> "HTTPInterceptor":
        """Start intercepting HTTP requests."""
        if HTTPInterceptor._active is not None:
            raise RuntimeError("An HTTP interceptor is already active")
        HTTPInterceptor._active = self

        original = httpx.AsyncHTTPTransport.handle_async_request
        self.original_handle = original
        session = self.session

        async def intercepted_handle(
            transport: httpx.AsyncHTTPTransport, request: httpx.Request
        ) -> httpx.Response:
            async def send(req: httpx.Request) -> httpx.Response:
                return await original(transport, req)

            return await exchange(session, request, send)

        httpx.AsyncHTTPTransport.handle_async_request = intercepted_handle  # type: ignore[method-assign]
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop intercepting HTTP requests."""
        if self.original_handle is not None:
            httpx.AsyncHTTPTransport.handle_async_request = self.original_handle  # type: ignore[method-assign]
            self.original_handle = None
        if HTTPInterceptor._active is self:
            HTTPInterceptor._active = None

    @property
    def active(self) -> bool:
        return HTTPInterceptor._active is self
