from typing import AsyncIterator, Callable, List, Optional

import httpx


class ReplayStream(httpx.AsyncByteStream):
    """Unread async body, so ``aiter_raw`` works as it does against a real server."""

    def __init__(self, content: bytes):
        self._content = content

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._content:
            yield self._content


def as_streamed(response: httpx.Response) -> httpx.Response:
    # Responses built from content/json are already read when constructed.
    return httpx.Response(
        response.status_code,
        headers=response.headers.raw,
        stream=ReplayStream(response.content),
    )


def streamed_transport(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: as_streamed(handler(request)))


class UpstreamSpy:
    """Mock transport that records outbound requests."""

    def __init__(self, handler: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: List[httpx.Request] = []
        self._handler = handler or (lambda request: httpx.Response(200, json={"a": 1}))
        self.transport = streamed_transport(self._record)

    def _record(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "no outbound request was made"
        return self.requests[-1]
