from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote_plus

import httpx
from fastapi import Depends
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from .config import Settings, get_settings
from .errors import UpstreamUnavailableError

logger = logging.getLogger("github-proxy.upstream")

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)
CREDENTIAL_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})
# The relayed body is re-framed by the server.
REFRAMED_HEADERS = frozenset({"content-length"})


def filter_query(raw_query: str, drop: Optional[str] = None) -> str:
    """Remove every ``drop`` parameter from a raw query string.

    The remaining pairs keep their order and their original encoding.
    """
    pairs = []
    for pair in raw_query.split("&"):
        if not pair:
            continue
        key = unquote_plus(pair.split("=", 1)[0])
        if drop is not None and key == drop:
            continue
        pairs.append(pair)
    return "&".join(pairs)


def build_upstream_url(base_url: str, path: str, query: str = "") -> str:
    url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
    if query:
        url = f"{url}?{query}"
    return url


def build_upstream_headers(credential: str, settings: Settings) -> Dict[str, str]:
    return {
        "Authorization": f"token {credential}",
        "Accept": settings.upstream_accept,
        "User-Agent": settings.user_agent,
    }


def relay_headers(upstream_headers: httpx.Headers) -> List[Tuple[str, str]]:
    """Copy upstream response headers minus hop-by-hop and credential-bearing ones.

    Repeated headers such as ``Vary`` are kept as separate entries.
    """
    excluded = set(HOP_BY_HOP_HEADERS | CREDENTIAL_HEADERS | REFRAMED_HEADERS)
    for value in upstream_headers.get_list("connection"):
        excluded.update(token.strip().lower() for token in value.split(",") if token.strip())

    return [(key, value) for key, value in upstream_headers.multi_items() if key.lower() not in excluded]


class UpstreamClient:
    """Performs the outbound call; one ``httpx.AsyncClient`` per forwarded request."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.request_timeout_seconds, transport=self.transport)

    async def forward(self, method: str, url: str, headers: Dict[str, str]) -> StreamingResponse:
        client = self._client()
        request = client.build_request(method, url, headers=headers)
        try:
            response = await client.send(request, stream=True)
        except httpx.RequestError as exc:
            await client.aclose()
            # The exception text may contain the URL; only the type is logged.
            logger.warning(
                "upstream request failed",
                extra={"method": method, "error": type(exc).__name__},
            )
            raise UpstreamUnavailableError() from exc

        logger.info(
            "upstream responded",
            extra={"method": method, "upstream_status": response.status_code},
        )

        async def close() -> None:
            await response.aclose()
            await client.aclose()

        # ASGI has no reason phrase field; the server derives it from the status code.
        relayed = StreamingResponse(
            response.aiter_raw(),
            status_code=response.status_code,
            background=BackgroundTask(close),
        )
        for key, value in relay_headers(response.headers):
            relayed.headers.append(key, value)
        return relayed


def get_upstream_client(settings: Settings = Depends(get_settings)) -> UpstreamClient:
    return UpstreamClient(settings)
