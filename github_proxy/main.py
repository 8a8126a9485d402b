from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import PlainTextResponse

from .config import Settings, get_settings
from .errors import ClientInputError, ConfigurationError, ProxyError
from .upstream import (
    UpstreamClient,
    build_upstream_headers,
    build_upstream_url,
    filter_query,
    get_upstream_client,
)

logger = logging.getLogger("github-proxy")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
PROXY_METHODS = ["GET", "HEAD", "OPTIONS"]
PATH_PARAM = "path"


def extract_upstream_path(request: Request, settings: Settings) -> str:
    if settings.addressing_mode == "query":
        raw = request.query_params.get(PATH_PARAM, "")
    else:
        raw = request.path_params.get("upstream_path", "")
    path = raw.strip("/")
    if not path:
        raise ClientInputError()
    # Path parameters arrive percent-decoded; "?" or "#" must stay inside the path.
    return quote(path, safe="/")


def forwarded_query(request: Request, settings: Settings) -> str:
    drop = PATH_PARAM if settings.addressing_mode == "query" else None
    return filter_query(request.url.query, drop=drop)


async def proxy_request(
    request: Request,
    settings: Settings = Depends(get_settings),
    upstream: UpstreamClient = Depends(get_upstream_client),
):
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    path = extract_upstream_path(request, settings)

    credential = settings.credential()
    if not credential:
        logger.error("github_token is not configured; refusing to forward request")
        raise ConfigurationError()

    url = build_upstream_url(settings.upstream_base_url, path, forwarded_query(request, settings))
    logger.info(
        "proxying request",
        extra={"method": request.method, "upstream_path": path},
    )
    return await upstream.forward(request.method, url, build_upstream_headers(credential, settings))


async def handle_proxy_error(request: Request, exc: ProxyError) -> PlainTextResponse:
    return PlainTextResponse(exc.message, status_code=exc.status_code)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the proxy application.

    An explicit ``settings`` instance replaces the cached environment settings
    for every dependency of the app.
    """
    active = settings or get_settings()
    app = FastAPI(title=active.app_name)
    if settings is not None:
        app.dependency_overrides[get_settings] = lambda: settings

    deprecated_route = active.proxy_route if active.addressing_mode == "query" else None

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        if deprecated_route and request.url.path == deprecated_route:
            response.headers["Deprecation"] = "true"
        return response

    app.add_exception_handler(ProxyError, handle_proxy_error)  # type: ignore[arg-type]

    @app.get("/healthz")
    async def health() -> dict:
        return {"status": "ok"}

    if active.addressing_mode == "query":
        logger.warning(
            "query addressing mode is deprecated; migrate clients to %s/<upstream-path>",
            active.route_prefix,
        )
        app.add_api_route(active.proxy_route, proxy_request, methods=PROXY_METHODS, deprecated=True)
    else:
        if active.route_prefix:
            app.add_api_route(active.route_prefix, proxy_request, methods=PROXY_METHODS, include_in_schema=False)
        app.add_api_route(active.proxy_route, proxy_request, methods=PROXY_METHODS)

    return app


settings = get_settings()
logging.basicConfig(level=settings.log_level)
app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
