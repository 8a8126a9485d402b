import httpx
import pytest

from github_proxy.config import Settings
from github_proxy.errors import ErrorKind, UpstreamUnavailableError
from github_proxy.upstream import (
    UpstreamClient,
    build_upstream_headers,
    build_upstream_url,
    filter_query,
    relay_headers,
)
from github_proxy.utils_tests.upstream_spy import streamed_transport


@pytest.mark.parametrize(
    "raw, drop, expected",
    [
        ("", None, ""),
        ("per_page=5", None, "per_page=5"),
        ("path=users/x&per_page=5", "path", "per_page=5"),
        ("a=1&path=x&b=2&path=y", "path", "a=1&b=2"),
        ("p%61th=x&a=1", "path", "a=1"),
        ("a=1&&b=2&", None, "a=1&b=2"),
        ("q=hello%20world&flag", "path", "q=hello%20world&flag"),
    ],
)
def test_filter_query(raw, drop, expected):
    assert filter_query(raw, drop=drop) == expected


def test_build_upstream_url():
    assert build_upstream_url("https://api.github.com", "users/x/repos", "per_page=5") == (
        "https://api.github.com/users/x/repos?per_page=5"
    )
    assert build_upstream_url("https://api.github.com/", "/user") == "https://api.github.com/user"


def test_build_upstream_headers():
    settings = Settings(_env_file=None, user_agent="test-agent")

    headers = build_upstream_headers("tok123", settings)

    assert headers == {
        "Authorization": "token tok123",
        "Accept": "application/vnd.github.v3+json",
        "User-Agent": "test-agent",
    }


def test_relay_headers_drops_hop_by_hop_and_credentials():
    upstream = httpx.Headers(
        [
            ("Content-Type", "application/json"),
            ("Content-Length", "2"),
            ("Transfer-Encoding", "chunked"),
            ("Keep-Alive", "timeout=5"),
            ("Authorization", "token leaked"),
            ("Link", '<https://api.github.com/user/repos?page=2>; rel="next"'),
        ]
    )

    relayed = relay_headers(upstream)

    assert relayed == [
        ("content-type", "application/json"),
        ("link", '<https://api.github.com/user/repos?page=2>; rel="next"'),
    ]


@pytest.mark.asyncio
async def test_forward_streams_upstream_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, content=b'{"created":true}', headers={"X-GitHub-Request-Id": "abc"})

    client = UpstreamClient(Settings(_env_file=None), transport=streamed_transport(handler))

    response = await client.forward("GET", "https://api.github.com/user", {"Authorization": "token t"})

    assert response.status_code == 201
    assert response.headers["x-github-request-id"] == "abc"
    body = b"".join([chunk async for chunk in response.body_iterator])
    assert body == b'{"created":true}'
    await response.background()


@pytest.mark.asyncio
async def test_forward_wraps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

    client = UpstreamClient(Settings(_env_file=None), transport=httpx.MockTransport(handler))

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await client.forward("GET", "https://api.github.com/user", {"Authorization": "token t"})

    assert exc_info.value.kind is ErrorKind.UPSTREAM_UNAVAILABLE
    assert exc_info.value.status_code == 502
    assert "Errno" not in exc_info.value.message
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_relay_headers_keeps_repeated_headers():
    upstream = httpx.Headers([("Vary", "Accept, Authorization"), ("Vary", "Accept-Encoding"), ("ETag", '"x"')])

    assert relay_headers(upstream) == [
        ("vary", "Accept, Authorization"),
        ("vary", "Accept-Encoding"),
        ("etag", '"x"'),
    ]
