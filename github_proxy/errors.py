"""Proxy error kinds and the fixed messages reported to callers."""

from __future__ import annotations

from enum import Enum

from fastapi import status


class ErrorKind(Enum):
    CLIENT_INPUT = (status.HTTP_400_BAD_REQUEST, "API path is missing in the request.")
    CONFIGURATION = (status.HTTP_500_INTERNAL_SERVER_ERROR, "Server configuration error: credential missing")
    UPSTREAM_UNAVAILABLE = (status.HTTP_502_BAD_GATEWAY, "Failed to fetch from upstream API.")

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message


class ProxyError(Exception):
    """Raised by the forwarding handler; rendered with the kind's fixed message only."""

    kind: ErrorKind

    def __init__(self, kind: ErrorKind | None = None):
        if kind is not None:
            self.kind = kind
        super().__init__(self.kind.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def message(self) -> str:
        return self.kind.message


class ClientInputError(ProxyError):
    kind = ErrorKind.CLIENT_INPUT


class ConfigurationError(ProxyError):
    kind = ErrorKind.CONFIGURATION


class UpstreamUnavailableError(ProxyError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
