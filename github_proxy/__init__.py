"""FastAPI proxy that calls the GitHub REST API with a server-held token."""

from .main import app, create_app

__all__ = ["app", "create_app"]
