"""HTTP API for Jobnick Agent."""

from .main import app, create_app

__all__ = ["app", "create_app"]
