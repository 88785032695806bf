"""Query front end."""

from .main import create_app

__all__ = ["create_app"]
