"""HTTP surface for the weekly quest engine."""

from .app import create_app

__all__ = ["create_app"]
