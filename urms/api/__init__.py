"""HTTP surface for the backup engine."""

from .app import create_app

__all__ = ["create_app"]
