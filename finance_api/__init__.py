"""HTTP interface for the finance tracker."""

from .app import create_app

__all__ = ["create_app"]
