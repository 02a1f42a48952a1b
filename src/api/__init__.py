"""
HTTP surface: SSE crawl streaming and job control.
"""

from .app import create_app

__all__ = ["create_app"]
