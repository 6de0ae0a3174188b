"""API routes."""

from insightforge_core.api.routes import runs, usage

__all__ = ["runs", "usage"]
