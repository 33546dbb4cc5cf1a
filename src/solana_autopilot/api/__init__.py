"""HTTP API package exports."""

from .app import create_app
from .utils import to_serializable

__all__ = ["create_app", "to_serializable"]
