"""Live viewer: FastAPI app and static HTML rendering."""

from .app import MAX_BODY_BYTES, create_app, serve
from .html import render_page

__all__ = ["MAX_BODY_BYTES", "create_app", "render_page", "serve"]
