"""Installable entry point for the Creatives Hub catalog service."""

from __future__ import annotations

from app.config import settings
from app.main import app, create_app

__all__ = ["app", "create_app", "settings"]
