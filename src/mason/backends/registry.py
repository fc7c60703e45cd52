"""The process-wide backend registry the built-in backends register into."""

from __future__ import annotations

from .base import BackendRegistry

registry = BackendRegistry()
