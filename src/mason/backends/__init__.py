"""Pluggable build backends and the registry that selects them."""

from .base import (
    Backend,
    BackendConfig,
    BackendDescriptor,
    BackendRegistry,
    flag,
    joined,
    mapping,
    path_list,
    repeated,
)
from .registry import registry
from . import javac, javadoc  # noqa: F401  register the built-in backends

__all__ = [
    "Backend",
    "BackendConfig",
    "BackendDescriptor",
    "BackendRegistry",
    "flag",
    "joined",
    "mapping",
    "path_list",
    "registry",
    "repeated",
]
