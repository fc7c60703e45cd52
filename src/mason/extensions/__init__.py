"""Built-in extensions live here.

Each module defines one or more `Extension` objects at module level; they are
found by `discover_extensions()` and can be attached by name with
`app.use("javadoc")`.
"""

from __future__ import annotations

import importlib
import pkgutil
from typing import Dict

from ..logging import get_logger
from ..project import Extension

log = get_logger("mason.extensions")


def discover_extensions() -> Dict[str, Extension]:
    """Import all modules in this package and collect their extensions."""
    found: Dict[str, Extension] = {}
    for m in pkgutil.iter_modules(__path__, prefix=f"{__name__}."):
        try:
            mod = importlib.import_module(m.name)
        except ImportError as e:
            log.warning("Failed to import %s: %s", m.name, e)
            continue
        for attr_name in dir(mod):
            obj = getattr(mod, attr_name)
            if isinstance(obj, Extension):
                found[obj.name] = obj
    return found
