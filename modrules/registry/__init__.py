"""Module index over a source tree.

Responsibilities:
- Find module rules files under a root (patterns + excluded dirs)
- Load them concurrently, one descriptor per file
- Reject duplicate module names
- Provide lookup by module name
"""
from .loader import (  # noqa: F401
    LoadFailure,
    ModuleIndex,
    clear_index_cache,
    iter_descriptor_files,
    load_index,
    scan_modules,
)

__all__ = [
    "LoadFailure",
    "ModuleIndex",
    "clear_index_cache",
    "iter_descriptor_files",
    "load_index",
    "scan_modules",
]
