"""modrules: loader and tooling for module rules descriptors."""
from __future__ import annotations

from .descriptor import (  # noqa: F401
    DescriptorError,
    DescriptorNotFound,
    DuplicateModuleName,
    MalformedDescriptor,
    ModuleDescriptor,
    PCHUsageMode,
    UnknownDependency,
    dump,
    dump_yaml,
    load,
    load_file,
    load_yaml,
)
from .registry import ModuleIndex, load_index, scan_modules  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "DescriptorError",
    "DescriptorNotFound",
    "DuplicateModuleName",
    "MalformedDescriptor",
    "ModuleDescriptor",
    "PCHUsageMode",
    "UnknownDependency",
    "ModuleIndex",
    "dump",
    "dump_yaml",
    "load",
    "load_file",
    "load_yaml",
    "load_index",
    "scan_modules",
]
