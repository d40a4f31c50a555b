"""Module descriptor: schema, loader and writer."""
from __future__ import annotations

from .exceptions import (  # noqa: F401
    DescriptorError,
    DescriptorNotFound,
    DuplicateModuleName,
    MalformedDescriptor,
    UnknownDependency,
)
from .model import (  # noqa: F401
    KNOWN_PROPERTIES,
    ModuleDescriptor,
    PCHUsageMode,
)
from .parser import load, load_file, load_yaml  # noqa: F401
from .writer import dump, dump_yaml  # noqa: F401

__all__ = [
    "DescriptorError",
    "DescriptorNotFound",
    "DuplicateModuleName",
    "MalformedDescriptor",
    "UnknownDependency",
    "KNOWN_PROPERTIES",
    "ModuleDescriptor",
    "PCHUsageMode",
    "load",
    "load_file",
    "load_yaml",
    "dump",
    "dump_yaml",
]
