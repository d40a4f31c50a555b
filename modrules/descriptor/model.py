"""Module descriptor schema.

A descriptor is the parsed, read-only form of one module rules source. List
properties live in a single mapping keyed by the upstream property name so
new property names need no schema change; the well-known ones get typed
views (`public_dependencies`, `private_include_paths`, ...).
"""
from __future__ import annotations

import math
import re
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
SYMBOL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

PCH_PROPERTY = "PCHUsage"

# Statements opening with one of these are control flow, not assignments.
CONTROL_KEYWORDS = frozenset(
    {
        "if",
        "else",
        "for",
        "foreach",
        "while",
        "do",
        "switch",
        "try",
        "catch",
        "finally",
        "using",
        "lock",
    }
)
BOOL_LITERALS = {"true": True, "false": False}
# Not allowed as a module, property or setting name.
RESERVED_NAMES = CONTROL_KEYWORDS | set(BOOL_LITERALS) | {"this"}

Scalar = Union[bool, int, float, str]


class PCHUsageMode(str, Enum):
    Default = "Default"
    NoPCHs = "NoPCHs"
    NoSharedPCHs = "NoSharedPCHs"
    UseSharedPCHs = "UseSharedPCHs"
    UseExplicitOrSharedPCHs = "UseExplicitOrSharedPCHs"


# Each entry is (kind, docs). Kinds: path, module, define, library.
# Properties missing from this table are still loaded; checks report them.
KNOWN_PROPERTIES: Dict[str, Tuple[str, str]] = {
    "PublicIncludePaths": (
        "path",
        "Include directories exported to every dependent module.",
    ),
    "PrivateIncludePaths": (
        "path",
        "Include directories visible only while compiling this module.",
    ),
    "PublicSystemIncludePaths": (
        "path",
        "System include directories exported to dependents.",
    ),
    "PublicDependencyModuleNames": (
        "module",
        "Modules whose public interface this module re-exports.",
    ),
    "PrivateDependencyModuleNames": (
        "module",
        "Modules linked and used internally, not re-exported.",
    ),
    "PublicIncludePathModuleNames": (
        "module",
        "Modules whose headers are exported without a link dependency.",
    ),
    "PrivateIncludePathModuleNames": (
        "module",
        "Modules used only to resolve include search paths.",
    ),
    "DynamicallyLoadedModuleNames": (
        "module",
        "Modules loaded at runtime rather than linked.",
    ),
    "PublicDefinitions": (
        "define",
        "Preprocessor definitions exported to dependents.",
    ),
    "PrivateDefinitions": (
        "define",
        "Preprocessor definitions local to this module.",
    ),
    "PublicAdditionalLibraries": (
        "library",
        "Extra libraries passed to the linker of dependents.",
    ),
    "PublicSystemLibraries": (
        "library",
        "System libraries passed to the linker of dependents.",
    ),
    "PublicDelayLoadDLLs": (
        "library",
        "Libraries loaded lazily on first use.",
    ),
}

MODULE_NAME_PROPERTIES = frozenset(
    name for name, (kind, _) in KNOWN_PROPERTIES.items() if kind == "module"
)
INCLUDE_PATH_PROPERTIES = frozenset(
    name for name, (kind, _) in KNOWN_PROPERTIES.items() if kind == "path"
)


def _check_identifier(value: str, what: str) -> str:
    if not IDENTIFIER_RE.match(value):
        raise ValueError(f"{what} must be an identifier, got {value!r}")
    if value in RESERVED_NAMES:
        raise ValueError(f"{what} cannot be the keyword {value!r}")
    return value


class ModuleDescriptor(BaseModel):
    name: str
    pch_usage: Optional[PCHUsageMode] = None
    properties: Dict[str, List[str]] = Field(default_factory=dict)
    settings: Dict[str, Scalar] = Field(default_factory=dict)
    symbols: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("name")
    @classmethod
    def _name_is_identifier(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return _check_identifier(v, "name")

    @field_validator("properties")
    @classmethod
    def _drop_empty_lists(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for key in v:
            _check_identifier(key, "property name")
        return {k: list(vals) for k, vals in v.items() if vals}

    @field_validator("settings", "symbols")
    @classmethod
    def _scalar_keys(cls, v: Dict[str, object]) -> Dict[str, object]:
        for key in v:
            _check_identifier(key, "setting name")
            if key == PCH_PROPERTY:
                raise ValueError("PCHUsage belongs in pch_usage")
        return v

    @field_validator("settings")
    @classmethod
    def _finite_numbers(cls, v: Dict[str, Scalar]) -> Dict[str, Scalar]:
        for key, value in v.items():
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"setting {key} must be finite, got {value}")
        return v

    @field_validator("symbols")
    @classmethod
    def _symbols_are_dotted(cls, v: Dict[str, str]) -> Dict[str, str]:
        for key, sym in v.items():
            if not SYMBOL_RE.match(sym):
                raise ValueError(f"symbol for {key} is not dotted: {sym!r}")
            if sym in BOOL_LITERALS or CONTROL_KEYWORDS & set(sym.split(".")):
                raise ValueError(
                    f"symbol for {key} reads as a keyword: {sym!r}"
                )
        return v

    @model_validator(mode="after")
    def _settings_symbols_disjoint(self) -> "ModuleDescriptor":
        both = sorted(set(self.settings) & set(self.symbols))
        if both:
            raise ValueError(
                f"names set both as literal and symbol: {', '.join(both)}"
            )
        return self

    # --- Typed views ------------------------------------------------------
    def property_list(self, name: str) -> Tuple[str, ...]:
        """Declared entries of a list property, in order (empty if absent)."""
        return tuple(self.properties.get(name, ()))

    @property
    def public_include_paths(self) -> Tuple[str, ...]:
        return self.property_list("PublicIncludePaths")

    @property
    def private_include_paths(self) -> Tuple[str, ...]:
        return self.property_list("PrivateIncludePaths")

    @property
    def public_dependencies(self) -> FrozenSet[str]:
        return frozenset(self.property_list("PublicDependencyModuleNames"))

    @property
    def private_dependencies(self) -> FrozenSet[str]:
        return frozenset(self.property_list("PrivateDependencyModuleNames"))

    @property
    def private_include_path_module_names(self) -> FrozenSet[str]:
        return frozenset(self.property_list("PrivateIncludePathModuleNames"))

    @property
    def dependencies(self) -> FrozenSet[str]:
        """Every module named by any module-name property."""
        names: set[str] = set()
        for prop in self.properties:
            if prop in MODULE_NAME_PROPERTIES:
                names.update(self.properties[prop])
        return frozenset(names)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


__all__ = [
    "ModuleDescriptor",
    "PCHUsageMode",
    "KNOWN_PROPERTIES",
    "MODULE_NAME_PROPERTIES",
    "INCLUDE_PATH_PROPERTIES",
    "PCH_PROPERTY",
    "IDENTIFIER_RE",
    "CONTROL_KEYWORDS",
    "BOOL_LITERALS",
]
