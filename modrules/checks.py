"""Lint checks over descriptors.

Findings never stop loading. Duplicated entries are tolerated by consumers
of module rules, so they are reported and kept as declared.

Codes:
    duplicate-entry         warning  same value listed twice in one property
    self-dependency         error    module names itself as a dependency
    absolute-include-path   warning  include path is not relative
    unknown-property        info     list property missing from KNOWN_PROPERTIES
    load-failed             error    file in the index could not be loaded
"""
from __future__ import annotations

import ntpath
import posixpath
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from modrules.descriptor import KNOWN_PROPERTIES, ModuleDescriptor
from modrules.descriptor.model import (
    INCLUDE_PATH_PROPERTIES,
    MODULE_NAME_PROPERTIES,
)
from modrules.registry import ModuleIndex

SEVERITIES = ("info", "warning", "error")


@dataclass(frozen=True)
class Finding:
    module: str
    code: str
    severity: str
    message: str
    property: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return asdict(self)


def _is_absolute(path: str) -> bool:
    return posixpath.isabs(path) or ntpath.isabs(path)


def check_descriptor(desc: ModuleDescriptor) -> List[Finding]:
    findings: List[Finding] = []
    for prop, values in desc.properties.items():
        seen: set[str] = set()
        reported: set[str] = set()
        for v in values:
            if v in seen and v not in reported:
                reported.add(v)
                findings.append(
                    Finding(
                        desc.name,
                        "duplicate-entry",
                        "warning",
                        f"'{v}' listed more than once",
                        prop,
                    )
                )
            seen.add(v)
        if prop in MODULE_NAME_PROPERTIES and desc.name in seen:
            findings.append(
                Finding(
                    desc.name,
                    "self-dependency",
                    "error",
                    f"module lists itself in {prop}",
                    prop,
                )
            )
        if prop in INCLUDE_PATH_PROPERTIES:
            for v in values:
                if _is_absolute(v):
                    findings.append(
                        Finding(
                            desc.name,
                            "absolute-include-path",
                            "warning",
                            f"include path '{v}' is absolute",
                            prop,
                        )
                    )
        if prop not in KNOWN_PROPERTIES:
            findings.append(
                Finding(
                    desc.name,
                    "unknown-property",
                    "info",
                    f"unrecognised list property {prop}",
                    prop,
                )
            )
    return findings


def check_index(index: ModuleIndex) -> List[Finding]:
    findings: List[Finding] = []
    for failure in index.failures:
        findings.append(
            Finding(
                failure.path,
                "load-failed",
                "error",
                f"{failure.error_type}: {failure.message}",
            )
        )
    for desc in index:
        findings.extend(check_descriptor(desc))
    return findings


def has_errors(findings: List[Finding]) -> bool:
    return any(f.severity == "error" for f in findings)


__all__ = [
    "Finding",
    "SEVERITIES",
    "check_descriptor",
    "check_index",
    "has_errors",
]
