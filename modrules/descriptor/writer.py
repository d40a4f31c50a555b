"""Descriptor serialisation back to module rules text or YAML.

`dump` output is canonical: one class, one constructor, PCH mode first, then
scalar settings, symbols and list properties in mapping order.
"""
from __future__ import annotations

from typing import List

import yaml

from .model import ModuleDescriptor

INDENT = "\t"

_QUOTE_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\0": "\\0",
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


def _quote(value: str) -> str:
    out = []
    for ch in value:
        if ch in _QUOTE_ESCAPES:
            out.append(_QUOTE_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    return _quote(str(value))


def dump(descriptor: ModuleDescriptor) -> str:
    """Render a descriptor as `<Name>.Build.cs` source."""
    body: List[str] = []
    scalars: List[str] = []
    if descriptor.pch_usage is not None:
        scalars.append(
            f"PCHUsage = ModuleRules.PCHUsageMode.{descriptor.pch_usage.value};"
        )
    for key, value in descriptor.settings.items():
        scalars.append(f"{key} = {_scalar(value)};")
    for key, symbol in descriptor.symbols.items():
        scalars.append(f"{key} = {symbol};")
    if scalars:
        body.extend(scalars)

    for prop, values in descriptor.properties.items():
        if body:
            body.append("")
        body.append(f"{prop}.AddRange(")
        body.append(f"{INDENT}new string[] {{")
        for v in values:
            body.append(f"{INDENT * 2}{_quote(v)},")
        body.append(f"{INDENT}}});")

    name = descriptor.name
    lines = [
        "using UnrealBuildTool;",
        "",
        f"public class {name} : ModuleRules",
        "{",
        f"{INDENT}public {name}(ReadOnlyTargetRules Target) : base(Target)",
        f"{INDENT}{{",
    ]
    lines.extend(f"{INDENT * 2}{b}" if b else "" for b in body)
    lines.extend([f"{INDENT}}}", "}", ""])
    return "\n".join(lines)


def dump_yaml(descriptor: ModuleDescriptor) -> str:
    return yaml.safe_dump(
        descriptor.to_dict(), sort_keys=False, allow_unicode=True
    )


__all__ = ["dump", "dump_yaml"]
