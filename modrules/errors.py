"""Central error taxonomy.

Every failure surfaced to metrics, events or the API carries one of these
string codes. Unknown codes are a programming error.
"""
from __future__ import annotations

_ALLOWED_ERROR_TYPES = {
    # descriptor.load
    "malformed-descriptor",
    "descriptor-not-found",
    "io-error",
    # registry.scan
    "duplicate-module-name",
    "unknown-dependency",
    # config
    "config-invalid",
    "config-out-of-range",
    # event bus
    "event-handler-error",
    # fallback
    "internal",
}


def validate_error_type(code: str) -> str:
    assert (
        code in _ALLOWED_ERROR_TYPES
    ), f"Unknown error_type '{code}' (not in taxonomy)"
    return code


def map_exception(e: BaseException) -> str:
    # local import: descriptor package imports this module
    from modrules.descriptor.exceptions import (
        DescriptorNotFound,
        DuplicateModuleName,
        MalformedDescriptor,
        UnknownDependency,
    )

    if isinstance(e, MalformedDescriptor):
        return "malformed-descriptor"
    if isinstance(e, DescriptorNotFound):
        return "descriptor-not-found"
    if isinstance(e, DuplicateModuleName):
        return "duplicate-module-name"
    if isinstance(e, UnknownDependency):
        return "unknown-dependency"
    if isinstance(e, (OSError, UnicodeDecodeError)):
        return "io-error"
    if e.__class__.__name__ == "ConfigError":
        return "config-invalid"
    return "internal"


__all__ = ["validate_error_type", "map_exception"]
