"""Event dataclasses emitted by the loader and the module index.

Each event is published on `modrules.eventbus` under its class name.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from time import time
from typing import Any, Dict

from modrules.errors import validate_error_type
from modrules.eventbus import emit as _emit_bus


@dataclass(slots=True)
class BaseEvent:
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        data = asdict(self)
        data["ts"] = data.get("ts") or time()
        return data


@dataclass(slots=True)
class DescriptorLoaded(BaseEvent):
    module: str
    path: str | None
    format: str
    load_ms: float


@dataclass(slots=True)
class DescriptorLoadFailed(BaseEvent):
    path: str | None
    error_type: str
    message: str | None = None

    def __post_init__(self) -> None:
        validate_error_type(self.error_type)


@dataclass(slots=True)
class IndexBuilt(BaseEvent):
    root: str
    modules: int
    failures: int
    scan_ms: float


def emit(event: BaseEvent) -> None:
    _emit_bus(type(event), event.to_event())


__all__ = [
    "BaseEvent",
    "DescriptorLoaded",
    "DescriptorLoadFailed",
    "IndexBuilt",
    "emit",
]
