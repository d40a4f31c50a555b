"""Descriptor related exception hierarchy."""
from __future__ import annotations


class DescriptorError(Exception):
    """Base descriptor exception."""


class MalformedDescriptor(DescriptorError):
    """Raised when a source lacks required structure.

    Typical reasons: no module class, several module classes, missing
    constructor, unbalanced braces, unterminated string.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        line: int | None = None,
    ) -> None:
        self.message = message
        self.path = path
        self.line = line
        super().__init__(self._render())

    def _render(self) -> str:
        where = self.path or "<source>"
        if self.line is not None:
            where = f"{where}:{self.line}"
        return f"{where}: {self.message}"

    def with_path(self, path: str) -> "MalformedDescriptor":
        return MalformedDescriptor(self.message, path=path, line=self.line)


class DescriptorNotFound(DescriptorError):
    """Raised when a descriptor source file does not exist."""


class DuplicateModuleName(DescriptorError):
    """Raised when two sources declare the same module name."""

    def __init__(self, name: str, first: str, second: str) -> None:
        self.name = name
        self.paths = (first, second)
        super().__init__(
            f"Duplicate module name '{name}': {first} and {second}"
        )


class UnknownDependency(DescriptorError, KeyError):
    """Raised when a module name is looked up but not indexed."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Unknown module '{self.name}'"


__all__ = [
    "DescriptorError",
    "MalformedDescriptor",
    "DescriptorNotFound",
    "DuplicateModuleName",
    "UnknownDependency",
]
