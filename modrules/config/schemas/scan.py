"""Scan / parser / api schemas."""
from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class ScanConfig(BaseModel):
    root: str = "."
    patterns: List[str] = Field(
        default_factory=lambda: ["*.Build.cs", "*.module.yaml"]
    )
    exclude_dirs: List[str] = Field(
        default_factory=lambda: [
            ".git",
            "Binaries",
            "Intermediate",
            "Saved",
            "__pycache__",
        ]
    )
    max_workers: int = 4
    on_error: Literal["skip", "raise"] = "skip"

    model_config = ConfigDict(extra="forbid")


class ParserConfig(BaseModel):
    strict: bool = False

    model_config = ConfigDict(extra="forbid")


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000

    model_config = ConfigDict(extra="forbid")
