"""Pytest configuration ensuring project root is importable.

Adds repository root and src/ to sys.path explicitly to avoid
interpreter/path quirks when running without an editable install.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolate_config_env():  # noqa: D401
    """Ensure global config/index/logging state does not leak between tests.

    - Point MODRULES_CONFIG_DIR at the repo configs/ (restored afterwards)
    - Clear config and index caches
    - Drop log handlers installed by CLI runs
    """
    from modrules.config import clear_config_cache  # local import
    from modrules.log import reset_logging
    from modrules.registry import clear_index_cache

    prev = os.environ.get("MODRULES_CONFIG_DIR")
    os.environ["MODRULES_CONFIG_DIR"] = str(ROOT / "configs")
    clear_config_cache()
    clear_index_cache()
    try:
        yield
    finally:
        clear_config_cache()
        clear_index_cache()
        reset_logging()
        if prev is None:
            os.environ.pop("MODRULES_CONFIG_DIR", None)
        else:
            os.environ["MODRULES_CONFIG_DIR"] = prev


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def fixture_files() -> dict[str, Path]:
    """Module name -> path of the bundled plugin module rules files.

    The suffix is matched case-insensitively (`.Build.cs` and `.build.cs`
    both occur upstream).
    """
    suffix = ".build.cs"
    return {
        p.name[: -len(suffix)]: p
        for p in sorted(FIXTURES.rglob("*"))
        if p.is_file() and p.name.lower().endswith(suffix)
    }
