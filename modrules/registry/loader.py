"""Module index: scans a source tree and loads every descriptor file.

Files are loaded independently (thread pool, one task per file); the index
holds one descriptor per successfully loaded file. Duplicate module names
across files abort the scan.
"""
from __future__ import annotations

import fnmatch
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from modrules import metrics
from modrules.config import get_config
from modrules.descriptor import (
    DescriptorError,
    DuplicateModuleName,
    ModuleDescriptor,
    UnknownDependency,
    load_file,
)
from modrules.errors import map_exception
from modrules.events import IndexBuilt, emit

log = logging.getLogger(__name__)

_index_lock = threading.Lock()
_index_cache: Dict[Path, "ModuleIndex"] = {}


@dataclass(frozen=True)
class LoadFailure:
    path: str
    error_type: str
    message: str


class ModuleIndex:
    """Read-only collection of loaded descriptors keyed by module name."""

    def __init__(
        self,
        root: Path,
        entries: Dict[str, Tuple[ModuleDescriptor, Path]],
        failures: Sequence[LoadFailure] = (),
    ) -> None:
        self.root = root
        self._entries = dict(sorted(entries.items()))
        self._failures = tuple(failures)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[ModuleDescriptor]:
        return (desc for desc, _ in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> List[str]:
        return list(self._entries)

    def get(self, name: str) -> ModuleDescriptor:
        try:
            return self._entries[name][0]
        except KeyError:
            raise UnknownDependency(name) from None

    def path_of(self, name: str) -> Path:
        try:
            return self._entries[name][1]
        except KeyError:
            raise UnknownDependency(name) from None

    @property
    def failures(self) -> Tuple[LoadFailure, ...]:
        return self._failures


def iter_descriptor_files(
    root: Path, patterns: Sequence[str], exclude_dirs: Sequence[str]
) -> Iterator[Path]:
    """Yield files under root whose name matches a pattern (case-insensitive)."""
    excluded = set(exclude_dirs)
    lowered = [pat.lower() for pat in patterns]
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for fname in sorted(filenames):
            if any(fnmatch.fnmatchcase(fname.lower(), pat) for pat in lowered):
                yield Path(dirpath) / fname


def _load_one(
    path: Path, strict: bool
) -> Tuple[Path, Optional[ModuleDescriptor], Optional[Exception]]:
    try:
        return path, load_file(path, strict=strict), None
    except (DescriptorError, OSError) as e:
        return path, None, e


def scan_modules(
    root: str | Path,
    patterns: Optional[Sequence[str]] = None,
    exclude_dirs: Optional[Sequence[str]] = None,
    max_workers: Optional[int] = None,
    on_error: Optional[str] = None,
    strict: Optional[bool] = None,
) -> ModuleIndex:
    """Scan `root` and load every descriptor file found.

    Unset arguments fall back to the `scan` / `parser` config sections.
    on_error="skip" records failures on the index; "raise" re-raises the
    first failure in path order.
    """
    cfg = get_config()
    patterns = list(patterns or cfg.scan.patterns)
    exclude_dirs = list(
        cfg.scan.exclude_dirs if exclude_dirs is None else exclude_dirs
    )
    max_workers = max_workers or cfg.scan.max_workers
    on_error = on_error or cfg.scan.on_error
    strict = cfg.parser.strict if strict is None else strict
    if on_error not in ("skip", "raise"):
        raise ValueError(f"on_error must be 'skip' or 'raise': {on_error}")

    t0 = time.perf_counter()
    root_path = Path(root).resolve()
    if not root_path.is_dir():
        log.warning("[scan] root=%s missing, index empty", root_path)
        return ModuleIndex(root_path, {})
    files = list(iter_descriptor_files(root_path, patterns, exclude_dirs))
    if max_workers <= 1 or len(files) <= 1:
        results = [_load_one(p, strict) for p in files]
    else:
        workers = min(max_workers, len(files))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="modrules-scan"
        ) as pool:
            results = list(pool.map(lambda p: _load_one(p, strict), files))

    entries: Dict[str, Tuple[ModuleDescriptor, Path]] = {}
    failures: List[LoadFailure] = []
    for path, desc, err in sorted(results, key=lambda r: str(r[0])):
        if err is not None:
            if on_error == "raise":
                raise err
            failures.append(LoadFailure(str(path), map_exception(err), str(err)))
            log.warning("[scan] load failed path=%s error=%s", path, err)
            continue
        assert desc is not None
        if desc.name in entries:
            raise DuplicateModuleName(
                desc.name, str(entries[desc.name][1]), str(path)
            )
        entries[desc.name] = (desc, path)

    scan_ms = (time.perf_counter() - t0) * 1000.0
    metrics.observe("index_scan_ms", scan_ms)
    emit(
        IndexBuilt(
            root=str(root_path),
            modules=len(entries),
            failures=len(failures),
            scan_ms=scan_ms,
        )
    )
    log.info(
        "[scan] root=%s modules=%d failures=%d ms=%.1f",
        root_path,
        len(entries),
        len(failures),
        scan_ms,
    )
    return ModuleIndex(root_path, entries, failures)


def load_index(root: str | Path | None = None) -> ModuleIndex:
    """Cached scan (thread-safe), keyed by resolved root."""
    if root is None:
        root = get_config().scan.root
    key = Path(root).resolve()
    with _index_lock:
        if key in _index_cache:
            return _index_cache[key]
        index = scan_modules(key)
        _index_cache[key] = index
        return index


def clear_index_cache(root: str | Path | None = None) -> None:
    """Clear cached indexes.

    If root provided, clear only that entry; else clear all.
    """
    with _index_lock:
        if root is None:
            _index_cache.clear()
        else:
            _index_cache.pop(Path(root).resolve(), None)
