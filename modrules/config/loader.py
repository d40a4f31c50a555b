"""Configuration loading & validation.

Precedence (last wins): base.yaml → overrides.local.yaml → ENV (MODRULES__*).

- `schema_version` missing → assume 1, warn.
- Each top-level section is validated by its own schema
  (`modrules.config.schemas.*`); unknown keys are rejected.
- Env values are coerced to bool/int/float; list fields accept
  comma-separated strings.
"""
from __future__ import annotations

import logging
import os
import pathlib
import threading
from functools import lru_cache
from typing import Any, Dict, List, Type, get_origin

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from modrules import metrics
from modrules.errors import validate_error_type

from .schemas.observability import LoggingConfig
from .schemas.scan import ApiConfig, ParserConfig, ScanConfig

log = logging.getLogger(__name__)


class AggregatedConfig(BaseModel):
    schema_version: int = 1
    scan: ScanConfig = ScanConfig()
    parser: ParserConfig = ParserConfig()
    logging: LoggingConfig = LoggingConfig()
    api: ApiConfig = ApiConfig()

    model_config = ConfigDict(extra="forbid")


DEFAULT_CONFIG_DIR = "configs"
ENV_PREFIX = "MODRULES__"

SUB_SCHEMA_CLASSES: Dict[str, Type[BaseModel]] = {
    "scan": ScanConfig,
    "parser": ParserConfig,
    "logging": LoggingConfig,
    "api": ApiConfig,
}


class ConfigError(Exception):
    pass


def _load_yaml_if_exists(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path.name}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name}: top level must be a mapping")
    return data


def _merge_dict(
    base: Dict[str, Any], override: Dict[str, Any]
) -> Dict[str, Any]:
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def _cast_env_value(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def _is_list_field(section: str, key: str) -> bool:
    schema = SUB_SCHEMA_CLASSES.get(section)
    if schema is None:
        return False
    field = schema.model_fields.get(key)
    if field is None:
        return False
    return get_origin(field.annotation) in (list, List)


def _apply_env(cfg: Dict[str, Any]) -> None:
    prefix_len = len(ENV_PREFIX)
    for env_key, value in sorted(os.environ.items()):
        if not env_key.startswith(ENV_PREFIX):
            continue
        path_parts = env_key[prefix_len:].lower().split("__")
        target = cfg
        for part in path_parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                target[part] = {}
            target = target[part]
        leaf = path_parts[-1]
        if len(path_parts) == 2 and _is_list_field(path_parts[0], leaf):
            cast_val: Any = [p.strip() for p in value.split(",") if p.strip()]
        else:
            cast_val = _cast_env_value(value)
        target[leaf] = cast_val
        dotted_path = ".".join(path_parts)
        metrics.inc("env_override_total", {"path": dotted_path})
        log.info("[config-env-override] path=%s value=*** source=env", dotted_path)


_lock = threading.Lock()


def _resolve_config_dir() -> pathlib.Path:
    """Resolve config directory each call honoring env var changes."""
    return pathlib.Path(os.getenv("MODRULES_CONFIG_DIR", DEFAULT_CONFIG_DIR))


def _migrate_legacy(data: Dict[str, Any]) -> Dict[str, Any]:
    if "schema_version" not in data:
        log.warning("[config-migration] schema_version missing -> assuming 1")
        data["schema_version"] = 1
    return data


def _normalize_and_validate(raw: Dict[str, Any]) -> None:
    """Bounds validation that schemas do not express.

    Validations (error → raise):
      - scan.max_workers >= 1
      - api.port in 1..65535
    Emits config_validation_errors_total{path,code} per violation.
    """
    errors: list[tuple[str, str, str]] = []  # (path, code, msg)
    scan = raw.get("scan") or {}
    workers = scan.get("max_workers") if isinstance(scan, dict) else None
    if isinstance(workers, int) and workers < 1:
        errors.append(("scan.max_workers", "config-out-of-range", ">=1 required"))
    api = raw.get("api") or {}
    port = api.get("port") if isinstance(api, dict) else None
    if isinstance(port, int) and not (0 < port <= 65535):
        errors.append(("api.port", "config-out-of-range", "1..65535 required"))

    if errors:
        for path, code, _ in errors:
            validate_error_type(code)
            metrics.inc(
                "config_validation_errors_total",
                {"path": path, "code": code},
            )
        details = ", ".join(f"{p}:{c}:{m}" for p, c, m in errors)
        raise ConfigError(f"config validation failed: {details}")


def _validate_sub_schemas(raw: Dict[str, Any]) -> Dict[str, BaseModel]:
    validated: Dict[str, BaseModel] = {}
    for name, cls in SUB_SCHEMA_CLASSES.items():
        if name in raw:
            try:
                validated[name] = cls.model_validate(raw[name] or {})
            except ValidationError as e:
                validate_error_type("config-invalid")
                metrics.inc(
                    "config_validation_errors_total",
                    {"path": name, "code": "config-invalid"},
                )
                raise ConfigError(
                    f"Validation failed for section '{name}': {e}"
                ) from e
    return validated


@lru_cache(maxsize=1)
def get_config() -> AggregatedConfig:  # noqa: D401
    with _lock:
        cfg_dir = _resolve_config_dir()
        base_cfg = _load_yaml_if_exists(cfg_dir / "base.yaml")
        overrides_cfg = _load_yaml_if_exists(cfg_dir / "overrides.local.yaml")
        merged = _merge_dict(base_cfg, overrides_cfg)
        _apply_env(merged)
        migrated = _migrate_legacy(merged)
        _normalize_and_validate(migrated)
        validated_sub = _validate_sub_schemas(migrated)
        top_level = {
            k: v for k, v in migrated.items() if k not in SUB_SCHEMA_CLASSES
        }
        try:
            return AggregatedConfig.model_validate(
                {**top_level, **validated_sub}
            )
        except ValidationError as e:
            raise ConfigError(str(e)) from e


def clear_config_cache() -> None:
    """Clear cached config (primarily for tests)."""
    get_config.cache_clear()


def as_dict() -> Dict[str, Any]:
    return get_config().model_dump()
