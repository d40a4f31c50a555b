import logging
from pathlib import Path

import pytest

from modrules import metrics
from modrules.config import (
    AggregatedConfig,
    ConfigError,
    as_dict,
    clear_config_cache,
    get_config,
)


def _temp_config(monkeypatch, tmp_path: Path, yaml_text: str) -> None:
    (tmp_path / "base.yaml").write_text(yaml_text, encoding="utf-8")
    monkeypatch.setenv("MODRULES_CONFIG_DIR", str(tmp_path))
    clear_config_cache()


def test_repo_base_config_loads():
    cfg = get_config()
    assert isinstance(cfg, AggregatedConfig)
    assert cfg.schema_version == 1
    assert "*.Build.cs" in cfg.scan.patterns
    assert "Intermediate" in cfg.scan.exclude_dirs
    assert cfg.parser.strict is False
    assert cfg.logging.format == "text"
    assert get_config() is cfg


def test_overrides_local_wins(monkeypatch, tmp_path: Path):
    _temp_config(monkeypatch, tmp_path, "schema_version: 1\nscan: {root: a}\n")
    (tmp_path / "overrides.local.yaml").write_text(
        "scan: {root: b, max_workers: 2}\n", encoding="utf-8"
    )
    cfg = get_config()
    assert cfg.scan.root == "b"
    assert cfg.scan.max_workers == 2
    assert cfg.scan.on_error == "skip"


def test_env_override_metric_and_logging(monkeypatch, caplog):
    metrics.reset_for_tests()
    monkeypatch.setenv("MODRULES__PARSER__STRICT", "true")
    monkeypatch.setenv("MODRULES__SCAN__PATTERNS", "*.Build.cs, *.rules.yaml")
    with caplog.at_level(logging.INFO, logger="modrules"):
        cfg = as_dict()
    assert cfg["parser"]["strict"] is True
    assert cfg["scan"]["patterns"] == ["*.Build.cs", "*.rules.yaml"]
    assert metrics.counter_value(
        "env_override_total", {"path": "parser.strict"}
    ) == 1
    assert "config-env-override" in caplog.text
    assert "path=scan.patterns" in caplog.text


def test_out_of_range_rejected(monkeypatch):
    metrics.reset_for_tests()
    monkeypatch.setenv("MODRULES__SCAN__MAX_WORKERS", "0")
    with pytest.raises(ConfigError) as exc:
        get_config()
    assert "scan.max_workers" in str(exc.value)
    counters = metrics.snapshot()["counters"]
    assert any(
        k.startswith("config_validation_errors_total{code=config-out-of-range")
        for k in counters
    )


def test_unknown_key_rejected(monkeypatch, tmp_path: Path):
    _temp_config(monkeypatch, tmp_path, "schema_version: 1\nscan: {bogus: 1}\n")
    with pytest.raises(ConfigError) as exc:
        get_config()
    assert "scan" in str(exc.value)


def test_invalid_yaml_rejected(monkeypatch, tmp_path: Path):
    _temp_config(monkeypatch, tmp_path, "scan: [unclosed\n")
    with pytest.raises(ConfigError):
        get_config()


def test_missing_schema_version_migrated(monkeypatch, tmp_path: Path, caplog):
    _temp_config(monkeypatch, tmp_path, "api: {port: 9001}\n")
    with caplog.at_level(logging.WARNING, logger="modrules"):
        cfg = get_config()
    assert cfg.schema_version == 1
    assert cfg.api.port == 9001
    assert "config-migration" in caplog.text


def test_empty_config_dir_uses_defaults(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("MODRULES_CONFIG_DIR", str(tmp_path))
    clear_config_cache()
    cfg = get_config()
    assert cfg.scan.root == "."
    assert cfg.api.port == 8000
