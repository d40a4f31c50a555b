import logging
from pathlib import Path

import pytest

from modrules import eventbus, metrics
from modrules.descriptor import (
    DescriptorNotFound,
    MalformedDescriptor,
    load_file,
)

SOURCE = (
    "using UnrealBuildTool;\n"
    "public class Named : ModuleRules\n"
    "{\n"
    "    public Named(ReadOnlyTargetRules Target) : base(Target)\n"
    "    {\n"
    '        PublicDependencyModuleNames.Add("Core");\n'
    "    }\n"
    "}\n"
)


def test_missing_file(tmp_path: Path):
    with pytest.raises(DescriptorNotFound):
        load_file(tmp_path / "Nope.Build.cs")


def test_bom_tolerated(tmp_path: Path):
    path = tmp_path / "Named.Build.cs"
    path.write_bytes(b"\xef\xbb\xbf" + SOURCE.encode("utf-8"))
    assert load_file(path).public_dependencies == {"Core"}


def test_name_mismatch_warns_but_loads(tmp_path: Path, caplog):
    metrics.reset_for_tests()
    path = tmp_path / "Other.Build.cs"
    path.write_text(SOURCE, encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="modrules"):
        desc = load_file(path)
    assert desc.name == "Named"
    assert metrics.counter_value("descriptor_name_mismatch_total") == 1
    assert "descriptor-name-mismatch" in caplog.text


def test_malformed_error_carries_path(tmp_path: Path):
    path = tmp_path / "Broken.Build.cs"
    path.write_text("public class Broken : ModuleRules {", encoding="utf-8")
    with pytest.raises(MalformedDescriptor) as exc:
        load_file(path)
    assert exc.value.path == str(path)
    assert str(path) in str(exc.value)


def test_yaml_manifest_file(tmp_path: Path):
    path = tmp_path / "Plain.module.yaml"
    path.write_text(
        "name: Plain\n"
        "pch_usage: NoPCHs\n"
        "properties:\n"
        "  PrivateDependencyModuleNames: [Core, Engine]\n",
        encoding="utf-8",
    )
    desc = load_file(path)
    assert desc.name == "Plain"
    assert desc.private_dependencies == {"Core", "Engine"}


@pytest.mark.parametrize(
    "text",
    [
        "properties: {}\n",
        "- just\n- a list\n",
        "name: Bad\nunexpected: 1\n",
        "name: [unclosed\n",
    ],
)
def test_yaml_manifest_malformed(tmp_path: Path, text):
    path = tmp_path / "Bad.module.yaml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(MalformedDescriptor):
        load_file(path)


def test_load_events_emitted(tmp_path: Path):
    loaded, failed = [], []
    on_loaded = loaded.append
    on_failed = failed.append
    eventbus.subscribe("DescriptorLoaded", on_loaded)
    eventbus.subscribe("DescriptorLoadFailed", on_failed)
    try:
        good = tmp_path / "Named.Build.cs"
        good.write_text(SOURCE, encoding="utf-8")
        bad = tmp_path / "Empty.Build.cs"
        bad.write_text("", encoding="utf-8")
        load_file(good)
        with pytest.raises(MalformedDescriptor):
            load_file(bad)
    finally:
        eventbus.unsubscribe("DescriptorLoaded", on_loaded)
        eventbus.unsubscribe("DescriptorLoadFailed", on_failed)
    assert [e["module"] for e in loaded] == ["Named"]
    assert loaded[0]["format"] == "buildcs"
    assert failed[0]["error_type"] == "malformed-descriptor"
    assert "ts" in failed[0]
