from modrules.checks import check_descriptor, check_index, has_errors
from modrules.descriptor import ModuleDescriptor, load_file
from modrules.registry import scan_modules


def _codes(findings):
    return sorted(f.code for f in findings)


def test_dataprep_duplicate_entry_reported_once(fixture_files):
    findings = check_descriptor(load_file(fixture_files["DataprepEditor"]))
    dups = [f for f in findings if f.code == "duplicate-entry"]
    assert len(dups) == 1
    assert dups[0].property == "PrivateDependencyModuleNames"
    assert "EditorWidgets" in dups[0].message
    assert dups[0].severity == "warning"
    assert not has_errors(findings)


def test_self_dependency_is_error():
    desc = ModuleDescriptor(
        name="Loop",
        properties={"PublicDependencyModuleNames": ["Core", "Loop"]},
    )
    findings = check_descriptor(desc)
    assert _codes(findings) == ["self-dependency"]
    assert has_errors(findings)


def test_absolute_include_paths_flagged():
    desc = ModuleDescriptor(
        name="Paths",
        properties={
            "PublicIncludePaths": ["/usr/include", "Public"],
            "PrivateIncludePaths": ["C:\\SDK\\Include"],
        },
    )
    findings = check_descriptor(desc)
    assert _codes(findings) == ["absolute-include-path"] * 2


def test_unknown_property_is_info():
    desc = ModuleDescriptor(
        name="Odd", properties={"ExtraThingies": ["a"]}
    )
    (finding,) = check_descriptor(desc)
    assert finding.code == "unknown-property"
    assert finding.severity == "info"
    assert finding.to_dict()["property"] == "ExtraThingies"


def test_clean_fixtures_have_no_errors(fixtures_dir):
    findings = check_index(scan_modules(fixtures_dir))
    assert not has_errors(findings)
    assert {f.module for f in findings} == {"DataprepEditor", "WaterEditor"}


def test_load_failures_become_findings(tmp_path):
    (tmp_path / "Broken.Build.cs").write_text("class", encoding="utf-8")
    findings = check_index(scan_modules(tmp_path))
    assert _codes(findings) == ["load-failed"]
    assert findings[0].module.endswith("Broken.Build.cs")
    assert findings[0].message.startswith("malformed-descriptor:")
    assert has_errors(findings)
