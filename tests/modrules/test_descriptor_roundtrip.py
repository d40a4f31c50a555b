import pytest
from pydantic import ValidationError

from modrules.descriptor import (
    MalformedDescriptor,
    ModuleDescriptor,
    PCHUsageMode,
    dump,
    dump_yaml,
    load,
    load_file,
    load_yaml,
)


def test_fixtures_survive_dump_and_reload(fixture_files):
    for path in fixture_files.values():
        original = load_file(path)
        again = load(dump(original))
        assert again == original
        # ordered view (include paths, duplicates) kept too
        assert again.properties == original.properties
        assert again.private_include_paths == original.private_include_paths


def test_dump_escapes_and_scalars_roundtrip():
    desc = ModuleDescriptor(
        name="Tricky",
        pch_usage=PCHUsageMode.NoSharedPCHs,
        properties={
            "PublicDefinitions": ['PATH="C:\\SDK"', "TAB\tSEP"],
            "PublicIncludePaths": ["Zeta", "Alpha"],
        },
        settings={"bFlag": False, "Count": 3, "Ratio": 0.25, "Short": "T"},
        symbols={"OptimizeCode": "CodeOptimization.InShippingBuildsOnly"},
    )
    text = dump(desc)
    assert "public class Tricky : ModuleRules" in text
    assert "PCHUsage = ModuleRules.PCHUsageMode.NoSharedPCHs;" in text
    assert load(text) == desc
    assert load(text).public_include_paths == ("Zeta", "Alpha")


def test_yaml_manifest_roundtrip(fixture_files):
    original = load_file(fixture_files["WaterEditor"])
    text = dump_yaml(original)
    assert text.startswith("name: WaterEditor")
    assert load_yaml(text) == original


def test_control_characters_roundtrip():
    desc = ModuleDescriptor(
        name="Controls",
        properties={
            "PublicDefinitions": ["\a\b\f\v", "NUL=\0", "ESC=\x1b", "é😀"]
        },
    )
    text = dump(desc)
    assert "\\a\\b\\f\\v" in text
    assert "\\u001b" in text
    assert load(text) == desc


@pytest.mark.parametrize(
    "manifest",
    [
        "name: A\nsettings: {Ratio: .inf}\n",
        "name: A\nsettings: {Ratio: .nan}\n",
        "name: A\nsymbols: {Mode: 'true'}\n",
        "name: A\nsymbols: {Mode: if}\n",
        "name: A\nsymbols: {Mode: Opt.while}\n",
        "name: A\nsettings: {if: 1}\n",
        "name: A\nproperties: {this: [x]}\n",
        "name: A\nsettings: {Mode: 1}\nsymbols: {Mode: Opt.Fast}\n",
    ],
)
def test_values_that_cannot_roundtrip_are_rejected(manifest):
    with pytest.raises(MalformedDescriptor):
        load_yaml(manifest)


def test_rejected_directly_on_the_model():
    with pytest.raises(ValidationError):
        ModuleDescriptor(name="A", settings={"Ratio": float("inf")})
    with pytest.raises(ValidationError):
        ModuleDescriptor(name="A", symbols={"Mode": "false"})
    with pytest.raises(ValidationError):
        ModuleDescriptor(
            name="A", settings={"Mode": 1}, symbols={"Mode": "Opt.Fast"}
        )


def test_symbol_may_contain_keyword_like_prefix():
    desc = ModuleDescriptor(
        name="A", symbols={"Mode": "trueish.Value", "Other": "this.Field"}
    )
    assert load(dump(desc)) == desc
