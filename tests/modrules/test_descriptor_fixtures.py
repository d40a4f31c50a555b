from modrules.descriptor import PCHUsageMode, load, load_file


def test_all_fixture_names_match_declared_module(fixture_files):
    assert len(fixture_files) == 7
    for name, path in fixture_files.items():
        assert load_file(path).name == name


def test_water_editor(fixture_files):
    desc = load_file(fixture_files["WaterEditor"])
    assert desc.pch_usage is PCHUsageMode.UseExplicitOrSharedPCHs
    assert desc.private_include_paths == ("Editor/Private",)
    assert desc.public_dependencies == set()
    assert desc.private_include_path_module_names == set()
    assert {"Water", "Landmass", "RHI"} <= desc.private_dependencies
    deps = desc.property_list("PrivateDependencyModuleNames")
    assert deps.count("ComponentVisualizers") == 2
    assert len(deps) == 21


def test_dataprep_editor_keeps_duplicate_entry(fixture_files):
    desc = load_file(fixture_files["DataprepEditor"])
    deps = desc.property_list("PrivateDependencyModuleNames")
    assert deps.count("EditorWidgets") == 2
    assert deps[0] == "AdvancedPreviewScene"
    assert deps[-1] == "UnrealEd"
    assert desc.private_include_paths == ("DataprepCore/Private/Shared",)
    assert desc.pch_usage is None


def test_composure_editor_public_and_private(fixture_files):
    desc = load_file(fixture_files["ComposureEditor"])
    assert desc.public_dependencies == {
        "Core",
        "CoreUObject",
        "Engine",
        "InputCore",
    }
    assert "Sequencer" in desc.private_dependencies
    assert desc.private_include_paths == ()


def test_asset_search_overlapping_public_private(fixture_files):
    desc = load_file(fixture_files["AssetSearch"])
    assert desc.public_dependencies == {"Core", "CoreUObject", "Engine", "Json"}
    assert desc.public_dependencies <= desc.private_dependencies
    assert "SQLiteCore" in desc.private_dependencies


def test_flurry_editor_include_path_modules(fixture_files):
    desc = load_file(fixture_files["FlurryEditor"])
    assert desc.private_include_paths == ("FlurryEditor/Private",)
    assert desc.private_include_path_module_names == {"Settings"}
    assert desc.private_dependencies == {
        "Core",
        "CoreUObject",
        "Analytics",
        "AnalyticsVisualEditing",
        "Engine",
        "Projects",
        "DeveloperSettings",
    }


def test_open_color_io_editor_empty_lists_dropped(fixture_files):
    desc = load_file(fixture_files["OpenColorIOEditor"])
    assert set(desc.properties) == {"PrivateDependencyModuleNames"}
    assert "OpenColorIOLib" in desc.private_dependencies


def test_timed_data_monitor_editor_lowercase_suffix(fixture_files):
    path = fixture_files["TimedDataMonitorEditor"]
    assert path.name == "TimedDataMonitorEditor.build.cs"
    desc = load_file(path)
    assert desc.name == "TimedDataMonitorEditor"
    assert set(desc.properties) == {"PrivateDependencyModuleNames"}
    deps = desc.property_list("PrivateDependencyModuleNames")
    assert len(deps) == 15
    assert deps[0] == "Core" and deps[-1] == "WorkspaceMenuStructure"
    assert {"MessageLog", "Projects", "Settings", "TimeManagementEditor"} <= set(
        deps
    )
    assert load(path.read_text(encoding="utf-8")) == desc
