import json
from pathlib import Path

import pytest

from config.maintenance import load_config
from engine.diff import (
    DiffPlanEntry,
    DiffStrategy,
    build_plan,
    extract_detections,
    new_diff_list_set,
)
from engine.io.diff_writer import JsonDiffListSink, MemoryDiffListSink
from engine.planner.exceptions import ConfigurationError


def test_extract_uses_known_nested_field():
    audit = {"WindowsUpdates": {"pending_updates": [{"Title": "KB1"}], "count": 1}}
    assert extract_detections(audit, "WindowsUpdates") == [{"Title": "KB1"}]


def test_extract_falls_back_to_value_itself():
    audit = {
        "Custom": [1, 2],
        "Single": {"Name": "only"},
        "Scalar": "x",
    }
    assert extract_detections(audit, "Custom") == [1, 2]
    assert extract_detections(audit, "Single") == [{"Name": "only"}]
    assert extract_detections(audit, "Scalar") == ["x"]


def test_extract_missing_or_null_is_empty():
    assert extract_detections({}, "Anything") == []
    assert extract_detections({"Key": None}, "Key") == []
    assert extract_detections(None, "Key") == []
    assert extract_detections({"SecurityAudit": {"recommendations": None}}, "SecurityAudit") == []


def test_extract_explicit_nested_field():
    audit = {"Thing": {"items": ["a"]}}
    assert extract_detections(audit, "Thing", nested_field="items") == ["a"]


def test_build_plan_drops_skipped_rows():
    config = load_config()
    config["modules"]["skip_windows_updates"] = True

    plan = build_plan(config)
    names = [row.task_name for row in plan]

    assert "WindowsUpdates" not in names
    assert "BloatwareRemoval" in names
    assert all(row.enabled for row in plan)


def test_build_plan_applies_config_overrides():
    config = {
        "diff_plan": {
            "WindowsUpdates": {"audit_key": "UpdateScan"},
            "DiskCleanup": {
                "audit_key": "DiskAudit",
                "strategy": "PatternExclude",
                "config_section": "disk",
            },
        }
    }

    plan = {row.task_name: row for row in build_plan(config)}

    assert plan["WindowsUpdates"].audit_key == "UpdateScan"
    assert plan["WindowsUpdates"].strategy is DiffStrategy.PASSTHROUGH
    assert plan["DiskCleanup"].strategy is DiffStrategy.PATTERN_EXCLUDE


def test_build_plan_rejects_incomplete_new_row():
    with pytest.raises(ConfigurationError):
        build_plan({"diff_plan": {"NewTask": {"audit_key": "X"}}})

    with pytest.raises(ConfigurationError):
        build_plan({"diff_plan": {"NewTask": {"audit_key": "X", "strategy": "bogus"}}})


def test_new_diff_list_set_records_counts_and_persists():
    config = load_config()
    config["bloatware_list"] = ["Candy Crush"]
    config["updates"]["enabled"] = False
    audit = {
        "BloatwareDetection": [{"Name": "Candy Crush"}, {"Name": "Calculator"}],
        "WindowsUpdates": {"pending_updates": [{"Title": "KB1"}]},
    }
    sink = MemoryDiffListSink()

    diff = new_diff_list_set(build_plan(config), audit, config, sink)

    bloat = diff["BloatwareRemoval"]
    assert bloat.detected_count == 2
    assert bloat.actionable == ({"Name": "Candy Crush"},)
    assert bloat.reason == "2 detected, 1 actionable"
    assert bloat.location == "memory://BloatwareRemoval"
    assert sink.lists["BloatwareRemoval"] == [{"Name": "Candy Crush"}]

    updates = diff["WindowsUpdates"]
    assert updates.detected_count == 1
    assert updates.actionable == ()

    # Rows with no audit data still get an (empty) result
    assert diff["SecurityEnhancement"].reason == "0 detected, 0 actionable"


def test_new_diff_list_set_tolerates_missing_config_sections():
    plan = [
        DiffPlanEntry(
            task_name="Custom",
            audit_key="CustomAudit",
            strategy=DiffStrategy.POLICY_GATE,
            config_section="not_there",
        )
    ]

    diff = new_diff_list_set(plan, {"CustomAudit": ["a", "b"]}, {}, None)

    assert diff["Custom"].actionable == ("a", "b")
    assert diff["Custom"].location is None


def test_json_sink_writes_one_file_per_task(tmp_path):
    sink = JsonDiffListSink(str(tmp_path / "diff"))

    location = sink.persist("Bloatware Removal", [{"Name": "X"}])

    assert location.endswith("Bloatware_Removal-diff.json")
    assert json.loads(Path(location).read_text(encoding="utf-8")) == [{"Name": "X"}]
