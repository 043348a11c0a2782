import json
import textwrap
from pathlib import Path
from unittest.mock import Mock

import pytest

from config.maintenance import get_flag, get_section, load_config
from engine.discovery.manifest import load_task_manifest, resolve_entry_point
from engine.io.audit_reader import load_audit_results
from engine.io.diff_writer import MemoryDiffListSink
from engine.planner.exceptions import ConfigurationError
from engine.reporting.json_writer import JsonReportSink, summarize_results
from engine.scheduler.executor import ExecutionEngine
from engine.scheduler.runtime import RunContext
from engine.scheduler.types import TaskState
from engine.services.maintenance_runner import MaintenanceRunner


@pytest.fixture
def task_module(tmp_path, monkeypatch):
    module = tmp_path / "sample_tasks.py"
    module.write_text(
        textwrap.dedent(
            """
            CALLS = []

            def audit(**kwargs):
                CALLS.append("audit")
                return {"ok": True}

            def remove_bloatware(actionable_items, dry_run):
                CALLS.append("remove")
                return {"removed": [i["Name"] for i in actionable_items or []]}

            def broken():
                raise RuntimeError("registry key not found")
            """
        ),
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    return "sample_tasks"


def _write(path: Path, data) -> str:
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


# -------------------------
# CONFIG
# -------------------------

def test_load_config_merges_defaults(tmp_path):
    path = _write(tmp_path / "config.json", {"modules": {"skip_app_upgrade": True}, "bloatware_list": ["X"]})

    config = load_config(path)

    assert config["modules"]["skip_app_upgrade"] is True
    assert config["modules"]["skip_bloatware_removal"] is False
    assert config["bloatware_list"] == ["X"]
    assert get_flag(config, "modules.skip_app_upgrade") is True
    assert get_flag(config, "modules.nope") is False
    assert get_section(config, "missing") == {}


def test_load_config_rejects_bad_documents(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(str(bad))
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path / "list.json", [1, 2]))
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "absent.json"))


# -------------------------
# DISCOVERY
# -------------------------

def test_manifest_builds_descriptors(tmp_path, task_module):
    manifest = _write(
        tmp_path / "tasks.json",
        {
            "tasks": [
                {"name": "Audit", "depends_on": [], "entry_point": f"{task_module}:audit"},
                {
                    "name": "BloatwareRemoval",
                    "category": "Bloatware",
                    "depends_on": ["Audit"],
                    "entry_point": f"{task_module}:remove_bloatware",
                    "requires_elevation": True,
                    "timeout_seconds": 30,
                },
            ]
        },
    )

    descriptors = load_task_manifest(manifest)

    assert [d.name for d in descriptors] == ["Audit", "BloatwareRemoval"]
    assert descriptors[1].depends_on == frozenset({"Audit"})
    assert descriptors[1].requires_elevation is True
    assert callable(descriptors[0].entry_point)


@pytest.mark.parametrize(
    "entry",
    [
        {"name": "NoDeps", "entry_point": "sample_tasks:audit"},
        {"name": "Bad", "depends_on": [], "entry_point": "no_colon"},
        {"name": "Zero", "depends_on": [], "entry_point": "sample_tasks:audit", "timeout_seconds": 0},
        {"name": "Loop", "depends_on": ["Loop"], "entry_point": "sample_tasks:audit"},
        {"name": "Gone", "depends_on": [], "entry_point": "sample_tasks:does_not_exist"},
    ],
)
def test_manifest_rejects_invalid_entries(tmp_path, task_module, entry):
    manifest = _write(tmp_path / "tasks.json", [entry])
    with pytest.raises(ConfigurationError):
        load_task_manifest(manifest)


def test_resolve_entry_point_missing_module():
    with pytest.raises(ConfigurationError):
        resolve_entry_point("definitely_not_a_module_xyz:run")


# -------------------------
# AUDIT + REPORT
# -------------------------

def test_audit_results_from_directory(tmp_path):
    audit_dir = tmp_path / "audit"
    audit_dir.mkdir()
    _write(audit_dir / "BloatwareDetection.json", [{"Name": "X"}])
    _write(audit_dir / "WindowsUpdates.json", {"pending_updates": []})

    results = load_audit_results(str(audit_dir))

    assert set(results) == {"BloatwareDetection", "WindowsUpdates"}


def test_report_sink_writes_summary(tmp_path):
    engine = ExecutionEngine(RunContext(privilege_check=lambda: True))
    runner = MaintenanceRunner(engine, result_sink=JsonReportSink(str(tmp_path)))

    run = runner.run()

    assert run.results == []
    assert run.summary["total"] == 0
    report = json.loads(Path(run.report).read_text(encoding="utf-8"))
    assert report["summary"]["by_status"]["SUCCESS"] == 0


def test_report_includes_diff_lists(tmp_path):
    config = load_config()
    config["bloatware_list"] = ["Candy Crush"]
    engine = ExecutionEngine(RunContext(privilege_check=lambda: True))
    runner = MaintenanceRunner(engine, config=config, result_sink=JsonReportSink(str(tmp_path)))

    run = runner.run(audit_results={"BloatwareDetection": [{"Name": "Candy Crush"}]})

    report = json.loads(Path(run.report).read_text(encoding="utf-8"))
    assert report["diff"]["BloatwareRemoval"]["actionable"] == [{"Name": "Candy Crush"}]


# -------------------------
# END TO END
# -------------------------

def test_full_run(tmp_path, task_module):
    manifest = _write(
        tmp_path / "tasks.json",
        [
            {"name": "Audit", "depends_on": [], "entry_point": f"{task_module}:audit"},
            {"name": "BloatwareRemoval", "depends_on": ["Audit"], "entry_point": f"{task_module}:remove_bloatware"},
            {"name": "Broken", "depends_on": [], "entry_point": f"{task_module}:broken"},
            {"name": "AfterBroken", "depends_on": ["Broken"], "entry_point": f"{task_module}:audit"},
        ],
    )
    config = load_config()
    config["bloatware_list"] = ["Candy Crush"]
    audit = {"BloatwareDetection": [{"Name": "Candy Crush"}, {"Name": "Calculator"}]}
    diff_sink = MemoryDiffListSink()
    result_sink = Mock()

    runner = MaintenanceRunner.from_descriptors(
        load_task_manifest(manifest),
        engine=ExecutionEngine(RunContext(privilege_check=lambda: True)),
        config=config,
        diff_sink=diff_sink,
        result_sink=result_sink,
    )

    run = runner.run(audit_results=audit)
    results = {r.task_name: r for r in run.results}

    assert results["Audit"].status is TaskState.SUCCESS
    assert results["BloatwareRemoval"].output == {"removed": ["Candy Crush"]}
    assert results["Broken"].status is TaskState.FAILED
    assert "not-found" in [t.value for t in results["Broken"].error_tags]
    assert results["AfterBroken"].status is TaskState.DEPENDENCY_FAILURE
    assert diff_sink.lists["BloatwareRemoval"] == [{"Name": "Candy Crush"}]

    result_sink.accept.assert_called_once_with(run.results, run.summary, diff=run.diff)
    assert run.summary == summarize_results(run.results)
    assert run.summary["succeeded"] == 2
