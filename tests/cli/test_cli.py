import json
import signal
import sys
import textwrap
from pathlib import Path
from unittest.mock import Mock

import pytest

from cli.cli import cancel_on_interrupt, main


@pytest.fixture
def interrupting_tasks(tmp_path, monkeypatch):
    module = tmp_path / "interrupting_tasks.py"
    module.write_text(
        textwrap.dedent(
            """
            import signal
            import threading
            import time

            def interrupt():
                signal.pthread_kill(threading.main_thread().ident, signal.SIGINT)
                time.sleep(0.3)
                return "done"

            def later():
                return "ran"
            """
        ),
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    return "interrupting_tasks"


def test_interrupt_handler_cancels_then_aborts():
    engine = Mock(cancelled=False)
    previous = signal.getsignal(signal.SIGINT)

    with cancel_on_interrupt(engine):
        handler = signal.getsignal(signal.SIGINT)
        handler(signal.SIGINT, None)
        engine.cancel.assert_called_once()

        engine.cancelled = True
        with pytest.raises(KeyboardInterrupt):
            handler(signal.SIGINT, None)

    assert signal.getsignal(signal.SIGINT) is previous


@pytest.mark.skipif(
    sys.platform == "win32" or not hasattr(signal, "pthread_kill"),
    reason="needs POSIX signal delivery to the main thread",
)
def test_ctrl_c_mid_run_cancels_pending_tasks_and_writes_report(tmp_path, interrupting_tasks):
    manifest = tmp_path / "tasks.json"
    manifest.write_text(
        json.dumps(
            [
                {"name": "First", "depends_on": [], "entry_point": f"{interrupting_tasks}:interrupt"},
                {"name": "Second", "depends_on": ["First"], "entry_point": f"{interrupting_tasks}:later"},
            ]
        ),
        encoding="utf-8",
    )
    output_dir = tmp_path / "out"

    code = main(["--manifest", str(manifest), "run", "--output-dir", str(output_dir)])

    assert code == 1
    reports = list((output_dir / "reports").glob("*.json"))
    assert len(reports) == 1
    report = json.loads(reports[0].read_text(encoding="utf-8"))
    statuses = {r["task_name"]: r["status"] for r in report["results"]}
    assert statuses == {"First": "SUCCESS", "Second": "CANCELLED"}
    assert report["summary"]["by_status"]["CANCELLED"] == 1
