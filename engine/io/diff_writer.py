import json
import re
from pathlib import Path
from typing import Any, Dict, List, Sequence

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class JsonDiffListSink:
    """
    Writes each task's actionable list to `<directory>/<task>-diff.json`.

    One file per task, overwritten on every run.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def persist(self, task_name: str, data: Sequence[Any]) -> str:
        safe_name = _UNSAFE_CHARS.sub("_", task_name) or "task"
        path = self.directory / f"{safe_name}-diff.json"
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w", encoding="utf-8") as f:
            json.dump(list(data), f, ensure_ascii=False, indent=2, default=str)

        return str(path)


class MemoryDiffListSink:
    """In-process sink. Locations are `memory://<task>`."""

    def __init__(self):
        self.lists: Dict[str, List[Any]] = {}

    def persist(self, task_name: str, data: Sequence[Any]) -> str:
        self.lists[task_name] = list(data)
        return f"memory://{task_name}"
