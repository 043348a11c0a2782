import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

from engine.reporting.exceptions import ReportIOError
from engine.scheduler.results import ExecutionResult
from engine.scheduler.types import TaskState


def summarize_results(results: Sequence[ExecutionResult]) -> Dict[str, Any]:
    """
    Counts per status plus total duration. JSON-serializable.
    """

    by_status = {state.value: 0 for state in TaskState if state.is_terminal}
    for result in results:
        by_status[result.status.value] += 1

    return {
        "correlation_id": results[0].correlation_id if results else None,
        "total": len(results),
        "succeeded": sum(1 for r in results if r.succeeded),
        "by_status": by_status,
        "duration_seconds": round(sum(r.duration_seconds for r in results), 3),
    }


class JsonReportSink:
    """
    Writes the run report consumed by the maintenance dashboard.
    """

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir)
        self.last_path: Optional[str] = None

    def accept(
        self,
        results: Sequence[ExecutionResult],
        summary: Optional[Mapping[str, Any]] = None,
        diff: Optional[Mapping[str, Any]] = None,
    ) -> str:
        summary = dict(summary or summarize_results(results))
        run_id = summary.get("correlation_id") or "run"
        out = self.output_dir / f"{run_id}.json"

        document = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "summary": summary,
            "results": [r.to_dict() for r in results],
        }
        if diff:
            document["diff"] = {name: d.to_dict() for name, d in diff.items()}

        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            with out.open("w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2, default=str)
        except OSError as exc:
            raise ReportIOError(str(exc)) from exc

        self.last_path = str(out)
        return self.last_path
