import argparse
import signal
import sys
from contextlib import contextmanager

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from config.maintenance import load_config
from config.settings import get_settings
from engine.io.audit_reader import load_audit_results
from engine.io.diff_writer import JsonDiffListSink
from engine.discovery.manifest import load_task_manifest
from engine.logger import set_level
from engine.planner.exceptions import OrchestrationError
from engine.reporting.json_writer import JsonReportSink
from engine.scheduler.executor import ExecutionEngine
from engine.scheduler.runtime import RunContext
from engine.scheduler.types import TaskState
from engine.services.maintenance_runner import MaintenanceRunner

console = Console()

STATUS_STYLES = {
    TaskState.SUCCESS: "bold green",
    TaskState.PARTIAL_SUCCESS: "yellow",
    TaskState.DRY_RUN: "cyan",
    TaskState.SKIPPED: "dim",
    TaskState.FAILED: "bold red",
    TaskState.TIMEOUT: "red",
    TaskState.CANCELLED: "magenta",
    TaskState.DEPENDENCY_FAILURE: "red",
}


def print_header():
    console.print(Panel.fit(Text("Maintenance Runner", style="bold cyan"), border_style="blue"))


def print_error(message, details=None):
    console.print(f"[bold red]Error:[/bold red] {message}")
    if details:
        console.print(Panel(str(details), title="Details", border_style="red"))


class RichProgressListener:
    """Advances a rich progress bar on every finished task."""

    def __init__(self, progress: Progress, task_id, metrics, total: int):
        self.progress = progress
        self.task_id = task_id
        self.metrics = metrics
        self.total = total
        self.done = 0

    def on_task_complete(self, result):
        self.done += 1
        eta = self.metrics.estimate_remaining(self.total - self.done)
        self.progress.update(
            self.task_id,
            advance=1,
            description=f"{result.task_name} {result.status.value} ({result.duration_seconds:.1f}s, ETA {eta:.0f}s)",
        )


@contextmanager
def cancel_on_interrupt(engine):
    """
    First Ctrl-C cancels the run; tasks not yet dispatched end up CANCELLED
    and the report is still written. A second Ctrl-C aborts.
    """

    def handler(signum, frame):
        if engine.cancelled:
            raise KeyboardInterrupt
        console.print("\n[yellow]Cancelling: waiting for running tasks to finish...[/yellow]")
        engine.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _build_runner(args, context=None):
    settings = get_settings()
    config = load_config(args.config or settings.CONFIG_PATH)
    descriptors = load_task_manifest(args.manifest)

    engine = ExecutionEngine(context or RunContext.from_settings(settings))
    output_dir = getattr(args, "output_dir", None) or settings.OUTPUT_DIR

    return MaintenanceRunner.from_descriptors(
        descriptors,
        engine=engine,
        config=config,
        diff_sink=JsonDiffListSink(f"{output_dir}/diff"),
        result_sink=JsonReportSink(f"{output_dir}/reports"),
    )


def handle_plan(args):
    runner = _build_runner(args)
    graph = runner.engine.build_graph()
    graph.ensure_acyclic()

    violations = graph.validate_references(runner.engine.registry.names())
    for violation in violations:
        console.print(f"[yellow]Warning:[/yellow] {violation}")

    table = Table(title="Execution Levels", show_header=True, header_style="bold magenta")
    table.add_column("Level", style="dim")
    table.add_column("Tasks", style="bold white")
    for index, level in enumerate(graph.compute_levels()):
        table.add_row(str(index), ", ".join(level))
    console.print(table)
    return 0


def handle_diff(args):
    runner = _build_runner(args)
    audit = load_audit_results(args.audit) if args.audit else {}
    diff = runner.compute_diff(audit)

    table = Table(title="Diff Lists", show_header=True, header_style="bold magenta")
    table.add_column("Task", style="bold white")
    table.add_column("Detected", justify="right")
    table.add_column("Actionable", justify="right")
    table.add_column("Location", style="dim")
    for name, result in diff.items():
        table.add_row(name, str(result.detected_count), str(result.actionable_count), result.location or "-")
    console.print(table)
    return 0


def handle_run(args):
    settings = get_settings()
    context = RunContext.from_settings(
        settings,
        dry_run=True if args.dry_run else None,
        best_effort_privilege=True if args.force else None,
        max_parallel_tasks=args.parallel,
    )
    runner = _build_runner(args, context)
    audit = load_audit_results(args.audit) if args.audit else {}
    selected = [name.strip() for name in args.only.split(",") if name.strip()] if args.only else None
    total = len(selected) if selected else len(runner.engine.registry)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task("Starting...", total=total)
        context.listeners.append(RichProgressListener(progress, bar, context.metrics, total))
        with cancel_on_interrupt(runner.engine):
            run = runner.run(audit_results=audit, selected=selected)

    table = Table(title="Maintenance Results", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Task", style="bold white")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Details", style="dim")
    for result in run.results:
        style = STATUS_STYLES.get(result.status, "white")
        table.add_row(
            str(result.sequence),
            result.task_name,
            f"[{style}]{result.status.value}[/{style}]",
            f"{result.duration_seconds:.2f}s",
            result.error_message or "; ".join(result.warnings),
        )
    console.print(table)

    stats = context.metrics.snapshot()
    console.print(f"[dim]Mean task duration: {stats['mean_task_duration_seconds']}s[/dim]")

    if run.report:
        console.print(f"\n[dim]Report: {run.report}[/dim]")

    return 0 if run.summary["succeeded"] == run.summary["total"] else 1


def build_parser():
    parser = argparse.ArgumentParser(description="Single-host maintenance task runner")
    parser.add_argument("--manifest", required=True, help="Task manifest (JSON)")
    parser.add_argument("--config", help="Maintenance config (JSON)")
    parser.add_argument("--log-level", help="Override MAINT_LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Show execution levels")
    plan_parser.set_defaults(func=handle_plan)

    diff_parser = subparsers.add_parser("diff", help="Compute actionable lists")
    diff_parser.add_argument("--audit", help="Audit results file or directory")
    diff_parser.add_argument("--output-dir", help="Where diff lists are written")
    diff_parser.set_defaults(func=handle_diff)

    run_parser = subparsers.add_parser("run", help="Execute tasks")
    run_parser.add_argument("--audit", help="Audit results file or directory")
    run_parser.add_argument("--only", help="Comma-separated task names")
    run_parser.add_argument("--dry-run", action="store_true")
    run_parser.add_argument("--force", action="store_true", help="Run elevated tasks without rights")
    run_parser.add_argument("--parallel", type=int, help="Max tasks per level run at once")
    run_parser.add_argument("--output-dir", help="Where diff lists and reports are written")
    run_parser.set_defaults(func=handle_run)

    return parser


def main(argv=None):
    print_header()
    args = build_parser().parse_args(argv)
    set_level(args.log_level or get_settings().LOG_LEVEL)

    try:
        return args.func(args)
    except OrchestrationError as exc:
        print_error(type(exc).__name__, str(exc))
        return 2


if __name__ == "__main__":
    sys.exit(main())
