import argparse
import logging
import sys
from pathlib import Path

from docker.errors import DockerException
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .client import DockerRuntimeClient
from .daemon import GoalControlDaemon
from .errors import GoalError
from .loader import load_goals
from .scheduler import apply_graph, plan_rounds
from .settings import get_settings

console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _print_rounds(rounds: list[list[str]], title: str) -> None:
    table = Table(title=title)
    table.add_column("Round", justify="right")
    table.add_column("Containers")
    for i, names in enumerate(rounds, start=1):
        table.add_row(str(i), ", ".join(names))
    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="goal-control", description="Reach a set of container goals")
    p.add_argument("--file", type=Path, help="Goal file (default: GOAL_GOALS_FILE or goals.yaml)")
    p.add_argument("--log-level", help="Logging level (default: GOAL_LOG_LEVEL or INFO)")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_apply = sub.add_parser("apply", help="Reconcile the goal file once")
    s_apply.add_argument("--max-workers", type=int, help="Containers reconciled at once within a round")

    sub.add_parser("plan", help="Show the start rounds without touching the runtime")

    s_watch = sub.add_parser("watch", help="Reconcile the goal file periodically")
    s_watch.add_argument("--interval", type=int, help="Seconds between reconciliations")
    s_watch.add_argument("--max-workers", type=int, help="Containers reconciled at once within a round")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.file:
        overrides["GOALS_FILE"] = args.file
    if getattr(args, "max_workers", None):
        overrides["MAX_WORKERS"] = args.max_workers
    if getattr(args, "interval", None):
        overrides["POLLING_INTERVAL"] = args.interval
    if args.log_level:
        overrides["LOG_LEVEL"] = args.log_level
    settings = get_settings().model_copy(update=overrides)

    configure_logging(settings.LOG_LEVEL)

    if args.cmd == "watch":
        try:
            daemon = GoalControlDaemon(settings=settings, console=console)
        except DockerException as e:
            console.print(f"[bold red]CRITICAL: Could not connect to Docker Daemon.[/] {e}")
            return 1
        daemon.start()
        return 0

    try:
        goals = load_goals(settings.GOALS_FILE)
        if args.cmd == "plan":
            _print_rounds(plan_rounds(goals), title=f"Plan for {settings.GOALS_FILE}")
            return 0

        try:
            client = DockerRuntimeClient.from_settings(settings)
        except DockerException as e:
            console.print(f"[bold red]CRITICAL: Could not connect to Docker Daemon.[/] {e}")
            return 1

        rounds = apply_graph(client, goals, max_workers=settings.MAX_WORKERS)
    except GoalError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1

    _print_rounds(rounds, title="Goals reached")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
