import logging
import signal
import time

from rich.console import Console
from rich.panel import Panel

from .client import DockerRuntimeClient, RuntimeClient
from .errors import GoalError
from .loader import load_goals
from .scheduler import apply_graph
from .settings import AppSettings, get_settings

logger = logging.getLogger(__name__)


class GoalControlDaemon:
    """Re-applies the goal file periodically until signalled to stop."""

    def __init__(self, settings: AppSettings | None = None, client: RuntimeClient | None = None, console=None):
        self.settings = settings or get_settings()
        self.console = console or Console()
        self.running = False
        self.client = client or DockerRuntimeClient.from_settings(self.settings)

    def start(self):
        """Initializes the daemon and enters the main control loop."""
        signal.signal(signal.SIGINT, self.shutdown)
        signal.signal(signal.SIGTERM, self.shutdown)
        self.running = True

        self.console.print(
            Panel.fit(
                "[bold green]Goal Control Daemon[/bold green]\n"
                f"Status: [green]ONLINE[/green]\n"
                f"Goals: [blue]{self.settings.GOALS_FILE}[/blue]\n"
                f"Interval: [blue]{self.settings.POLLING_INTERVAL}s[/blue]",
                title="System Start",
            )
        )

        self.run_control_loop()

    def run_control_loop(self):
        """Applies the goals on every tick. A failed tick is logged and retried on the next one."""
        while self.running:
            self.tick()
            self._interruptible_sleep(self.settings.POLLING_INTERVAL)

        self.console.print("[bold red]System Offline.[/bold red]")

    def tick(self) -> bool:
        try:
            goals = load_goals(self.settings.GOALS_FILE)
            rounds = apply_graph(self.client, goals, max_workers=self.settings.MAX_WORKERS)
        except GoalError as e:
            logger.error("Reconciliation failed: %s", e)
            return False
        except Exception:
            logger.exception("Unexpected error during reconciliation")
            return False

        logger.info("Goals reached: %d containers in %d rounds", sum(map(len, rounds)), len(rounds))
        return True

    def _interruptible_sleep(self, duration: int):
        """Splits sleep into small chunks to allow immediate shutdown."""
        steps = int(duration / self.settings.CONTROL_INTERVAL)
        for _ in range(steps):
            if not self.running:
                break
            time.sleep(self.settings.CONTROL_INTERVAL)

    def shutdown(self, signum, frame):
        """Graceful shutdown sequence. Containers are left running."""
        if not self.running:
            return

        self.console.print(f"\n[bold orange1]Signal {signum} received. Shutting down gracefully...[/bold orange1]")
        self.running = False
