"""
Command-line interface for inspecting and steering a running team.

Usage:
    agent-teams status my-team
    agent-teams graph my-team
    agent-teams tasks add my-team "Write docs" --depends-on t1
    agent-teams shutdown my-team --agent worker-1 --reason "done"
"""
import logging
import sys
from typing import Optional, Tuple

import click
import psutil
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import Settings
from .coordination import (
    FileTransport,
    Mailbox,
    SharedTaskQueue,
    TeamPaths,
    build_task_graph,
    get_team_paths,
    read_agent_state,
    read_team_config,
    render_task_graph_mermaid,
)
from .errors import AgentTeamError
from .models import TaskStatus, TeamConfig, utc_now
from .protocols import broadcast_shutdown, request_shutdown


console = Console()

STATUS_STYLES = {
    TaskStatus.PENDING: "yellow",
    TaskStatus.BLOCKED: "magenta",
    TaskStatus.CLAIMED: "cyan",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
}


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Log to the console through rich, and to ``log_file`` when given."""
    handlers = [RichHandler(console=Console(stderr=True), show_path=False)]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))
        handlers.append(file_handler)
    logging.basicConfig(level=level.upper(), format="%(message)s",
                        handlers=handlers, force=True)


class TeamContext:
    """Transport, paths and config of the team named on the command line."""

    def __init__(self, settings: Settings, team_name: str):
        self.settings = settings
        self.team_name = team_name
        self.paths: TeamPaths = get_team_paths(settings.base_dir, team_name)
        self.transport = FileTransport(
            self.paths.locks_dir,
            lock_timeout=settings.lock_timeout,
            lock_poll_interval=settings.lock_poll_interval,
        )

    def config(self) -> TeamConfig:
        config = read_team_config(self.transport, self.paths)
        if config is None:
            raise click.ClickException(
                f"Team '{self.team_name}' not found under {self.settings.base_dir}"
            )
        return config

    @property
    def task_queue(self) -> SharedTaskQueue:
        return SharedTaskQueue(self.transport, self.paths.tasks)

    @property
    def mailbox(self) -> Mailbox:
        return Mailbox(self.transport, self.paths.messages_dir)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", prog_name="agent-teams")
@click.option("--base-dir", default=None, help="Team root directory. [default from $AGENT_TEAMS_BASE_DIR]")
@click.option("--log-level", default=None, help="Logging level. [default from $AGENT_TEAMS_LOG_LEVEL]")
@click.pass_context
def cli(ctx: click.Context, base_dir: Optional[str], log_level: Optional[str]):
    """Agent Teams -- inspect and steer file-coordinated agent teams."""
    overrides = {}
    if base_dir:
        overrides["base_dir"] = base_dir
    if log_level:
        overrides["log_level"] = log_level
    settings = Settings(**overrides)
    setup_logging(settings.log_level, settings.log_file)
    ctx.obj = settings


def _team(ctx: click.Context, team_name: str) -> TeamContext:
    return TeamContext(ctx.obj, team_name)


@cli.command()
@click.argument("team_name")
@click.pass_context
def status(ctx: click.Context, team_name: str):
    """Show tasks, per-status counts and teammate heartbeats."""
    team = _team(ctx, team_name)
    config = team.config()
    tasks = team.task_queue.list()

    table = Table(title=f"Tasks ({config.team_name})")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Assignee", style="yellow")
    table.add_column("Depends On", style="dim")
    for task in tasks:
        style = STATUS_STYLES[task.status]
        table.add_row(
            task.id,
            task.title,
            f"[{style}]{task.status.value}[/{style}]",
            task.assignee or "-",
            ", ".join(task.dependencies) or "-",
        )
    console.print(table)

    counts = team.task_queue.counts()
    console.print("  ".join(
        f"[{STATUS_STYLES[s]}]{s.value}[/{STATUS_STYLES[s]}]: {counts[s]}" for s in TaskStatus
    ))

    now = utc_now()
    agents = Table(title="Teammates")
    agents.add_column("Agent ID", style="cyan")
    agents.add_column("Status", style="green")
    agents.add_column("Current Task", style="yellow")
    agents.add_column("Last Heartbeat")
    agents.add_column("PID")
    agents.add_column("Alive")
    for agent in config.teammates:
        state = read_agent_state(team.transport, team.paths, agent.agent_id)
        if state is None:
            agents.add_row(agent.agent_id, "-", "-", "never", "-", "-")
            continue
        stale = state.is_stale(team.settings.heartbeat_timeout_ms, now)
        alive = psutil.pid_exists(state.pid) if state.pid else False
        agents.add_row(
            agent.agent_id,
            f"[red]{state.status.value} (stale)[/red]" if stale else state.status.value,
            state.current_task or "-",
            f"{state.elapsed_ms(now) / 1000:.1f}s ago",
            str(state.pid),
            "[green]yes[/green]" if alive else "[red]no[/red]",
        )
    console.print(agents)


@cli.command()
@click.argument("team_name")
@click.pass_context
def graph(ctx: click.Context, team_name: str):
    """Print the task dependency graph as mermaid."""
    team = _team(ctx, team_name)
    team.config()
    click.echo(render_task_graph_mermaid(build_task_graph(team.task_queue.list())))


@cli.group()
def tasks():
    """Manage the shared task queue."""


@tasks.command("add")
@click.argument("team_name")
@click.argument("title")
@click.option("--description", "-d", default="", help="Task description.")
@click.option("--depends-on", "dependencies", multiple=True, help="Id of a task this one waits for.")
@click.option("--id", "task_id", default=None, help="Explicit task id.")
@click.pass_context
def add_task(ctx: click.Context, team_name: str, title: str, description: str,
             dependencies: Tuple[str, ...], task_id: Optional[str]):
    """Create a task."""
    team = _team(ctx, team_name)
    team.config()
    try:
        task = team.task_queue.create(title, description, list(dependencies), task_id=task_id)
    except AgentTeamError as e:
        raise click.ClickException(str(e))
    style = STATUS_STYLES[task.status]
    console.print(f"[green]✓[/green] Created task {task.id} [{style}]{task.status.value}[/{style}]")


@cli.command()
@click.argument("team_name")
@click.option("--agent", "agent_id", default=None, help="Teammate to stop. [default: all]")
@click.option("--reason", default=None, help="Reason sent with the request.")
@click.pass_context
def shutdown(ctx: click.Context, team_name: str, agent_id: Optional[str], reason: Optional[str]):
    """Ask one teammate, or all of them, to shut down."""
    team = _team(ctx, team_name)
    config = team.config()
    if agent_id is None:
        broadcast_shutdown(team.mailbox, config.lead_id, reason)
        console.print("[blue]→[/blue] Shutdown requested for all teammates")
        return
    if config.get_agent(agent_id) is None:
        raise click.ClickException(f"Unknown agent: {agent_id}")
    request_shutdown(team.mailbox, config.lead_id, agent_id, reason)
    console.print(f"[blue]→[/blue] Shutdown requested for {agent_id}")


def main():
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
