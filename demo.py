#!/usr/bin/env python3
"""
Demo script for Agent Teams.

A lead spawns two teammate processes (demo_teammate.py), queues a small
dependency chain, prints team events as they arrive and shuts the team down
once every task is done.

Usage:
    python3 demo.py                 # run the demo in a temporary directory
    python3 demo.py --keep          # keep the team directory for `agent-teams status`
"""
import asyncio
import sys
import tempfile
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from agent_teams import (
    AgentRole,
    AgentTeam,
    AgentTeamOptions,
    TaskInput,
    TeamAgentConfig,
    TeamEventType,
    TeamHooks,
)
from agent_teams.cli import STATUS_STYLES, setup_logging
from agent_teams.config import Settings
from agent_teams.coordination import build_task_graph, render_task_graph_mermaid


console = Console()

TEAMMATE_SCRIPT = str(Path(__file__).resolve().parent / "demo_teammate.py")


def build_roster():
    return [
        TeamAgentConfig(agent_id="lead", role=AgentRole.LEAD, name="Lead"),
        TeamAgentConfig(agent_id="worker-1", role=AgentRole.TEAMMATE, name="Worker 1",
                        entry_script=TEAMMATE_SCRIPT),
        TeamAgentConfig(agent_id="worker-2", role=AgentRole.TEAMMATE, name="Worker 2",
                        entry_script=TEAMMATE_SCRIPT),
    ]


def print_tasks(team: AgentTeam):
    table = Table(title="Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Assignee", style="yellow")
    table.add_column("Result")
    for task in team.task_queue.list():
        style = STATUS_STYLES[task.status]
        table.add_row(task.id, task.title, f"[{style}]{task.status.value}[/{style}]",
                      task.assignee or "-", str(task.result or "-"))
    console.print(table)


async def run_demo(base_dir: str):
    settings = Settings(base_dir=base_dir, poll_interval_ms=200, heartbeat_interval_ms=1000)
    hooks = TeamHooks(
        on_teammate_spawned=lambda p: console.print(f"[green]✓[/green] Spawned {p['agentId']} (PID: {p['pid']})"),
        on_task_created=lambda p: console.print(f"[blue]→[/blue] Task {p['taskId']} created ({p['taskStatus']})"),
    )
    team = AgentTeam(AgentTeamOptions.from_settings(settings, "demo", build_roster()), hooks)

    await team.initialize()
    console.print(f"[green]✓[/green] Team directory: {team.paths.team_dir}")

    await team.create_tasks([
        TaskInput(id="research", title="Research", description="Collect the facts"),
        TaskInput(id="draft", title="Draft", description="Write a first draft", dependencies=["research"]),
        TaskInput(id="review", title="Review", description="Review the draft", dependencies=["draft"]),
        TaskInput(id="summary", title="Summary", description="Summarise the research", dependencies=["research"]),
    ])
    console.print(Panel(render_task_graph_mermaid(build_task_graph(team.task_queue.list())),
                        title="Task Graph"))

    await team.spawn_all()

    exited = set()
    shutdown_sent = False
    async for event in team.run():
        if event.type == TeamEventType.ALL_TASKS_DONE and not shutdown_sent:
            console.print("[bold green]All tasks done[/bold green]")
            await team.shutdown_all("demo finished")
            shutdown_sent = True
        elif event.type == TeamEventType.TEAMMATE_EXITED:
            console.print(f"[green]✓[/green] {event.agent_id} acknowledged shutdown")
            exited.add(event.agent_id)
            if exited >= {a.agent_id for a in team.teammates}:
                await team.stop()
        elif event.type == TeamEventType.TEAMMATE_CRASHED:
            console.print(f"[red]✗[/red] {event.agent_id}: {event.error}")
            await team.stop()
        elif event.type == TeamEventType.MESSAGE_SENT:
            console.print(f"[blue]→[/blue] Message from {event.from_agent}")
        elif event.type == TeamEventType.SHUTDOWN_COMPLETE:
            console.print("[green]✓[/green] Shutdown complete")

    print_tasks(team)


def main():
    """Main demo runner."""
    console.print("[bold cyan]═══════════════════════════════════════════════════════[/bold cyan]")
    console.print("[bold cyan]          Agent Teams - Multi-Process Demo             [/bold cyan]")
    console.print("[bold cyan]═══════════════════════════════════════════════════════[/bold cyan]\n")

    setup_logging("WARNING")
    keep = "--keep" in sys.argv[1:]

    try:
        if keep:
            base_dir = tempfile.mkdtemp(prefix="agent-teams-")
            asyncio.run(run_demo(base_dir))
            console.print(f"\nInspect with: agent-teams --base-dir {base_dir} status demo")
        else:
            with tempfile.TemporaryDirectory(prefix="agent-teams-") as base_dir:
                asyncio.run(run_demo(base_dir))
    except KeyboardInterrupt:
        console.print("\n[yellow]Demo interrupted[/yellow]")


if __name__ == "__main__":
    main()
