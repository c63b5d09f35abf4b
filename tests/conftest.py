"""
Pytest Configuration and Fixtures
==================================

Shared fixtures: every test gets its own team directory under ``tmp_path``.
"""

from pathlib import Path

import pytest

from agent_teams import AgentTeam, AgentTeamOptions, TeammateRunner, TeammateRunnerOptions
from agent_teams.coordination import FileTransport, Mailbox, SharedTaskQueue, get_team_paths
from agent_teams.models import AgentRole, TeamAgentConfig


TEAM_NAME = "test-team"


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    return tmp_path / "teams"


@pytest.fixture
def paths(base_dir: Path):
    return get_team_paths(base_dir, TEAM_NAME)


@pytest.fixture
def transport(paths) -> FileTransport:
    return FileTransport(paths.locks_dir, lock_timeout=2.0, lock_poll_interval=0.01)


@pytest.fixture
def mailbox(transport, paths) -> Mailbox:
    return Mailbox(transport, paths.messages_dir)


@pytest.fixture
def task_queue(transport, paths) -> SharedTaskQueue:
    return SharedTaskQueue(transport, paths.tasks)


@pytest.fixture
def roster():
    return [
        TeamAgentConfig(agent_id="lead", role=AgentRole.LEAD, name="Lead"),
        TeamAgentConfig(agent_id="worker-1", role=AgentRole.TEAMMATE, entry_script="worker.py"),
        TeamAgentConfig(agent_id="worker-2", role=AgentRole.TEAMMATE, entry_script="worker.py"),
    ]


@pytest.fixture
def team(base_dir, roster) -> AgentTeam:
    """Lead-side team with fast timings. Not initialized."""
    return AgentTeam(AgentTeamOptions(
        team_name=TEAM_NAME,
        base_dir=str(base_dir),
        agents=roster,
        poll_interval_ms=10,
        heartbeat_timeout_ms=1000,
        lock_timeout=2.0,
        lock_poll_interval=0.01,
        stop_timeout=2.0,
    ))


@pytest.fixture
def make_runner(base_dir, team):
    """Build a TeammateRunner for ``agent_id`` in the fixture team's session."""

    def _make(agent_id: str = "worker-1", hooks=None, **overrides) -> TeammateRunner:
        values = dict(
            team_name=TEAM_NAME,
            base_dir=str(base_dir),
            agent_id=agent_id,
            session_id=team.session_id,
            poll_interval_ms=10,
            heartbeat_interval_ms=1000,
            lock_timeout=2.0,
            lock_poll_interval=0.01,
        )
        values.update(overrides)
        return TeammateRunner(TeammateRunnerOptions(**values), hooks)

    return _make
