"""
Team directory layout and the immutable team config.

Layout under ``{base_dir}/{team_name}/``::

    config.json              TeamConfig
    locks/                   one lock file per protected resource
    messages/{agentId}.json  per-agent inbox log
    messages/__broadcast__.json
    messages/cursors/        per-reader read positions
    tasks.json               TaskQueueState
    state/{agentId}.json     AgentState heartbeat
    plans/{planId}.json      TeamPlan
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from ..errors import TeamConfigError
from ..models import AgentState, TeamAgentConfig, TeamConfig, utc_now
from .transport import FileTransport, PathLike


logger = logging.getLogger(__name__)

CONFIG_LOCK = "config"


@dataclass(frozen=True)
class TeamPaths:
    """Resolved file locations for one team."""
    team_dir: Path

    @property
    def config(self) -> Path:
        return self.team_dir / "config.json"

    @property
    def locks_dir(self) -> Path:
        return self.team_dir / "locks"

    @property
    def messages_dir(self) -> Path:
        return self.team_dir / "messages"

    @property
    def tasks(self) -> Path:
        return self.team_dir / "tasks.json"

    @property
    def state_dir(self) -> Path:
        return self.team_dir / "state"

    @property
    def plans_dir(self) -> Path:
        return self.team_dir / "plans"

    def state_file(self, agent_id: str) -> Path:
        return self.state_dir / f"{agent_id}.json"

    def all_dirs(self):
        return [self.team_dir, self.locks_dir, self.messages_dir,
                self.state_dir, self.plans_dir]


def get_team_dir(base_dir: PathLike, team_name: str) -> Path:
    return Path(base_dir) / team_name


def get_team_paths(base_dir: PathLike, team_name: str) -> TeamPaths:
    return TeamPaths(team_dir=get_team_dir(base_dir, team_name))


def create_team_config(team_name: str, session_id: str,
                       agents: Iterable[TeamAgentConfig],
                       settings: Optional[Dict[str, Any]] = None) -> TeamConfig:
    """Build a TeamConfig, checking the roster has unique ids and one lead."""
    agents = list(agents)
    seen = set()
    for agent in agents:
        if agent.agent_id in seen:
            raise TeamConfigError(f"Duplicate agent id '{agent.agent_id}'")
        seen.add(agent.agent_id)

    leads = [a for a in agents if a.is_lead]
    if len(leads) > 1:
        raise TeamConfigError("A team can only have one lead")

    return TeamConfig(
        team_name=team_name,
        session_id=session_id,
        agents=agents,
        created_at=utc_now(),
        settings=dict(settings or {}),
    )


def write_team_config(transport: FileTransport, paths: TeamPaths, config: TeamConfig):
    """
    Create the team directories and write config.json exactly once.

    Raises:
        TeamConfigError: if a config already exists for this team
        LockTimeoutError: if the config lock could not be acquired
    """
    for directory in paths.all_dirs():
        transport.ensure_dir(directory)

    with transport.lock(CONFIG_LOCK):
        if transport.exists(paths.config):
            raise TeamConfigError(f"Team config already exists at {paths.config}")
        transport.write_json(paths.config, config.to_dict())

    logger.info("Initialized team %s (session %s) at %s",
                config.team_name, config.session_id, paths.team_dir)


def read_team_config(transport: FileTransport, paths: TeamPaths) -> Optional[TeamConfig]:
    data = transport.read_json(paths.config)
    if data is None:
        return None
    return TeamConfig.from_dict(data)


def write_agent_state(transport: FileTransport, paths: TeamPaths, state: AgentState):
    """Write a heartbeat record. Only the agent itself calls this."""
    transport.write_json(paths.state_file(state.agent_id), state.to_dict())


def read_agent_state(transport: FileTransport, paths: TeamPaths,
                     agent_id: str) -> Optional[AgentState]:
    data = transport.read_json(paths.state_file(agent_id))
    if data is None:
        return None
    return AgentState.from_dict(data)
