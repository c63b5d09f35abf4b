"""
Agent Teams - file-based coordination for a lead agent and its teammate processes.
"""

__version__ = "0.1.0"
__author__ = "VJAWSM"

from .team import AgentTeam, AgentTeamOptions
from .teammate import TeammateRunner, TeammateRunnerOptions, run_teammate
from .hooks import TeamHookEvent, TeamHooks, fire_team_hook
from .models import (
    AgentRole,
    MessageType,
    TaskInput,
    TaskStatus,
    TeamAgentConfig,
    TeamEvent,
    TeamEventType,
    TeammateEvent,
    TeammateEventType,
    TeamMessage,
    TeamTask,
    TraceContext,
)
from .errors import (
    AgentTeamError,
    DuplicateTaskError,
    LockTimeoutError,
    TeamConfigError,
    UnknownDependencyError,
)

__all__ = [
    'AgentTeam',
    'AgentTeamOptions',
    'TeammateRunner',
    'TeammateRunnerOptions',
    'run_teammate',
    'TeamHookEvent',
    'TeamHooks',
    'fire_team_hook',
    'AgentRole',
    'MessageType',
    'TaskInput',
    'TaskStatus',
    'TeamAgentConfig',
    'TeamEvent',
    'TeamEventType',
    'TeammateEvent',
    'TeammateEventType',
    'TeamMessage',
    'TeamTask',
    'TraceContext',
    'AgentTeamError',
    'DuplicateTaskError',
    'LockTimeoutError',
    'TeamConfigError',
    'UnknownDependencyError',
]
