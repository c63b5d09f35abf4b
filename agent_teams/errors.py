"""
Exception types for team coordination.

Contention (a task already claimed, a plan already decided, an unknown id) is
not an error: those operations return None/False. Exceptions are reserved for
conditions the caller has to act on.
"""


class AgentTeamError(Exception):
    """Base class for all agent-teams errors."""


class LockTimeoutError(AgentTeamError, TimeoutError):
    """A named file lock could not be acquired before the timeout.

    Retryable: the caller may try the same operation again on its next tick.
    """

    def __init__(self, name: str, timeout: float):
        self.name = name
        self.timeout = timeout
        super().__init__(f"Could not acquire lock '{name}' within {timeout:.2f}s")


class UnknownDependencyError(AgentTeamError, ValueError):
    """A task was created with a dependency that is not in the queue."""

    def __init__(self, task_title: str, dependency_id: str):
        self.task_title = task_title
        self.dependency_id = dependency_id
        super().__init__(
            f"Task '{task_title}' depends on unknown task id '{dependency_id}'"
        )


class DuplicateTaskError(AgentTeamError, ValueError):
    """A task id supplied at creation time is already taken."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task id '{task_id}' already exists")


class TeamConfigError(AgentTeamError):
    """Team configuration is missing, duplicated or incomplete."""
