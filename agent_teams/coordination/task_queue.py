"""
Shared task queue persisted to a single ``tasks.json``.

Every mutation reloads the whole queue, changes it and rewrites it while
holding the ``tasks`` lock, so claims are at-most-once across processes and a
task's lifecycle is totally ordered. Plain reads (``list``, ``all_done``)
skip the lock because the file is always replaced atomically.

Status rules:
- a task is ``blocked`` while any dependency is not ``completed``; this is
  computed at creation and re-checked for dependents on every completion
- ``completed`` and ``failed`` are terminal
- a failed task never unblocks its dependents
"""
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..errors import DuplicateTaskError, UnknownDependencyError
from ..models import (
    TaskInput,
    TaskQueueState,
    TaskStatus,
    TeamTask,
    new_id,
    utc_now,
)
from .transport import FileTransport, PathLike


logger = logging.getLogger(__name__)

TASKS_LOCK = "tasks"

TaskInputLike = Union[TaskInput, Dict[str, Any]]


class SharedTaskQueue:
    """Task queue with a dependency graph, shared between agent processes."""

    def __init__(self, transport: FileTransport, tasks_path: PathLike):
        self.transport = transport
        self.tasks_path = Path(tasks_path)

    def _load(self) -> TaskQueueState:
        data = self.transport.read_json(self.tasks_path)
        if data is None:
            return TaskQueueState()
        return TaskQueueState.from_dict(data)

    def _save(self, state: TaskQueueState):
        state.updated_at = utc_now()
        self.transport.write_json(self.tasks_path, state.to_dict())

    @staticmethod
    def _dependencies_met(state: TaskQueueState, task: TeamTask) -> bool:
        for dep_id in task.dependencies:
            dep = state.find(dep_id)
            if dep is None or dep.status != TaskStatus.COMPLETED:
                return False
        return True

    def create(self, title: str, description: str = "",
               dependencies: Optional[List[str]] = None,
               metadata: Optional[Dict[str, Any]] = None,
               task_id: Optional[str] = None) -> TeamTask:
        """Create a single task. See ``create_many``."""
        return self.create_many([TaskInput(
            title=title,
            description=description,
            dependencies=list(dependencies or []),
            metadata=metadata,
            id=task_id,
        )])[0]

    def create_many(self, inputs: Iterable[TaskInputLike]) -> List[TeamTask]:
        """
        Create tasks in order, in one locked write.

        A dependency may name an existing task or one created earlier in the
        same batch. Nothing is written if any input is invalid.

        Raises:
            UnknownDependencyError: a dependency id is not in the queue
            DuplicateTaskError: an explicit task id is already taken
            LockTimeoutError: the queue lock was not acquired in time
        """
        inputs = [TaskInput.coerce(i) for i in inputs]
        if not inputs:
            return []

        with self.transport.lock(TASKS_LOCK):
            state = self._load()
            known = {t.id for t in state.tasks}
            created = []

            for task_input in inputs:
                task_id = task_input.id or new_id()
                if task_id in known:
                    raise DuplicateTaskError(task_id)
                for dep_id in task_input.dependencies:
                    if dep_id not in known:
                        raise UnknownDependencyError(task_input.title, dep_id)

                now = utc_now()
                task = TeamTask(
                    id=task_id,
                    title=task_input.title,
                    description=task_input.description,
                    status=TaskStatus.PENDING,
                    dependencies=list(task_input.dependencies),
                    created_at=now,
                    updated_at=now,
                    metadata=task_input.metadata,
                )
                state.tasks.append(task)
                if not self._dependencies_met(state, task):
                    task.status = TaskStatus.BLOCKED
                known.add(task_id)
                created.append(task)

            self._save(state)

        for task in created:
            logger.info("Created task %s '%s' (%s)", task.id, task.title, task.status.value)
        return created

    def list(self) -> List[TeamTask]:
        """All tasks in creation order."""
        return self._load().tasks

    def get(self, task_id: str) -> Optional[TeamTask]:
        return self._load().find(task_id)

    def by_status(self, status: Union[TaskStatus, str]) -> List[TeamTask]:
        status = TaskStatus(status)
        return [t for t in self._load().tasks if t.status == status]

    def counts(self) -> Dict[TaskStatus, int]:
        """Number of tasks per status (every status present, possibly 0)."""
        counts = {status: 0 for status in TaskStatus}
        for task in self._load().tasks:
            counts[task.status] += 1
        return counts

    def claim(self, task_id: str, agent_id: str) -> Optional[TeamTask]:
        """
        Claim a specific pending task.

        Returns:
            The claimed task, or None if it does not exist or is not pending
        """
        with self.transport.lock(TASKS_LOCK):
            state = self._load()
            task = state.find(task_id)
            if task is None or task.status != TaskStatus.PENDING:
                return None
            self._mark_claimed(task, agent_id)
            self._save(state)

        logger.info("%s claimed task %s", agent_id, task.id)
        return task

    def claim_next(self, agent_id: str) -> Optional[TeamTask]:
        """Claim the first pending task in creation order, if any."""
        with self.transport.lock(TASKS_LOCK):
            state = self._load()
            task = next((t for t in state.tasks if t.status == TaskStatus.PENDING), None)
            if task is None:
                return None
            self._mark_claimed(task, agent_id)
            self._save(state)

        logger.info("%s claimed task %s", agent_id, task.id)
        return task

    @staticmethod
    def _mark_claimed(task: TeamTask, agent_id: str):
        task.status = TaskStatus.CLAIMED
        task.assignee = agent_id
        task.touch()

    def complete(self, task_id: str, agent_id: str, result: Any = None) -> Optional[TeamTask]:
        """
        Complete a task claimed by ``agent_id`` and unblock its dependents.

        Returns:
            The completed task, or None if it is not claimed by ``agent_id``
        """
        with self.transport.lock(TASKS_LOCK):
            state = self._load()
            task = state.find(task_id)
            if not self._held_by(task, agent_id):
                return None
            task.status = TaskStatus.COMPLETED
            task.result = result
            task.touch()
            unblocked = self._unblock_dependents(state, task.id)
            self._save(state)

        logger.info("%s completed task %s", agent_id, task.id)
        for dependent in unblocked:
            logger.info("Task %s unblocked by %s", dependent.id, task.id)
        return task

    def fail(self, task_id: str, agent_id: str, error: str) -> Optional[TeamTask]:
        """
        Fail a task claimed by ``agent_id``. Dependents stay blocked.

        Returns:
            The failed task, or None if it is not claimed by ``agent_id``
        """
        with self.transport.lock(TASKS_LOCK):
            state = self._load()
            task = state.find(task_id)
            if not self._held_by(task, agent_id):
                return None
            task.status = TaskStatus.FAILED
            task.error = error
            task.touch()
            self._save(state)

        logger.warning("%s failed task %s: %s", agent_id, task.id, error)
        return task

    @staticmethod
    def _held_by(task: Optional[TeamTask], agent_id: str) -> bool:
        return (task is not None
                and task.status == TaskStatus.CLAIMED
                and task.assignee == agent_id)

    def _unblock_dependents(self, state: TaskQueueState, completed_id: str) -> List[TeamTask]:
        # Linear scan; must run inside the same critical section as the completion.
        unblocked = []
        for task in state.tasks:
            if task.status != TaskStatus.BLOCKED or completed_id not in task.dependencies:
                continue
            if self._dependencies_met(state, task):
                task.status = TaskStatus.PENDING
                task.touch()
                unblocked.append(task)
        return unblocked

    def all_done(self) -> bool:
        """True iff no task is pending, blocked or claimed (an empty queue is done)."""
        return all(t.status.is_terminal for t in self._load().tasks)
