"""
TeammateRunner - the teammate side of a team.

Each teammate runs in its own process. The runner keeps the heartbeat fresh,
drains the mailbox, honours shutdown requests and claims tasks; executing a
claimed task is left to the caller (see ``run_teammate``).
"""
import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, List, Mapping, Optional

from .config import Settings
from .coordination import (
    FileTransport,
    Mailbox,
    SharedTaskQueue,
    get_team_paths,
    read_team_config,
    write_agent_state,
)
from .errors import LockTimeoutError, TeamConfigError
from .hooks import TeamHookEvent, TeamHooks, fire_team_hook
from .models import (
    AgentRunStatus,
    AgentState,
    MessageType,
    TaskStatus,
    TeamEnv,
    TeammateEvent,
    TeammateEventType,
    TeamMessage,
    TeamPlan,
    TeamTask,
)
from .protocols import acknowledge_shutdown, is_shutdown_request, notify_idle, submit_plan


logger = logging.getLogger(__name__)


@dataclass
class TeammateRunnerOptions:
    """Options for the teammate-side loop."""
    team_name: str
    base_dir: str
    agent_id: str
    session_id: str
    system_prompt: Optional[str] = None
    poll_interval_ms: int = 500
    heartbeat_interval_ms: int = 5000
    lock_timeout: float = 10.0
    lock_poll_interval: float = 0.05
    trace_id: Optional[str] = None
    parent_span_id: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 app_settings: Optional[Settings] = None) -> 'TeammateRunnerOptions':
        """
        Build options from the variables the lead sets on a spawned teammate.

        Raises:
            TeamConfigError: if a required variable is missing
        """
        environ = os.environ if environ is None else environ
        missing = [name for name in TeamEnv.REQUIRED if not environ.get(name)]
        if missing:
            raise TeamConfigError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        app_settings = app_settings or Settings()
        return cls(
            team_name=environ[TeamEnv.TEAM_NAME],
            base_dir=environ[TeamEnv.BASE_DIR],
            agent_id=environ[TeamEnv.AGENT_ID],
            session_id=environ[TeamEnv.SESSION_ID],
            system_prompt=environ.get(TeamEnv.SYSTEM_PROMPT) or None,
            poll_interval_ms=app_settings.poll_interval_ms,
            heartbeat_interval_ms=app_settings.heartbeat_interval_ms,
            lock_timeout=app_settings.lock_timeout,
            lock_poll_interval=app_settings.lock_poll_interval,
            trace_id=environ.get(TeamEnv.TRACE_ID) or None,
            parent_span_id=environ.get(TeamEnv.PARENT_SPAN_ID) or None,
        )


class TeammateRunner:
    """Teammate-side event loop."""

    def __init__(self, options: TeammateRunnerOptions, hooks: Optional[TeamHooks] = None):
        self.options = options
        self.hooks = hooks
        self.agent_id = options.agent_id
        self.paths = get_team_paths(options.base_dir, options.team_name)
        self.transport = FileTransport(
            self.paths.locks_dir,
            lock_timeout=options.lock_timeout,
            lock_poll_interval=options.lock_poll_interval,
        )
        self.mailbox = Mailbox(self.transport, self.paths.messages_dir)
        self.task_queue = SharedTaskQueue(self.transport, self.paths.tasks)

        self.running = False
        self.finished = False
        self.lead_id: Optional[str] = None
        self.status = AgentRunStatus.RUNNING
        self.current_task: Optional[str] = None
        self._idle = False
        self._last_heartbeat: Optional[float] = None
        self._shutdown_requester: Optional[str] = None

    @property
    def shutdown_pending(self) -> bool:
        """A shutdown request was accepted but its ack has not been sent yet."""
        return self._shutdown_requester is not None

    async def _fire(self, event: TeamHookEvent, **data):
        await fire_team_hook(self.hooks, event, data, self.options.session_id)

    def update_heartbeat(self, status: AgentRunStatus, current_task: Optional[str] = None):
        """Write this agent's state file and remember when it was written."""
        self.status = status
        self.current_task = current_task
        write_agent_state(self.transport, self.paths, AgentState(
            agent_id=self.agent_id,
            status=status,
            pid=os.getpid(),
            current_task=current_task,
        ))
        self._last_heartbeat = time.monotonic()

    def _resolve_lead(self) -> str:
        config = read_team_config(self.transport, self.paths)
        if config is None:
            raise TeamConfigError(f"No team config at {self.paths.config}")
        if config.session_id != self.options.session_id:
            logger.warning("Session mismatch for %s: config has %s, runner has %s",
                           self.agent_id, config.session_id, self.options.session_id)
        return config.lead_id

    def start(self):
        """Resolve the lead from the team config and write the first heartbeat."""
        self.lead_id = self._resolve_lead()
        self.running = True
        self.finished = False
        self._idle = False
        self.update_heartbeat(AgentRunStatus.RUNNING)
        logger.info("Teammate %s started (lead: %s)", self.agent_id, self.lead_id)

    async def _handle_shutdown(self, message: TeamMessage):
        # the request is consumed here; the ack is retried on later ticks until sent
        self.running = False
        self.finished = True
        self._shutdown_requester = message.from_agent
        logger.info("Teammate %s shutting down at request of %s",
                    self.agent_id, message.from_agent)
        await self._fire(TeamHookEvent.SHUTDOWN_REQUESTED, agentId=self.agent_id,
                         requestedBy=message.from_agent)
        self._send_shutdown_ack()

    def _send_shutdown_ack(self):
        try:
            acknowledge_shutdown(self.mailbox, self.agent_id, self._shutdown_requester)
        except LockTimeoutError as e:
            logger.warning("Teammate %s will retry its shutdown ack: %s", self.agent_id, e)
            return
        self._shutdown_requester = None
        self.update_heartbeat(AgentRunStatus.STOPPED, self.current_task)

    def _nothing_to_do(self) -> bool:
        if self.task_queue.all_done():
            return True
        tasks = self.task_queue.list()
        return not any(t.status in (TaskStatus.PENDING, TaskStatus.CLAIMED) for t in tasks)

    async def tick(self) -> List[TeammateEvent]:
        """
        Run one iteration of the teammate loop and return its events.

        After a ``shutdown_requested`` event the runner is finished and later
        ticks return nothing; they only retry an ack that hit a lock timeout.
        A lock timeout skips the rest of the tick.
        """
        if self.shutdown_pending:
            self._send_shutdown_ack()
            return []
        if self.finished:
            return []
        if self.lead_id is None:
            self.start()

        events = []
        heartbeat_interval = self.options.heartbeat_interval_ms / 1000.0
        if time.monotonic() - self._last_heartbeat >= heartbeat_interval:
            # refreshes are always written as running, idle or not
            self.update_heartbeat(AgentRunStatus.RUNNING, self.current_task)

        try:
            for message in self.mailbox.read_all(self.agent_id):
                if is_shutdown_request(message):
                    events.append(TeammateEvent(TeammateEventType.SHUTDOWN_REQUESTED, message=message))
                    await self._handle_shutdown(message)
                    return events
                events.append(TeammateEvent(TeammateEventType.MESSAGE_RECEIVED, message=message))

            task = self.task_queue.claim_next(self.agent_id)
            if task is not None:
                self._idle = False
                self.update_heartbeat(AgentRunStatus.RUNNING, task.id)
                await self._fire(TeamHookEvent.TASK_ASSIGNED, taskId=task.id,
                                 taskTitle=task.title, agentId=self.agent_id)
                events.append(TeammateEvent(TeammateEventType.TASK_CLAIMED, task=task))
            elif self.current_task is None and not self._idle and self._nothing_to_do():
                notify_idle(self.mailbox, self.agent_id, self.lead_id)
                self.update_heartbeat(AgentRunStatus.IDLE)
                self._idle = True
                events.append(TeammateEvent(TeammateEventType.IDLE))
        except LockTimeoutError as e:
            logger.warning("Teammate %s skipped the rest of this tick: %s", self.agent_id, e)

        return events

    async def run(self) -> AsyncIterator[TeammateEvent]:
        """
        Run the teammate event loop.

        Loop: heartbeat -> drain mailbox -> shutdown check -> claim next task
        or report idle -> sleep -> repeat.
        """
        self.start()
        poll_interval = self.options.poll_interval_ms / 1000.0

        while self.running or self.shutdown_pending:
            for event in await self.tick():
                yield event
            if self.finished:
                if not self.shutdown_pending:
                    return
            elif not self.running:
                break
            await asyncio.sleep(poll_interval)

        self.update_heartbeat(AgentRunStatus.STOPPED)

    def stop(self):
        """Stop the event loop after the current tick."""
        self.running = False

    # Teammate operations

    async def complete_task(self, task_id: str, result: Any = None) -> Optional[TeamTask]:
        task = self.task_queue.complete(task_id, self.agent_id, result)
        if task is not None:
            if self.current_task == task_id:
                self.update_heartbeat(AgentRunStatus.RUNNING)
            await self._fire(TeamHookEvent.TASK_COMPLETED, taskId=task.id,
                             taskTitle=task.title, agentId=self.agent_id, result=result)
        return task

    async def fail_task(self, task_id: str, error: str) -> Optional[TeamTask]:
        task = self.task_queue.fail(task_id, self.agent_id, error)
        if task is not None:
            if self.current_task == task_id:
                self.update_heartbeat(AgentRunStatus.RUNNING)
            await self._fire(TeamHookEvent.TASK_FAILED, taskId=task.id,
                             taskTitle=task.title, agentId=self.agent_id, error=error)
        return task

    async def send_message(self, to_agent: str, content: Any,
                           type: MessageType = MessageType.TEXT) -> TeamMessage:
        message = self.mailbox.send(TeamMessage(
            from_agent=self.agent_id,
            to_agent=to_agent,
            type=type,
            payload={"content": content},
        ))
        await self._fire(TeamHookEvent.MESSAGE_RECEIVED, messageId=message.id,
                         **{"from": message.from_agent, "to": message.to_agent},
                         messageType=message.type.value)
        return message

    async def submit_plan(self, title: str, description: str) -> TeamPlan:
        if self.lead_id is None:
            self.lead_id = self._resolve_lead()
        return submit_plan(self.transport, self.mailbox, self.paths.plans_dir,
                           self.agent_id, self.lead_id, title, description)


TaskExecutor = Callable[[TeamTask], Awaitable[Any]]


async def run_teammate(executor: TaskExecutor,
                       options: Optional[TeammateRunnerOptions] = None,
                       hooks: Optional[TeamHooks] = None) -> TeammateRunner:
    """
    Run a teammate process until it is asked to shut down.

    Every claimed task is passed to ``executor``: its return value completes
    the task, an exception fails it with the exception text. Options default
    to the environment set by the lead (see ``TeammateRunnerOptions.from_env``).

    Usage:
        async def execute(task):
            return await my_agent.generate(task.description)

        asyncio.run(run_teammate(execute))
    """
    runner = TeammateRunner(options or TeammateRunnerOptions.from_env(), hooks)

    async for event in runner.run():
        if event.type == TeammateEventType.TASK_CLAIMED:
            task = event.task
            logger.info("[%s] Executing task %s: %s", runner.agent_id, task.id, task.title)
            try:
                result = await executor(task)
            except Exception as e:
                logger.warning("[%s] Task %s failed: %s", runner.agent_id, task.id, e)
                await runner.fail_task(task.id, str(e))
            else:
                await runner.complete_task(task.id, result)
        elif event.type == TeammateEventType.MESSAGE_RECEIVED:
            logger.debug("[%s] Message from %s: %s", runner.agent_id,
                         event.message.from_agent, event.message.type.value)

    return runner
