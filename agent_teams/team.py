"""
AgentTeam - the lead side of a team.

Spawns teammate processes, then polls heartbeats, the task queue and the lead
mailbox, yielding team events until ``stop()`` is called.
"""
import asyncio
import logging
import os
import signal
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from .config import Settings
from .coordination import (
    FileTransport,
    Mailbox,
    SharedTaskQueue,
    create_team_config,
    get_team_paths,
    read_agent_state,
    write_team_config,
)
from .coordination.task_queue import TaskInputLike
from .errors import TeamConfigError
from .hooks import TeamHookEvent, TeamHooks, fire_team_hook
from .models import (
    BROADCAST,
    AgentState,
    MessageType,
    TeamAgentConfig,
    TeamConfig,
    TeamEnv,
    TeamEvent,
    TeamEventType,
    TeamMessage,
    TeamPlan,
    TeamTask,
    TraceContext,
    utc_now,
)
from .protocols import (
    approve_plan,
    broadcast_shutdown,
    is_idle_notification,
    is_plan_submission,
    is_shutdown_ack,
    reject_plan,
    request_shutdown,
)


logger = logging.getLogger(__name__)


@dataclass
class AgentTeamOptions:
    """Options for the lead-side orchestrator."""
    team_name: str
    base_dir: str
    agents: List[TeamAgentConfig]
    poll_interval_ms: int = 500
    heartbeat_timeout_ms: int = 30000
    lock_timeout: float = 10.0
    lock_poll_interval: float = 0.05
    stop_timeout: float = 5.0
    settings: Dict[str, Any] = field(default_factory=dict)  # stored in config.json
    trace_context: Optional[TraceContext] = None
    python_executable: str = sys.executable

    @classmethod
    def from_settings(cls, app_settings: Settings, team_name: str,
                      agents: List[TeamAgentConfig], **overrides) -> 'AgentTeamOptions':
        values = dict(
            team_name=team_name,
            base_dir=app_settings.base_dir,
            agents=agents,
            poll_interval_ms=app_settings.poll_interval_ms,
            heartbeat_timeout_ms=app_settings.heartbeat_timeout_ms,
            lock_timeout=app_settings.lock_timeout,
            lock_poll_interval=app_settings.lock_poll_interval,
            stop_timeout=app_settings.stop_timeout,
        )
        values.update(overrides)
        return cls(**values)


class AgentTeam:
    """
    Lead-side orchestrator for a team of agent processes.

    Every collaborator (transport, mailbox, task queue) belongs to this
    instance; nothing is shared at module level.
    """

    def __init__(self, options: AgentTeamOptions, hooks: Optional[TeamHooks] = None):
        self.options = options
        self.hooks = hooks
        self.session_id = str(uuid.uuid4())
        self.paths = get_team_paths(options.base_dir, options.team_name)
        self.transport = FileTransport(
            self.paths.locks_dir,
            lock_timeout=options.lock_timeout,
            lock_poll_interval=options.lock_poll_interval,
        )
        self.mailbox = Mailbox(self.transport, self.paths.messages_dir)
        self.task_queue = SharedTaskQueue(self.transport, self.paths.tasks)
        self.processes: Dict[str, asyncio.subprocess.Process] = {}
        self.running = False

    @property
    def lead_id(self) -> str:
        for agent in self.options.agents:
            if agent.is_lead:
                return agent.agent_id
        return "lead"

    @property
    def teammates(self) -> List[TeamAgentConfig]:
        return [a for a in self.options.agents if not a.is_lead]

    async def _fire(self, event: TeamHookEvent, **data):
        await fire_team_hook(self.hooks, event, data, self.session_id)

    async def initialize(self) -> TeamConfig:
        """Write the team config and create the coordination directories."""
        config = create_team_config(
            self.options.team_name,
            self.session_id,
            self.options.agents,
            self.options.settings,
        )
        write_team_config(self.transport, self.paths, config)
        return config

    def build_env(self, agent: TeamAgentConfig) -> Dict[str, str]:
        """Environment for a teammate process: the parent's plus its identity."""
        env = dict(os.environ)
        env[TeamEnv.TEAM_NAME] = self.options.team_name
        env[TeamEnv.BASE_DIR] = str(self.options.base_dir)
        env[TeamEnv.AGENT_ID] = agent.agent_id
        env[TeamEnv.SESSION_ID] = self.session_id
        if agent.system_prompt:
            env[TeamEnv.SYSTEM_PROMPT] = agent.system_prompt
        if self.options.trace_context:
            env[TeamEnv.TRACE_ID] = self.options.trace_context.trace_id
            env[TeamEnv.PARENT_SPAN_ID] = self.options.trace_context.parent_span_id
        return env

    async def spawn_teammate(self, agent: TeamAgentConfig) -> asyncio.subprocess.Process:
        """
        Start a teammate's entry script as a child process.

        Raises:
            TeamConfigError: if the agent has no entry script
        """
        if not agent.entry_script:
            raise TeamConfigError(f"Agent {agent.agent_id} has no entry_script")

        process = await asyncio.create_subprocess_exec(
            self.options.python_executable, agent.entry_script,
            env=self.build_env(agent),
        )
        self.processes[agent.agent_id] = process
        logger.info("Spawned teammate %s (pid %s)", agent.agent_id, process.pid)

        await self._fire(TeamHookEvent.TEAMMATE_SPAWNED, agentId=agent.agent_id, pid=process.pid)
        return process

    async def spawn_all(self) -> Dict[str, asyncio.subprocess.Process]:
        for agent in self.teammates:
            await self.spawn_teammate(agent)
        return self.processes

    def read_agent_states(self) -> Dict[str, Optional[AgentState]]:
        """Latest heartbeat record of every teammate (None if never written)."""
        return {
            agent.agent_id: read_agent_state(self.transport, self.paths, agent.agent_id)
            for agent in self.teammates
        }

    async def _check_heartbeats(self, now: datetime) -> List[TeamEvent]:
        events = []
        for agent_id, state in self.read_agent_states().items():
            if state is None or not state.is_stale(self.options.heartbeat_timeout_ms, now):
                continue
            error = f"No heartbeat for {int(state.elapsed_ms(now))}ms"
            logger.warning("Teammate %s looks crashed: %s", agent_id, error)
            await self._fire(TeamHookEvent.TEAMMATE_CRASHED, agentId=agent_id, error=error)
            events.append(TeamEvent(TeamEventType.TEAMMATE_CRASHED, agent_id=agent_id, error=error))
        return events

    async def _classify(self, message: TeamMessage) -> Optional[TeamEvent]:
        if is_shutdown_ack(message):
            logger.info("Teammate %s acknowledged shutdown", message.from_agent)
            return TeamEvent(TeamEventType.TEAMMATE_EXITED, agent_id=message.from_agent, exit_code=0)
        if is_idle_notification(message):
            logger.debug("Teammate %s is idle", message.from_agent)
            return None
        if is_plan_submission(message):
            payload = message.payload
            plan_id = payload.get("planId") if isinstance(payload, dict) else None
            await self._fire(TeamHookEvent.PLAN_SUBMITTED, planId=plan_id, agentId=message.from_agent)
            return TeamEvent(TeamEventType.PLAN_SUBMITTED, plan_id=plan_id, agent_id=message.from_agent)
        return TeamEvent(TeamEventType.MESSAGE_SENT, from_agent=message.from_agent, to_agent=self.lead_id)

    async def tick(self, now: Optional[datetime] = None) -> List[TeamEvent]:
        """
        Run one iteration of the lead loop and return its events.

        Order: heartbeats, task queue completion, lead mailbox.
        """
        now = now or utc_now()
        events = await self._check_heartbeats(now)

        if self.task_queue.all_done():
            events.append(TeamEvent(TeamEventType.ALL_TASKS_DONE))

        for message in self.mailbox.read_all(self.lead_id):
            event = await self._classify(message)
            if event is not None:
                events.append(event)

        return events

    async def run(self) -> AsyncIterator[TeamEvent]:
        """
        Run the lead event loop until ``stop()``.

        Loop: check heartbeats -> check task queue -> drain lead mailbox ->
        yield events -> sleep -> repeat. Ends with ``shutdown_complete``.
        """
        self.running = True
        poll_interval = self.options.poll_interval_ms / 1000.0

        while self.running:
            for event in await self.tick():
                yield event
            if not self.running:
                break
            await asyncio.sleep(poll_interval)

        await self._fire(TeamHookEvent.SHUTDOWN_COMPLETE)
        yield TeamEvent(TeamEventType.SHUTDOWN_COMPLETE)

    async def stop(self):
        """Stop the lead loop and SIGTERM every spawned teammate."""
        self.running = False

        for agent_id, process in self.processes.items():
            if process.returncode is not None:
                continue
            try:
                process.send_signal(signal.SIGTERM)
            except ProcessLookupError:
                continue

        # Wait for processes to finish
        for agent_id, process in self.processes.items():
            try:
                await asyncio.wait_for(process.wait(), timeout=self.options.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning("Force killing teammate %s", agent_id)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        self.processes.clear()

    # Lead operations

    async def create_tasks(self, inputs: Iterable[TaskInputLike]) -> List[TeamTask]:
        created = self.task_queue.create_many(inputs)
        for task in created:
            await self._fire(TeamHookEvent.TASK_CREATED, taskId=task.id,
                             taskTitle=task.title, taskStatus=task.status.value)
        return created

    async def send_message(self, to_agent: str, content: Any,
                           type: MessageType = MessageType.TEXT) -> TeamMessage:
        message = self.mailbox.send(TeamMessage(
            from_agent=self.lead_id,
            to_agent=to_agent,
            type=type,
            payload={"content": content},
        ))
        await self._fire(TeamHookEvent.MESSAGE_RECEIVED, messageId=message.id,
                         **{"from": message.from_agent, "to": message.to_agent},
                         messageType=message.type.value)
        return message

    async def broadcast_message(self, content: Any) -> TeamMessage:
        message = self.mailbox.broadcast(TeamMessage(
            from_agent=self.lead_id,
            to_agent=BROADCAST,
            type=MessageType.TEXT,
            payload={"content": content},
        ))
        await self._fire(TeamHookEvent.MESSAGE_RECEIVED, messageId=message.id,
                         **{"from": message.from_agent, "to": message.to_agent},
                         messageType=message.type.value)
        return message

    async def shutdown_teammate(self, agent_id: str, reason: Optional[str] = None) -> TeamMessage:
        message = request_shutdown(self.mailbox, self.lead_id, agent_id, reason)
        await self._fire(TeamHookEvent.SHUTDOWN_REQUESTED, targetAgentId=agent_id, reason=reason)
        return message

    async def shutdown_all(self, reason: Optional[str] = None) -> TeamMessage:
        message = broadcast_shutdown(self.mailbox, self.lead_id, reason)
        await self._fire(TeamHookEvent.SHUTDOWN_REQUESTED, targetAgentId="__all__", reason=reason)
        return message

    async def approve_plan(self, plan_id: str) -> Optional[TeamPlan]:
        plan = approve_plan(self.transport, self.mailbox, self.paths.plans_dir,
                            self.lead_id, plan_id)
        if plan is not None:
            await self._fire(TeamHookEvent.PLAN_APPROVED, planId=plan.id, planTitle=plan.title)
        return plan

    async def reject_plan(self, plan_id: str, reason: str) -> Optional[TeamPlan]:
        plan = reject_plan(self.transport, self.mailbox, self.paths.plans_dir,
                           self.lead_id, plan_id, reason)
        if plan is not None:
            await self._fire(TeamHookEvent.PLAN_REJECTED, planId=plan.id,
                             planTitle=plan.title, reason=reason)
        return plan
