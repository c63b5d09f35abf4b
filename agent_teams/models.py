"""
Data model for team coordination.

Every record is a dataclass with ``to_dict``/``from_dict``. Python attributes
are snake_case; the dictionaries use the camelCase keys of the on-disk JSON
format.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


BROADCAST = "__broadcast__"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


class AgentRole(str, Enum):
    LEAD = "lead"
    TEAMMATE = "teammate"


class MessageType(str, Enum):
    TEXT = "text"
    TASK_ASSIGNMENT = "task_assignment"
    TASK_UPDATE = "task_update"
    PLAN_SUBMISSION = "plan_submission"
    PLAN_DECISION = "plan_decision"
    SHUTDOWN_REQUEST = "shutdown_request"
    SHUTDOWN_ACK = "shutdown_ack"
    IDLE_NOTIFICATION = "idle_notification"
    CUSTOM = "custom"


class TaskStatus(str, Enum):
    PENDING = "pending"
    BLOCKED = "blocked"
    CLAIMED = "claimed"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class AgentRunStatus(str, Enum):
    RUNNING = "running"
    IDLE = "idle"
    STOPPED = "stopped"


class PlanStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class TeamAgentConfig:
    """One entry of the team roster."""
    agent_id: str
    role: AgentRole
    name: Optional[str] = None
    description: Optional[str] = None
    entry_script: Optional[str] = None  # teammates only
    system_prompt: Optional[str] = None

    def __post_init__(self):
        self.role = AgentRole(self.role)

    @property
    def is_lead(self) -> bool:
        return self.role == AgentRole.LEAD

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "agentId": self.agent_id,
            "role": self.role.value,
            "name": self.name,
            "description": self.description,
            "entryScript": self.entry_script,
            "systemPrompt": self.system_prompt,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TeamAgentConfig':
        return cls(
            agent_id=data["agentId"],
            role=AgentRole(data["role"]),
            name=data.get("name"),
            description=data.get("description"),
            entry_script=data.get("entryScript"),
            system_prompt=data.get("systemPrompt"),
        )


@dataclass(frozen=True)
class TeamConfig:
    """Immutable snapshot of a team run, written once by the lead."""
    team_name: str
    session_id: str
    agents: List[TeamAgentConfig]
    created_at: datetime = field(default_factory=utc_now)
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def lead_id(self) -> str:
        for agent in self.agents:
            if agent.is_lead:
                return agent.agent_id
        return "lead"

    @property
    def teammates(self) -> List[TeamAgentConfig]:
        return [a for a in self.agents if not a.is_lead]

    def get_agent(self, agent_id: str) -> Optional[TeamAgentConfig]:
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teamName": self.team_name,
            "sessionId": self.session_id,
            "agents": [a.to_dict() for a in self.agents],
            "createdAt": _to_iso(self.created_at),
            "settings": dict(self.settings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TeamConfig':
        return cls(
            team_name=data["teamName"],
            session_id=data["sessionId"],
            agents=[TeamAgentConfig.from_dict(a) for a in data.get("agents", [])],
            created_at=_from_iso(data.get("createdAt")) or utc_now(),
            settings=data.get("settings") or {},
        )


@dataclass(frozen=True)
class TeamMessage:
    """A message between agents. Never edited once written."""
    from_agent: str
    to_agent: str  # agent id or BROADCAST
    type: MessageType
    payload: Any = None
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        object.__setattr__(self, "type", MessageType(self.type))

    @property
    def is_broadcast(self) -> bool:
        return self.to_agent == BROADCAST

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_agent,
            "to": self.to_agent,
            "type": self.type.value,
            "payload": self.payload,
            "timestamp": _to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TeamMessage':
        return cls(
            id=data["id"],
            from_agent=data["from"],
            to_agent=data["to"],
            type=MessageType(data["type"]),
            payload=data.get("payload"),
            timestamp=_from_iso(data.get("timestamp")) or utc_now(),
        )


@dataclass
class TaskInput:
    """Arguments for creating a task. ``id`` is generated when omitted."""
    title: str
    description: str = ""
    dependencies: List[str] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    id: Optional[str] = None

    @classmethod
    def coerce(cls, value: Any) -> 'TaskInput':
        if isinstance(value, cls):
            return value
        return cls(
            title=value["title"],
            description=value.get("description", ""),
            dependencies=list(value.get("dependencies") or []),
            metadata=value.get("metadata"),
            id=value.get("id"),
        )


@dataclass
class TeamTask:
    """A task in the shared queue."""
    id: str
    title: str
    description: str
    status: TaskStatus
    dependencies: List[str] = field(default_factory=list)
    assignee: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        self.status = TaskStatus(self.status)

    def touch(self):
        self.updated_at = utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "assignee": self.assignee,
            "dependencies": list(self.dependencies),
            "result": self.result,
            "error": self.error,
            "createdAt": _to_iso(self.created_at),
            "updatedAt": _to_iso(self.updated_at),
            "metadata": self.metadata,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TeamTask':
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            status=TaskStatus(data["status"]),
            dependencies=list(data.get("dependencies") or []),
            assignee=data.get("assignee"),
            result=data.get("result"),
            error=data.get("error"),
            created_at=_from_iso(data.get("createdAt")) or utc_now(),
            updated_at=_from_iso(data.get("updatedAt")) or utc_now(),
            metadata=data.get("metadata"),
        )


@dataclass
class TaskQueueState:
    """The persisted queue: rewritten wholesale on every mutation."""
    tasks: List[TeamTask] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utc_now)

    def find(self, task_id: str) -> Optional[TeamTask]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "updatedAt": _to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TaskQueueState':
        return cls(
            tasks=[TeamTask.from_dict(t) for t in data.get("tasks", [])],
            updated_at=_from_iso(data.get("updatedAt")) or utc_now(),
        )


@dataclass
class AgentState:
    """Heartbeat record, one file per agent, written only by that agent."""
    agent_id: str
    status: AgentRunStatus
    pid: int
    last_heartbeat: datetime = field(default_factory=utc_now)
    current_task: Optional[str] = None

    def __post_init__(self):
        self.status = AgentRunStatus(self.status)

    def elapsed_ms(self, now: Optional[datetime] = None) -> float:
        now = now or utc_now()
        return (now - self.last_heartbeat).total_seconds() * 1000.0

    def is_stale(self, timeout_ms: float, now: Optional[datetime] = None) -> bool:
        """True when a running agent has not refreshed within ``timeout_ms``."""
        return self.status == AgentRunStatus.RUNNING and self.elapsed_ms(now) > timeout_ms

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "agentId": self.agent_id,
            "status": self.status.value,
            "currentTask": self.current_task,
            "lastHeartbeat": _to_iso(self.last_heartbeat),
            "pid": self.pid,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AgentState':
        return cls(
            agent_id=data["agentId"],
            status=AgentRunStatus(data["status"]),
            pid=int(data.get("pid", 0)),
            last_heartbeat=_from_iso(data.get("lastHeartbeat")) or utc_now(),
            current_task=data.get("currentTask"),
        )


@dataclass
class TeamPlan:
    """A plan submitted by a teammate and decided once by the lead."""
    id: str
    submitted_by: str
    title: str
    description: str
    status: PlanStatus = PlanStatus.PENDING
    rejection_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    decided_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = PlanStatus(self.status)

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "submittedBy": self.submitted_by,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "rejectionReason": self.rejection_reason,
            "createdAt": _to_iso(self.created_at),
            "decidedAt": _to_iso(self.decided_at),
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TeamPlan':
        return cls(
            id=data["id"],
            submitted_by=data["submittedBy"],
            title=data["title"],
            description=data.get("description", ""),
            status=PlanStatus(data["status"]),
            rejection_reason=data.get("rejectionReason"),
            created_at=_from_iso(data.get("createdAt")) or utc_now(),
            decided_at=_from_iso(data.get("decidedAt")),
        )


class TeamEventType(str, Enum):
    TEAMMATE_EXITED = "teammate_exited"
    TEAMMATE_CRASHED = "teammate_crashed"
    ALL_TASKS_DONE = "all_tasks_done"
    MESSAGE_SENT = "message_sent"
    PLAN_SUBMITTED = "plan_submitted"
    SHUTDOWN_COMPLETE = "shutdown_complete"


@dataclass(frozen=True)
class TeamEvent:
    """Event yielded by the lead loop."""
    type: TeamEventType
    agent_id: Optional[str] = None
    from_agent: Optional[str] = None
    to_agent: Optional[str] = None
    plan_id: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None


class TeammateEventType(str, Enum):
    MESSAGE_RECEIVED = "message_received"
    TASK_CLAIMED = "task_claimed"
    SHUTDOWN_REQUESTED = "shutdown_requested"
    IDLE = "idle"


@dataclass(frozen=True)
class TeammateEvent:
    """Event yielded by the teammate loop."""
    type: TeammateEventType
    message: Optional[TeamMessage] = None
    task: Optional[TeamTask] = None

    @property
    def task_id(self) -> Optional[str]:
        return self.task.id if self.task else None


class TeamEnv:
    """Environment variables that carry a teammate's identity."""
    TEAM_NAME = "AGENT_TEAM_NAME"
    BASE_DIR = "AGENT_TEAM_BASE_DIR"
    AGENT_ID = "AGENT_TEAM_AGENT_ID"
    SESSION_ID = "AGENT_TEAM_SESSION_ID"
    SYSTEM_PROMPT = "AGENT_TEAM_SYSTEM_PROMPT"
    TRACE_ID = "AGENT_TEAM_TRACE_ID"
    PARENT_SPAN_ID = "AGENT_TEAM_PARENT_SPAN_ID"

    REQUIRED = (TEAM_NAME, BASE_DIR, AGENT_ID, SESSION_ID)


@dataclass(frozen=True)
class TraceContext:
    """Trace correlation ids handed from the lead to its child processes."""
    trace_id: str
    parent_span_id: str
