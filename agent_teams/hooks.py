"""
Lifecycle hooks for team events.

Hooks are observation-only: a callback receives a payload dict, may be a plain
function or a coroutine function, and any exception it raises is logged and
swallowed so the coordination loops keep running.
"""
import inspect
import logging
import os
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union


logger = logging.getLogger(__name__)

HookCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class TeamHookEvent(str, Enum):
    MESSAGE_RECEIVED = "TeamMessageReceived"
    TASK_ASSIGNED = "TeamTaskAssigned"
    TASK_COMPLETED = "TeamTaskCompleted"
    TASK_CREATED = "TeamTaskCreated"
    TASK_FAILED = "TeamTaskFailed"
    TEAMMATE_SPAWNED = "TeamTeammateSpawned"
    TEAMMATE_CRASHED = "TeamTeammateCrashed"
    SHUTDOWN_REQUESTED = "TeamShutdownRequested"
    SHUTDOWN_COMPLETE = "TeamShutdownComplete"
    PLAN_SUBMITTED = "TeamPlanSubmitted"
    PLAN_APPROVED = "TeamPlanApproved"
    PLAN_REJECTED = "TeamPlanRejected"


_CALLBACK_FIELDS = {
    TeamHookEvent.MESSAGE_RECEIVED: "on_message_received",
    TeamHookEvent.TASK_ASSIGNED: "on_task_assigned",
    TeamHookEvent.TASK_COMPLETED: "on_task_completed",
    TeamHookEvent.TASK_CREATED: "on_task_created",
    TeamHookEvent.TASK_FAILED: "on_task_failed",
    TeamHookEvent.TEAMMATE_SPAWNED: "on_teammate_spawned",
    TeamHookEvent.TEAMMATE_CRASHED: "on_teammate_crashed",
    TeamHookEvent.SHUTDOWN_REQUESTED: "on_shutdown_requested",
    TeamHookEvent.SHUTDOWN_COMPLETE: "on_shutdown_complete",
    TeamHookEvent.PLAN_SUBMITTED: "on_plan_submitted",
    TeamHookEvent.PLAN_APPROVED: "on_plan_approved",
    TeamHookEvent.PLAN_REJECTED: "on_plan_rejected",
}


@dataclass
class TeamHooks:
    """Optional callbacks, one per lifecycle event."""
    on_message_received: Optional[HookCallback] = None
    on_task_assigned: Optional[HookCallback] = None
    on_task_completed: Optional[HookCallback] = None
    on_task_created: Optional[HookCallback] = None
    on_task_failed: Optional[HookCallback] = None
    on_teammate_spawned: Optional[HookCallback] = None
    on_teammate_crashed: Optional[HookCallback] = None
    on_shutdown_requested: Optional[HookCallback] = None
    on_shutdown_complete: Optional[HookCallback] = None
    on_plan_submitted: Optional[HookCallback] = None
    on_plan_approved: Optional[HookCallback] = None
    on_plan_rejected: Optional[HookCallback] = None

    def callback_for(self, event: TeamHookEvent) -> Optional[HookCallback]:
        return getattr(self, _CALLBACK_FIELDS[TeamHookEvent(event)])

    def registered(self) -> Dict[TeamHookEvent, HookCallback]:
        """Events that have a callback."""
        by_field = {name: event for event, name in _CALLBACK_FIELDS.items()}
        return {
            by_field[f.name]: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


async def fire_team_hook(hooks: Optional[TeamHooks], event: TeamHookEvent,
                         data: Dict[str, Any], session_id: Optional[str] = None):
    """
    Invoke the callback registered for ``event``, if any.

    The payload carries ``hook_event_name``, ``session_id`` and ``cwd`` plus
    ``data``. Exceptions from the callback are logged, never raised.
    """
    if hooks is None:
        return
    callback = hooks.callback_for(event)
    if callback is None:
        return

    payload = {
        "hook_event_name": TeamHookEvent(event).value,
        "session_id": session_id or "",
        "cwd": os.getcwd(),
        **data,
    }
    try:
        result = callback(payload)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning("Hook %s callback failed", payload["hook_event_name"], exc_info=True)
