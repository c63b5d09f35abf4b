"""
Idle notifications. Advisory only: the task queue stays the source of truth.
"""
from typing import Optional

from ..coordination.mailbox import Mailbox
from ..models import MessageType, TeamMessage


def notify_idle(mailbox: Mailbox, from_agent: str, to_agent: str,
                reason: Optional[str] = None) -> TeamMessage:
    return mailbox.send(TeamMessage(
        from_agent=from_agent,
        to_agent=to_agent,
        type=MessageType.IDLE_NOTIFICATION,
        payload={"reason": reason} if reason else {},
    ))


def is_idle_notification(message: TeamMessage) -> bool:
    return message.type == MessageType.IDLE_NOTIFICATION
