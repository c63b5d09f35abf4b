"""
Cooperative shutdown: the lead asks, the teammate acknowledges and exits.
"""
from typing import Optional

from ..coordination.mailbox import Mailbox
from ..models import BROADCAST, MessageType, TeamMessage


def request_shutdown(mailbox: Mailbox, from_agent: str, to_agent: str,
                     reason: Optional[str] = None) -> TeamMessage:
    """Ask one teammate to finish its current tick and stop."""
    return mailbox.send(TeamMessage(
        from_agent=from_agent,
        to_agent=to_agent,
        type=MessageType.SHUTDOWN_REQUEST,
        payload={"reason": reason},
    ))


def broadcast_shutdown(mailbox: Mailbox, from_agent: str,
                       reason: Optional[str] = None) -> TeamMessage:
    """Ask every other agent to stop."""
    return mailbox.broadcast(TeamMessage(
        from_agent=from_agent,
        to_agent=BROADCAST,
        type=MessageType.SHUTDOWN_REQUEST,
        payload={"reason": reason},
    ))


def acknowledge_shutdown(mailbox: Mailbox, from_agent: str, to_agent: str) -> TeamMessage:
    return mailbox.send(TeamMessage(
        from_agent=from_agent,
        to_agent=to_agent,
        type=MessageType.SHUTDOWN_ACK,
        payload={},
    ))


def is_shutdown_request(message: TeamMessage) -> bool:
    return message.type == MessageType.SHUTDOWN_REQUEST


def is_shutdown_ack(message: TeamMessage) -> bool:
    return message.type == MessageType.SHUTDOWN_ACK
