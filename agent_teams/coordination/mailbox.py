"""
File-backed mailbox: one append-only log per agent plus a broadcast log.

Each reader keeps a cursor (how many entries of its inbox and of the broadcast
log it has already seen), so ``read_all`` drains: a message is returned to a
given reader once. The reader is the only writer of its cursor file.
"""
import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import BROADCAST, MessageType, TeamMessage
from .transport import FileTransport, PathLike


logger = logging.getLogger(__name__)


class Mailbox:
    """Per-agent inboxes and a broadcast channel in ``messages_dir``."""

    def __init__(self, transport: FileTransport, messages_dir: PathLike):
        self.transport = transport
        self.messages_dir = Path(messages_dir)
        self.cursors_dir = self.messages_dir / "cursors"

    def _log_path(self, agent_id: str) -> Path:
        return self.messages_dir / f"{agent_id}.json"

    def _cursor_path(self, agent_id: str) -> Path:
        return self.cursors_dir / f"{agent_id}.json"

    def _append(self, log_owner: str, message: TeamMessage):
        # one writer per log at a time
        path = self._log_path(log_owner)
        with self.transport.lock(f"mailbox-{log_owner}"):
            log = self.transport.read_json(path) or []
            log.append(message.to_dict())
            self.transport.write_json(path, log)

    def _read_log(self, agent_id: str) -> List[Dict[str, Any]]:
        return self.transport.read_json(self._log_path(agent_id)) or []

    def send(self, message: TeamMessage) -> TeamMessage:
        """Append a message to the recipient's inbox."""
        if message.is_broadcast:
            return self.broadcast(message)
        self._append(message.to_agent, message)
        logger.debug("%s -> %s: %s", message.from_agent, message.to_agent, message.type.value)
        return message

    def broadcast(self, message: TeamMessage) -> TeamMessage:
        """Append a message to the broadcast log, seen by everyone but the sender."""
        if not message.is_broadcast:
            message = dataclasses.replace(message, to_agent=BROADCAST)
        self._append(BROADCAST, message)
        logger.debug("%s -> all: %s", message.from_agent, message.type.value)
        return message

    def read_all(self, agent_id: str) -> List[TeamMessage]:
        """
        Return every message newly visible to ``agent_id`` and advance its cursor.

        Own inbox messages come first, then broadcasts from other agents, each
        in log order.
        """
        cursor = self.transport.read_json(self._cursor_path(agent_id)) or {}
        inbox_pos = cursor.get("inbox", 0)
        broadcast_pos = cursor.get("broadcast", 0)

        inbox = self._read_log(agent_id)
        broadcasts = self._read_log(BROADCAST)

        new_entries = inbox[inbox_pos:]
        new_entries.extend(
            entry for entry in broadcasts[broadcast_pos:]
            if entry.get("from") != agent_id
        )

        if len(inbox) != inbox_pos or len(broadcasts) != broadcast_pos:
            self.transport.write_json(self._cursor_path(agent_id), {
                "inbox": len(inbox),
                "broadcast": len(broadcasts),
            })

        return [TeamMessage.from_dict(entry) for entry in new_entries]

    def compose(self, from_agent: str, to_agent: str, type: MessageType,
                payload: Optional[Any] = None) -> TeamMessage:
        """Build and send a message in one call."""
        message = TeamMessage(from_agent=from_agent, to_agent=to_agent,
                              type=type, payload=payload)
        return self.send(message)
