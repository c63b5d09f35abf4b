"""
Coordination infrastructure shared by the lead and its teammates.
"""
from .file_lock import FileLock, file_lock
from .transport import FileTransport
from .mailbox import Mailbox
from .task_queue import SharedTaskQueue
from .graph import TaskGraph, TaskGraphEdge, TaskGraphNode, build_task_graph, render_task_graph_mermaid
from .team_config import (
    TeamPaths,
    create_team_config,
    get_team_dir,
    get_team_paths,
    read_agent_state,
    read_team_config,
    write_agent_state,
    write_team_config,
)

__all__ = [
    'FileLock',
    'file_lock',
    'FileTransport',
    'Mailbox',
    'SharedTaskQueue',
    'TaskGraph',
    'TaskGraphEdge',
    'TaskGraphNode',
    'build_task_graph',
    'render_task_graph_mermaid',
    'TeamPaths',
    'create_team_config',
    'get_team_dir',
    'get_team_paths',
    'read_agent_state',
    'read_team_config',
    'write_agent_state',
    'write_team_config',
]
