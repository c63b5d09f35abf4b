"""
Task dependency graph and its mermaid rendering.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..models import TaskStatus, TeamTask


STATUS_STYLES = {
    TaskStatus.PENDING: "fill:#D3D3D3,stroke:#333",
    TaskStatus.BLOCKED: "fill:#F4A460,stroke:#333",
    TaskStatus.CLAIMED: "fill:#FFD700,stroke:#333",
    TaskStatus.COMPLETED: "fill:#90EE90,stroke:#333",
    TaskStatus.FAILED: "fill:#FF7F7F,stroke:#333",
}

STATUS_ICONS = {
    TaskStatus.CLAIMED: " ⏳",
    TaskStatus.COMPLETED: " ✓",
    TaskStatus.FAILED: " ✗",
}


@dataclass(frozen=True)
class TaskGraphNode:
    id: str
    title: str
    status: TaskStatus
    assignee: Optional[str] = None


@dataclass(frozen=True)
class TaskGraphEdge:
    """``source`` must complete before ``target`` can start."""
    source: str
    target: str


@dataclass
class TaskGraph:
    nodes: List[TaskGraphNode] = field(default_factory=list)
    edges: List[TaskGraphEdge] = field(default_factory=list)

    def dependents_of(self, task_id: str) -> List[str]:
        return [e.target for e in self.edges if e.source == task_id]


def build_task_graph(tasks: Iterable[TeamTask]) -> TaskGraph:
    """Build nodes and dependency edges; edges to tasks outside the set are dropped."""
    tasks = list(tasks)
    ids = {t.id for t in tasks}
    graph = TaskGraph()
    for task in tasks:
        graph.nodes.append(TaskGraphNode(
            id=task.id,
            title=task.title,
            status=task.status,
            assignee=task.assignee,
        ))
    for task in tasks:
        for dep_id in task.dependencies:
            if dep_id in ids:
                graph.edges.append(TaskGraphEdge(source=dep_id, target=task.id))
    return graph


def _node_key(task_id: str) -> str:
    # mermaid node ids allow ascii alphanumerics only; anything else,
    # underscores included, is escaped as _<hex code>_
    return "t_" + "".join(
        c if c.isascii() and c.isalnum() else f"_{ord(c):x}_" for c in task_id
    )


def _label(node: TaskGraphNode) -> str:
    label = f"{node.title}{STATUS_ICONS.get(node.status, '')}"
    if node.assignee:
        label += f" ({node.assignee})"
    return label.replace('"', "&quot;")


def render_task_graph_mermaid(graph: TaskGraph) -> str:
    """Render a ``graph TD`` mermaid diagram, one CSS class per status."""
    if not graph.nodes:
        return "graph TD\n  empty[No tasks]"

    lines = ["graph TD"]
    for node in graph.nodes:
        lines.append(f'  {_node_key(node.id)}["{_label(node)}"]')
    for edge in graph.edges:
        lines.append(f"  {_node_key(edge.source)} --> {_node_key(edge.target)}")

    lines.append("")
    for status, style in STATUS_STYLES.items():
        lines.append(f"  classDef {status.value} {style}")

    for status in TaskStatus:
        keys = [_node_key(n.id) for n in graph.nodes if n.status == status]
        if keys:
            lines.append(f"  class {','.join(keys)} {status.value}")

    return "\n".join(lines)
