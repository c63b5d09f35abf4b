"""
Plan submission and approval.

A plan is stored as ``plans/{planId}.json`` so the decision survives a restart,
and every step also sends a message so the other side sees it on its next
mailbox drain. Decisions are made under a per-plan lock and only once.
"""
import logging
from pathlib import Path
from typing import Optional

from ..coordination.mailbox import Mailbox
from ..coordination.transport import FileTransport, PathLike
from ..models import MessageType, PlanStatus, TeamMessage, TeamPlan, new_id, utc_now


logger = logging.getLogger(__name__)


def _plan_path(plans_dir: PathLike, plan_id: str) -> Path:
    return Path(plans_dir) / f"{plan_id}.json"


def read_plan(transport: FileTransport, plans_dir: PathLike, plan_id: str) -> Optional[TeamPlan]:
    data = transport.read_json(_plan_path(plans_dir, plan_id))
    if data is None:
        return None
    return TeamPlan.from_dict(data)


def submit_plan(transport: FileTransport, mailbox: Mailbox, plans_dir: PathLike,
                from_agent: str, lead_id: str, title: str, description: str) -> TeamPlan:
    """Persist a pending plan and notify the lead."""
    plan = TeamPlan(
        id=new_id(),
        submitted_by=from_agent,
        title=title,
        description=description,
    )
    transport.write_json(_plan_path(plans_dir, plan.id), plan.to_dict())
    mailbox.send(TeamMessage(
        from_agent=from_agent,
        to_agent=lead_id,
        type=MessageType.PLAN_SUBMISSION,
        payload={"planId": plan.id, "title": title},
    ))
    logger.info("%s submitted plan %s '%s'", from_agent, plan.id, title)
    return plan


def _decide(transport: FileTransport, mailbox: Mailbox, plans_dir: PathLike,
            lead_id: str, plan_id: str, status: PlanStatus,
            reason: Optional[str] = None) -> Optional[TeamPlan]:
    with transport.lock(f"plan-{plan_id}"):
        plan = read_plan(transport, plans_dir, plan_id)
        if plan is None or plan.status != PlanStatus.PENDING:
            return None
        plan.status = status
        plan.rejection_reason = reason
        plan.decided_at = utc_now()
        transport.write_json(_plan_path(plans_dir, plan_id), plan.to_dict())

    mailbox.send(TeamMessage(
        from_agent=lead_id,
        to_agent=plan.submitted_by,
        type=MessageType.PLAN_DECISION,
        payload={"planId": plan.id, "status": status.value, "reason": reason},
    ))
    logger.info("Plan %s %s by %s", plan.id, status.value, lead_id)
    return plan


def approve_plan(transport: FileTransport, mailbox: Mailbox, plans_dir: PathLike,
                 lead_id: str, plan_id: str) -> Optional[TeamPlan]:
    """
    Approve a pending plan.

    Returns:
        The decided plan, or None if it does not exist or was already decided
    """
    return _decide(transport, mailbox, plans_dir, lead_id, plan_id, PlanStatus.APPROVED)


def reject_plan(transport: FileTransport, mailbox: Mailbox, plans_dir: PathLike,
                lead_id: str, plan_id: str, reason: str) -> Optional[TeamPlan]:
    """
    Reject a pending plan with a reason.

    Returns:
        The decided plan, or None if it does not exist or was already decided
    """
    return _decide(transport, mailbox, plans_dir, lead_id, plan_id, PlanStatus.REJECTED, reason)


def is_plan_submission(message: TeamMessage) -> bool:
    return message.type == MessageType.PLAN_SUBMISSION


def is_plan_decision(message: TeamMessage) -> bool:
    return message.type == MessageType.PLAN_DECISION
