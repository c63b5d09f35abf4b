"""
Message protocols layered on the mailbox.
"""
from .shutdown import (
    acknowledge_shutdown,
    broadcast_shutdown,
    is_shutdown_ack,
    is_shutdown_request,
    request_shutdown,
)
from .idle import is_idle_notification, notify_idle
from .plans import (
    approve_plan,
    is_plan_decision,
    is_plan_submission,
    read_plan,
    reject_plan,
    submit_plan,
)

__all__ = [
    'acknowledge_shutdown',
    'broadcast_shutdown',
    'is_shutdown_ack',
    'is_shutdown_request',
    'request_shutdown',
    'is_idle_notification',
    'notify_idle',
    'approve_plan',
    'is_plan_decision',
    'is_plan_submission',
    'read_plan',
    'reject_plan',
    'submit_plan',
]
