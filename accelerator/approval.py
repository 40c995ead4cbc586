"""Status approval shared by tasks, initiatives and roadblocks.

A record carries three fields:

- ``status``: the authoritative current status
- ``requested_status``: the most recently requested status
- ``approval_status``: ``Pending`` while a startup's proposal differs from
  ``status``, otherwise ``Unchanged``

Startup actors can only propose a status. Any other role (mentor, manager,
admin) sets the status directly, which also settles any pending proposal.
"""
from __future__ import annotations

import logging
from typing import Protocol, TypeVar

from accelerator.models import ApprovalStatus, Role

log = logging.getLogger(__name__)


class Approvable(Protocol):
    status: int
    requested_status: int
    approval_status: str


A = TypeVar("A", bound=Approvable)


def is_privileged(actor_role: str) -> bool:
    return actor_role != Role.STARTUP.value


def apply_status_change(record: A, actor_role: str, new_status: int) -> A:
    """Apply a status request from *actor_role* to *record* in place and return it.

    Requesting the status that is already requested is a no-op.
    """
    if record.requested_status == new_status:
        return record

    if is_privileged(actor_role):
        record.status = new_status
        record.approval_status = ApprovalStatus.UNCHANGED.value
    else:
        record.approval_status = (
            ApprovalStatus.UNCHANGED.value if record.status == new_status
            else ApprovalStatus.PENDING.value
        )
    record.requested_status = new_status
    log.debug(
        "%s requested status %s -> status=%s approval=%s",
        actor_role, new_status, record.status, record.approval_status,
    )
    return record
