"""Shared business logic for the accelerator API and MCP server."""
from __future__ import annotations

import logging
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from accelerator.approval import apply_status_change
from accelerator.errors import NotFoundError, PreconditionError
from accelerator.models import (
    WORK_ITEM_MODELS, ApprovalStatus, CapsuleProposal, Initiative, ItemStatus,
    QualificationStatus, Roadblock, Rns, Startup, StartupReadinessLevel, StartupRNA, User,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

PROPOSAL_FIELDS = (
    "title", "description", "problem_statement", "target_market",
    "solution_description", "objectives", "scope", "methodology",
)

APPROVAL_FIELDS = (
    "status", "requested_status", "approval_status", "is_ai_generated",
    "clicked_by_mentor", "clicked_by_startup",
)

FLAG_FIELDS = ("clicked_by_mentor", "clicked_by_startup", "is_ai_generated")

UPDATABLE_ITEM_FIELDS: dict[str, tuple[str, ...]] = {
    "task": (
        "description", "priority_number", "readiness_type", "assignee_id",
        "target_level_id", *FLAG_FIELDS,
    ),
    "initiative": (
        "description", "measures", "targets", "remarks", "initiative_number",
        "priority_number", "assignee_id", *FLAG_FIELDS,
    ),
    "roadblock": ("description", "fix", "risk_number", "assignee_id", *FLAG_FIELDS),
}

# ---------------------------------------------------------------------------
# Lookup and mutation helpers
# ---------------------------------------------------------------------------


def get_or_raise(session: Session, model: type[T], entity_id: int, label: str | None = None) -> T:
    """Fetch an entity by primary key or raise NotFoundError."""
    obj = session.get(model, entity_id)
    if obj is None:
        raise NotFoundError(label or model.__name__, entity_id)
    return obj


def work_item_model(kind: str):
    try:
        return WORK_ITEM_MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown work item kind: {kind!r}") from None


def apply_updates(obj, updates: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to an ORM object."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            setattr(obj, field, val)


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def proposal_dict(proposal: CapsuleProposal | None) -> dict | None:
    if proposal is None:
        return None
    return {"id": proposal.id, **{f: getattr(proposal, f) for f in PROPOSAL_FIELDS}}


def startup_summary(startup: Startup) -> dict:
    return {
        "id": startup.id, "name": startup.name, "user_id": startup.user_id,
        "qualification_status": startup.qualification_status,
        "waitlist_message": startup.waitlist_message,
        "created_at": startup.created_at.isoformat() if startup.created_at else None,
    }


def startup_detail(startup: Startup) -> dict:
    base = startup_summary(startup)
    base["capsule_proposal"] = proposal_dict(startup.capsule_proposal)
    base["readiness_levels"] = [readiness_level_dict(r) for r in startup.readiness_levels]
    return base


def readiness_level_dict(row: StartupReadinessLevel) -> dict:
    entry = row.readiness_level
    return {
        "id": row.id, "startup_id": row.startup_id, "readiness_type": row.readiness_type,
        "readiness_level_id": entry.id, "level": entry.level, "name": entry.name,
    }


def rna_dict(rna: StartupRNA) -> dict:
    return {
        "id": rna.id, "startup_id": rna.startup_id,
        "readiness_level_id": rna.readiness_level_id,
        "readiness_type": rna.readiness_level.readiness_type,
        "level": rna.readiness_level.level,
        "rna": rna.rna, "is_ai_generated": rna.is_ai_generated,
    }


def work_item_dict(item: Rns | Initiative | Roadblock) -> dict:
    base = {
        "id": item.id, "kind": item.kind, "startup_id": item.startup_id,
        "assignee_id": item.assignee_id, "description": item.description,
        **{f: getattr(item, f) for f in APPROVAL_FIELDS},
    }
    if isinstance(item, Rns):
        base.update(
            priority_number=item.priority_number, readiness_type=item.readiness_type,
            target_level_id=item.target_level_id,
            target_level=item.target_level.level if item.target_level else None,
        )
    elif isinstance(item, Initiative):
        base.update(
            rns_id=item.rns_id, initiative_number=item.initiative_number,
            priority_number=item.priority_number, measures=item.measures,
            targets=item.targets, remarks=item.remarks,
        )
    else:
        base.update(risk_number=item.risk_number, fix=item.fix)
    return base


# ---------------------------------------------------------------------------
# Startup lifecycle
# ---------------------------------------------------------------------------


def create_startup(
    session: Session, name: str, user_id: int | None = None,
    proposal: dict[str, Any] | None = None,
) -> Startup:
    """Create a startup together with its capsule proposal in one transaction."""
    if user_id is not None:
        get_or_raise(session, User, user_id, "User")
    try:
        startup = Startup(name=name, user_id=user_id)
        session.add(startup)
        if proposal is not None:
            cp = CapsuleProposal()
            apply_updates(cp, proposal, PROPOSAL_FIELDS)
            startup.capsule_proposal = cp
        session.commit()
    except Exception:
        session.rollback()
        raise
    log.info("Created startup %d (%s)", startup.id, startup.name)
    return startup


def update_capsule_proposal(session: Session, startup_id: int, updates: dict[str, Any]) -> CapsuleProposal:
    startup = get_or_raise(session, Startup, startup_id, "Startup")
    if startup.capsule_proposal is None:
        startup.capsule_proposal = CapsuleProposal()
    apply_updates(startup.capsule_proposal, updates, PROPOSAL_FIELDS)
    session.commit()
    return startup.capsule_proposal


def _set_qualification(session: Session, startup_id: int, status: QualificationStatus) -> Startup:
    startup = get_or_raise(session, Startup, startup_id, "Startup")
    startup.qualification_status = status.value
    return startup


def approve_startup(session: Session, startup_id: int) -> Startup:
    startup = _set_qualification(session, startup_id, QualificationStatus.QUALIFIED)
    session.commit()
    return startup


def waitlist_startup(session: Session, startup_id: int, message: str = "") -> Startup:
    startup = _set_qualification(session, startup_id, QualificationStatus.WAITLISTED)
    startup.waitlist_message = message
    session.commit()
    return startup


def complete_startup(session: Session, startup_id: int) -> Startup:
    startup = _set_qualification(session, startup_id, QualificationStatus.COMPLETED)
    session.commit()
    return startup


def allow_rnas(session: Session, startup_id: int) -> bool:
    """RNAs can be generated once the startup has readiness levels."""
    get_or_raise(session, Startup, startup_id, "Startup")
    count = session.scalar(
        select(func.count(StartupReadinessLevel.id)).where(StartupReadinessLevel.startup_id == startup_id)
    )
    return bool(count)


def allow_tasks(session: Session, startup_id: int) -> bool:
    """Tasks, initiatives and roadblocks can be generated once the startup has RNAs."""
    get_or_raise(session, Startup, startup_id, "Startup")
    count = session.scalar(select(func.count(StartupRNA.id)).where(StartupRNA.startup_id == startup_id))
    return bool(count)


def require_proposal(startup: Startup) -> CapsuleProposal:
    if startup.capsule_proposal is None:
        raise PreconditionError("Capsule proposal not found")
    return startup.capsule_proposal


# ---------------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------------


def list_work_items(session: Session, kind: str, startup_id: int) -> list:
    model = work_item_model(kind)
    get_or_raise(session, Startup, startup_id, "Startup")
    return list(session.execute(
        select(model).where(model.startup_id == startup_id)
        .order_by(getattr(model, model.ordering_key), model.id)
    ).scalars().all())


def get_work_item(session: Session, kind: str, item_id: int):
    model = work_item_model(kind)
    return get_or_raise(session, model, item_id, model.__name__)


def create_work_item(session: Session, kind: str, startup_id: int, data: dict[str, Any]):
    """Create one item by hand. Its requested status starts equal to its status."""
    model = work_item_model(kind)
    startup = get_or_raise(session, Startup, startup_id, "Startup")
    status = int(data.get("status") or ItemStatus.NEW)
    item = model(
        startup_id=startup.id, status=status, requested_status=status,
        approval_status=ApprovalStatus.UNCHANGED.value, is_ai_generated=False,
    )
    if kind == "initiative":
        rns_id = data.get("rns_id")
        if rns_id is None:
            raise PreconditionError("Initiative requires an RNS")
        rns = get_or_raise(session, Rns, rns_id, "Rns")
        if rns.startup_id != startup.id:
            raise PreconditionError(f"RNS {rns_id} does not belong to startup {startup.id}")
        item.rns_id = rns.id
    if data.get("assignee_id") is None:
        item.assignee_id = startup.user_id
    apply_updates(item, data, UPDATABLE_ITEM_FIELDS[kind])
    session.add(item)
    session.commit()
    return item


def update_work_item(session: Session, kind: str, item_id: int, updates: dict[str, Any]):
    item = get_work_item(session, kind, item_id)
    apply_updates(item, updates, UPDATABLE_ITEM_FIELDS[kind])
    session.commit()
    return item


def delete_work_item(session: Session, kind: str, item_id: int) -> None:
    item = get_work_item(session, kind, item_id)
    session.delete(item)
    session.commit()


def change_status(session: Session, kind: str, item_id: int, actor_role: str, new_status: int):
    """Run a status request through the approval machine and persist the result."""
    item = get_work_item(session, kind, item_id)
    apply_status_change(item, actor_role, new_status)
    session.commit()
    return item
