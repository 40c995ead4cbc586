"""AI-assisted generation of RNAs, tasks, initiatives and roadblocks.

Generated tasks and initiatives are inserted at the front of the startup's
ordering: every existing item's ordering key is shifted by the number of new
items N, and the new items take keys 1..N in generation order. All AI calls
for a batch complete before anything is written, so a failed or empty
generation leaves existing items untouched. The shift and the inserts are
committed together.
"""
from __future__ import annotations

import logging
import threading
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from accelerator.errors import PreconditionError
from accelerator.llm import LLMClient
from accelerator.models import (
    INACTIVE_STATUSES, ApprovalStatus, Initiative, ItemStatus, ReadinessLevel, Roadblock, Rns,
    Startup, StartupReadinessLevel, StartupRNA,
)
from accelerator.prompts import (
    build_base_context, current_levels, initiative_prompt, roadblock_prompt, rna_prompt, task_prompt,
)
from accelerator.services import get_or_raise, require_proposal
from accelerator.utils import clip

log = logging.getLogger(__name__)

MAX_LEVEL = 9
RISK_RANGE = (1, 5)

TASK_DESCRIPTION_MAX = 500
INITIATIVE_DESCRIPTION_MAX = 400
INITIATIVE_FIELD_MAX = 150
ROADBLOCK_FIELD_MAX = 500
RNA_MAX = 2000

_locks: dict[tuple[str, int], threading.Lock] = {}
_locks_guard = threading.Lock()


def _renumber_lock(table: str, startup_id: int) -> threading.Lock:
    """Lock serializing front insertion for one startup's table.

    Locks live for the life of the process, one per (table, startup) pair
    that has ever had items inserted, and only guard this process.
    """
    with _locks_guard:
        return _locks.setdefault((table, startup_id), threading.Lock())


# ---------------------------------------------------------------------------
# Renumbering
# ---------------------------------------------------------------------------


def insert_at_front(session: Session, model, startup_id: int, items: list) -> list:
    """Shift the startup's existing keys by ``len(items)`` and insert *items* at 1..N.

    *items* must not be attached to the session yet. Commits once; on error
    the session is rolled back and no key has moved.
    """
    n = len(items)
    if n == 0:
        return items
    key = model.ordering_key
    column = getattr(model, key)
    with _renumber_lock(model.__tablename__, startup_id):
        try:
            session.execute(
                update(model).where(model.startup_id == startup_id).values({key: column + n})
            )
            for position, item in enumerate(items, start=1):
                item.startup_id = startup_id
                setattr(item, key, position)
                session.add(item)
            session.commit()
        except Exception:
            session.rollback()
            raise
    log.info("Inserted %d %s item(s) at the front for startup %d", n, model.kind, startup_id)
    return items


# ---------------------------------------------------------------------------
# Record validation
# ---------------------------------------------------------------------------


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def resolve_target_level(
    session: Session, readiness_type: str, requested: Any, current: int,
) -> ReadinessLevel | None:
    """Catalog entry for a task's target level.

    A missing or zero target defaults to one above *current*; anything above 9
    is capped at 9. Returns None when the catalog has no such entry.
    """
    level = min(_as_int(requested) or current + 1, MAX_LEVEL)
    return session.execute(
        select(ReadinessLevel).where(
            ReadinessLevel.readiness_type == readiness_type, ReadinessLevel.level == level,
        )
    ).scalar_one_or_none()


def clamp_risk(value: Any) -> int | None:
    risk = _as_int(value)
    if risk is None:
        return None
    low, high = RISK_RANGE
    return max(low, min(high, risk))


def _new_item_fields(startup: Startup) -> dict[str, Any]:
    return {
        "startup_id": startup.id,
        "assignee_id": startup.user_id,
        "status": ItemStatus.NEW.value,
        "requested_status": ItemStatus.NEW.value,
        "approval_status": ApprovalStatus.UNCHANGED.value,
        "is_ai_generated": False,
    }


def _startup_context(session: Session, startup_id: int) -> tuple[Startup, str, list[StartupReadinessLevel]]:
    startup = get_or_raise(session, Startup, startup_id, "Startup")
    proposal = require_proposal(startup)
    levels = list(session.execute(
        select(StartupReadinessLevel).where(StartupReadinessLevel.startup_id == startup_id)
    ).scalars().all())
    return startup, build_base_context(proposal, levels), levels


# ---------------------------------------------------------------------------
# RNA
# ---------------------------------------------------------------------------


def _types_with_rna(session: Session, startup_id: int) -> set[str]:
    return set(session.execute(
        select(ReadinessLevel.readiness_type)
        .join(StartupRNA, StartupRNA.readiness_level_id == ReadinessLevel.id)
        .where(StartupRNA.startup_id == startup_id)
    ).scalars().all())


def all_dimensions_have_rna(session: Session, startup_id: int) -> bool:
    get_or_raise(session, Startup, startup_id, "Startup")
    levels = session.execute(
        select(StartupReadinessLevel.readiness_type).where(StartupReadinessLevel.startup_id == startup_id)
    ).scalars().all()
    return bool(levels) and set(levels) <= _types_with_rna(session, startup_id)


async def generate_rna(session: Session, startup_id: int, client: LLMClient | None = None) -> list[StartupRNA]:
    """Generate an RNA for every assessed dimension that does not have one yet.

    Returns the new RNAs, or ``[]`` when every dimension already has one.
    """
    startup, base, levels = _startup_context(session, startup_id)
    if not levels:
        raise PreconditionError("Startup has no readiness levels")
    covered = _types_with_rna(session, startup_id)
    missing = {row.readiness_type.lower(): row for row in levels if row.readiness_type not in covered}
    if not missing:
        return []

    if client is None:
        client = LLMClient()
    records = await client.generate_records(rna_prompt(base, missing.values()))

    created: list[StartupRNA] = []
    for record in records:
        row = missing.pop(str(record.get("readiness_level_type", "")).strip().lower(), None)
        if row is None:
            log.warning("Ignoring RNA for unknown or repeated type %r", record.get("readiness_level_type"))
            continue
        created.append(StartupRNA(
            startup_id=startup.id, readiness_level_id=row.readiness_level_id,
            rna=clip(record.get("rna"), RNA_MAX), is_ai_generated=True,
        ))
    session.add_all(created)
    session.commit()
    log.info("Generated %d RNA(s) for startup %d", len(created), startup.id)
    return created


# ---------------------------------------------------------------------------
# Tasks, initiatives, roadblocks
# ---------------------------------------------------------------------------


async def generate_tasks(
    session: Session, startup_id: int, rna_ids: list[int], tasks_per_rna: int = 1,
    client: LLMClient | None = None,
) -> list[Rns]:
    """Generate tasks for each selected RNA and insert them at the front."""
    startup, base, levels = _startup_context(session, startup_id)
    rnas = list(session.execute(
        select(StartupRNA).where(StartupRNA.id.in_(rna_ids or []), StartupRNA.startup_id == startup.id)
        .order_by(StartupRNA.id)
    ).scalars().all())
    if not rnas:
        raise PreconditionError("No valid RNA found for the provided RNA IDs")

    if client is None:
        client = LLMClient()
    current = current_levels(levels)
    items: list[Rns] = []
    for rna in rnas:
        readiness_type = rna.readiness_level.readiness_type
        records = await client.generate_records(task_prompt(base, rna, tasks_per_rna))
        if not records:
            log.warning("AI returned no tasks for RNA %d", rna.id)
        for record in records[:tasks_per_rna]:
            description = clip(record.get("description"), TASK_DESCRIPTION_MAX)
            target = resolve_target_level(
                session, readiness_type, record.get("target_level"), current.get(readiness_type, 0),
            )
            if target is None or not description:
                log.warning(
                    "Skipping task for %s: target level %r not found or empty description",
                    readiness_type, record.get("target_level"),
                )
                continue
            items.append(Rns(
                **_new_item_fields(startup), readiness_type=readiness_type,
                target_level_id=target.id, description=description,
            ))
    return insert_at_front(session, Rns, startup.id, items)


async def generate_initiatives(
    session: Session, startup_id: int, rns_ids: list[int], initiatives_per_task: int = 1,
    client: LLMClient | None = None,
) -> list[Initiative]:
    """Generate initiatives for each selected task and insert them at the front."""
    startup, base, _ = _startup_context(session, startup_id)
    tasks = list(session.execute(
        select(Rns).where(Rns.id.in_(rns_ids or []), Rns.startup_id == startup.id).order_by(Rns.id)
    ).scalars().all())
    if not tasks:
        raise PreconditionError("No valid RNS found for the provided RNS IDs")

    if client is None:
        client = LLMClient()
    items: list[Initiative] = []
    for task in tasks:
        records = await client.generate_records(initiative_prompt(base, task, initiatives_per_task))
        if not records:
            log.warning("AI returned no initiatives for RNS %d", task.id)
        for record in records[:initiatives_per_task]:
            description = clip(record.get("description"), INITIATIVE_DESCRIPTION_MAX)
            if not description:
                log.warning("Skipping initiative without description for RNS %d", task.id)
                continue
            items.append(Initiative(
                **_new_item_fields(startup), rns_id=task.id, priority_number=0,
                description=description,
                measures=clip(record.get("measures"), INITIATIVE_FIELD_MAX),
                targets=clip(record.get("targets"), INITIATIVE_FIELD_MAX),
                remarks=clip(record.get("remarks"), INITIATIVE_FIELD_MAX),
            ))
    return insert_at_front(session, Initiative, startup.id, items)


async def generate_roadblocks(
    session: Session, startup_id: int, count: int = 1, client: LLMClient | None = None,
) -> list[Roadblock]:
    """Generate roadblocks from the startup's active tasks and initiatives.

    Roadblocks are ordered by their 1-5 risk severity and are not renumbered.
    """
    startup, base, _ = _startup_context(session, startup_id)
    inactive = [s.value for s in INACTIVE_STATUSES]
    tasks = list(session.execute(
        select(Rns).where(Rns.startup_id == startup.id, Rns.status.not_in(inactive))
        .order_by(Rns.priority_number)
    ).scalars().all())
    initiatives = list(session.execute(
        select(Initiative).where(Initiative.startup_id == startup.id, Initiative.status.not_in(inactive))
        .order_by(Initiative.initiative_number)
    ).scalars().all())

    if client is None:
        client = LLMClient()
    records = await client.generate_records(roadblock_prompt(base, tasks, initiatives, count))

    items: list[Roadblock] = []
    for record in records[:count]:
        risk = clamp_risk(record.get("riskNumber"))
        description = clip(record.get("description"), ROADBLOCK_FIELD_MAX)
        if risk is None or not description:
            log.warning("Skipping roadblock with invalid risk %r or empty description", record.get("riskNumber"))
            continue
        items.append(Roadblock(
            **_new_item_fields(startup), risk_number=risk, description=description,
            fix=clip(record.get("fix"), ROADBLOCK_FIELD_MAX),
        ))
    session.add_all(items)
    session.commit()
    log.info("Generated %d roadblock(s) for startup %d", len(items), startup.id)
    return items


async def generate_batch(
    session: Session, startup_id: int, kind: str, requested_count: int,
    context: dict[str, Any] | None = None, client: LLMClient | None = None,
) -> list:
    """Dispatch a generation request by work-item kind.

    *context* carries ``rna_ids`` for tasks and ``rns_ids`` for initiatives.
    """
    context = context or {}
    if kind == "task":
        return await generate_tasks(session, startup_id, context.get("rna_ids") or [], requested_count, client)
    if kind == "initiative":
        return await generate_initiatives(session, startup_id, context.get("rns_ids") or [], requested_count, client)
    if kind == "roadblock":
        return await generate_roadblocks(session, startup_id, requested_count, client)
    raise ValueError(f"Unknown work item kind: {kind!r}")
