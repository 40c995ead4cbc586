from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP
from sqlalchemy import select

from accelerator import assessments, generator, readiness, services
from accelerator.db import init_db, session_scope
from accelerator.errors import AcceleratorError, GenerationError
from accelerator.models import ItemStatus, ReadinessType, Role, Startup

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def accelerator_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "Accelerator",
    instructions=(
        "Accelerator tracks startups through a readiness program. "
        "Start with list_startups(), then get_readiness(startup_id) for scores and levels, "
        "list_work_items(startup_id, kind) for tasks, initiatives and roadblocks."
    ),
    lifespan=accelerator_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("accelerator://overview")
def accelerator_overview() -> str:
    """Overview of the accelerator data model, statuses and approval rules."""
    return json.dumps({
        "readiness_types": [t.value for t in ReadinessType],
        "levels": "Each readiness type is rated 1-9 (TRL, MRL, ARL, RRL, ORL, IRL).",
        "work_items": {
            "task": "RNS: action item targeting the next level of one readiness type, ordered by priority_number.",
            "initiative": "Sub-task of a task, ordered by initiative_number.",
            "roadblock": "Risk record with a 1-5 risk_number severity.",
        },
        "statuses": {s.value: s.name for s in ItemStatus},
        "approval": (
            "A Startup can only request a status; approval_status becomes Pending until a "
            "Mentor, Manager or Admin sets the status."
        ),
        "roles": [r.value for r in Role],
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Readiness
# ---------------------------------------------------------------------------


@mcp.tool()
def list_startups() -> list[dict]:
    """List all startups with their qualification status."""
    with session_scope() as session:
        startups = session.execute(select(Startup).order_by(Startup.id)).scalars().all()
        return [services.startup_summary(s) for s in startups]


@mcp.tool()
def get_readiness(startup_id: int) -> dict:
    """Raw URAT scores, assigned readiness levels and the calculator report for a startup."""
    with session_scope() as session:
        try:
            levels = readiness.get_startup_readiness_levels(session, startup_id)
            return {
                "startup_id": startup_id,
                "raw_scores": readiness.aggregate_startup_scores(session, startup_id),
                "readiness_levels": [services.readiness_level_dict(r) for r in levels],
                "calculator": readiness.calculator_report(session, startup_id).as_dict(),
            }
        except AcceleratorError as exc:
            return {"error": str(exc)}


@mcp.tool()
def rank_startups() -> list[dict]:
    """Startups ranked by total URAT score plus calculator technology level."""
    with session_scope() as session:
        return readiness.rank_startups_by_urat(session)


# ---------------------------------------------------------------------------
# Tools: Work items
# ---------------------------------------------------------------------------


@mcp.tool()
def list_work_items(startup_id: int, kind: str = "task") -> list[dict] | dict:
    """List a startup's work items in order.

    Args:
        startup_id: The startup.
        kind: One of task, initiative, roadblock.
    """
    with session_scope() as session:
        try:
            return [services.work_item_dict(i) for i in services.list_work_items(session, kind, startup_id)]
        except (AcceleratorError, ValueError) as exc:
            return {"error": str(exc)}


@mcp.tool()
def change_item_status(kind: str, item_id: int, role: str, status: int) -> dict:
    """Request a status change on a task, initiative or roadblock.

    Args:
        kind: One of task, initiative, roadblock.
        item_id: The work item.
        role: Startup, Mentor, Manager or Admin. Startups can only propose.
        status: 1 New, 2 Scheduled, 3 On track, 4 Completed, 5 Delayed, 6 Discontinued, 7 Long term.
    """
    if role not in {r.value for r in Role}:
        return {"error": f"Unknown role {role!r}"}
    if status not in {s.value for s in ItemStatus}:
        return {"error": f"Unknown status {status}"}
    with session_scope() as session:
        try:
            item = services.change_status(session, kind, item_id, role, status)
            return services.work_item_dict(item)
        except (AcceleratorError, ValueError) as exc:
            return {"error": str(exc)}


@mcp.tool()
async def generate_work_items(
    startup_id: int, kind: str, count: int = 1,
    rna_ids: list[int] | None = None, rns_ids: list[int] | None = None,
) -> list[dict] | dict:
    """Generate tasks (from rna_ids), initiatives (from rns_ids) or roadblocks. Requires ANTHROPIC_API_KEY."""
    with session_scope() as session:
        try:
            items = await generator.generate_batch(
                session, startup_id, kind, max(1, min(count, 20)),
                {"rna_ids": rna_ids or [], "rns_ids": rns_ids or []},
            )
            return [services.work_item_dict(i) for i in items]
        except GenerationError as exc:
            log.error("Generation failed for startup %d: %s", startup_id, exc)
            return {"error": "AI generation failed. Please try again."}
        except (AcceleratorError, ValueError) as exc:
            return {"error": str(exc)}


# ---------------------------------------------------------------------------
# Tools: Assessments
# ---------------------------------------------------------------------------


@mcp.tool()
def reconcile_assessments(startup_id: int, template_ids: list[int]) -> dict:
    """Assign assessment templates to a startup, replacing any assignment of the same type."""
    with session_scope() as session:
        try:
            return assessments.reconcile_assignments(session, startup_id, template_ids).as_dict()
        except AcceleratorError as exc:
            return {"error": str(exc)}


def main():
    """Run the Accelerator MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
